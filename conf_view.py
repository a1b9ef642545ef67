"""
Read-only verification and views.

None of these raise on tampered or malformed ledgers: every failure is
reported as False / None so a display path can always render an
"unverified" state for untrusted input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from conf_channel import HolderKeyPair, decrypt_opening
from conf_commitment import commit, sum_commitments, verify_opening
from conf_errors import LedgerError
from conf_group import L, to_element
from conf_ledger import LEDGER_VERSION, AggregateTotal, LedgerState

logger = logging.getLogger("conf_ledger.view")

PREVIEW_LENGTH = 20
ELLIPSIS = "…"


@dataclass(frozen=True)
class OtherHolder:
    holder_id: str
    commitment_preview: str
    encrypted_preview: str


@dataclass(frozen=True)
class HolderView:
    balance: Optional[int]
    balance_valid: bool
    public_total: Optional[int]
    others: Tuple[OtherHolder, ...]


@dataclass(frozen=True)
class PublicSummary:
    version: str
    participant_count: int
    total: AggregateTotal
    verified: bool


@dataclass(frozen=True)
class VerificationCheck:
    name: str
    passed: bool
    description: str


@dataclass(frozen=True)
class VerificationStatus:
    verified: bool
    checks: Tuple[VerificationCheck, ...]


def _preview(text: str) -> str:
    return str(text)[:PREVIEW_LENGTH] + ELLIPSIS


def _in_scalar_range(value: object) -> bool:
    # the commitment only pins T and R mod L
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < L


def verify_total(ledger: LedgerState) -> bool:
    """
    Public check of the aggregate:
      0. T and R lie in [0, L)
      1. commitSum == sum of entry commitments
      2. commitSum == T*G + R*H
    """
    total = ledger.total
    if not _in_scalar_range(total.total_value) or not _in_scalar_range(total.total_blinding):
        logger.warning("declared totals are outside [0, L)")
        return False
    try:
        claimed = to_element(total.aggregate_commitment)
        if claimed != sum_commitments(e.commitment for e in ledger.entries):
            logger.warning("aggregate commitment does not match entry commitments")
            return False
        if claimed != commit(total.total_value, total.total_blinding):
            logger.warning("aggregate commitment does not open to the declared totals")
            return False
    except (LedgerError, ValueError, TypeError) as exc:
        logger.warning("ledger failed to decode during verification: %s", exc)
        return False
    return True


def get_holder_view(ledger: LedgerState, holder_keypair: HolderKeyPair) -> HolderView:
    """
    What one holder sees: their own balance (decrypted and checked against
    the stored commitment), the total only if it verifies, and opaque
    previews of everybody else.
    """
    balance = None
    balance_valid = True

    index = ledger.find_entry(holder_keypair.holder_id)
    if index != -1:
        mine = ledger.entries[index]
        try:
            opening = decrypt_opening(holder_keypair.private_key, mine.encrypted_bytes())
        except LedgerError as exc:
            logger.warning("holder %s could not decrypt own entry: %s", holder_keypair.holder_id, exc)
            balance_valid = False
        else:
            # A decrypted balance is shown even when the commitment disagrees
            balance = opening.value
            balance_valid = verify_opening(mine.commitment, opening.value, opening.blinding)
            if not balance_valid:
                logger.warning("holder %s: stored commitment does not match opening",
                               holder_keypair.holder_id)

    public_total = ledger.total.total_value if verify_total(ledger) else None
    others = tuple(
        OtherHolder(
            holder_id=e.holder_id,
            commitment_preview=_preview(e.commitment),
            encrypted_preview=_preview(e.encrypted_opening),
        )
        for e in ledger.entries
        if e.holder_id != holder_keypair.holder_id
    )
    return HolderView(
        balance=balance,
        balance_valid=balance_valid,
        public_total=public_total,
        others=others,
    )


def get_public_summary(ledger: LedgerState) -> PublicSummary:
    """Anyone can compute this; no keys needed."""
    return PublicSummary(
        version=ledger.version,
        participant_count=len(ledger.entries),
        total=ledger.total,
        verified=verify_total(ledger),
    )


def get_verification_status(ledger: LedgerState) -> VerificationStatus:
    checks = (
        VerificationCheck(
            name="schema_version",
            passed=ledger.version == LEDGER_VERSION,
            description="Ledger uses expected schema version",
        ),
        VerificationCheck(
            name="total_verification",
            passed=verify_total(ledger),
            description="Sum of commitments matches total commitment (G*T + H*R)",
        ),
        VerificationCheck(
            name="has_entries",
            passed=len(ledger.entries) > 0,
            description="Ledger contains at least one entry",
        ),
    )
    return VerificationStatus(verified=all(c.passed for c in checks), checks=checks)
