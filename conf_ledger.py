"""
CONFIDENTIAL LEDGER STATE

Each holder's balance is a Pedersen commitment with the opening encrypted to
the holder. The aggregate is public:
  - commitSum == sum of every entry commitment
  - commitSum == T*G + R*H

Snapshots are immutable; mint and update_own_entry return new ones.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Sequence, Tuple

from conf_channel import HolderKeyPair, Opening, decrypt_opening, encrypt_opening
from conf_commitment import commit, sum_commitments
from conf_errors import DecryptionFailure, MalformedData, NotFound, PermissionDenied
from conf_group import L, RandomBytes, random_scalar, reduce_scalar

logger = logging.getLogger("conf_ledger.state")

LEDGER_VERSION = "1"


# -----------------------------------------------------------------------------
# Types
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class LedgerEntry:
    holder_id: str
    commitment: str         # hex group element
    encrypted_opening: str  # base64(epk || nonce || ciphertext)

    def encrypted_bytes(self) -> bytes:
        try:
            return base64.b64decode(self.encrypted_opening, validate=True)
        except (binascii.Error, ValueError, TypeError) as exc:
            raise MalformedData(f"encrypted opening is not base64: {exc}") from exc


@dataclass(frozen=True)
class AggregateTotal:
    total_value: int
    total_blinding: int
    aggregate_commitment: str  # hex group element


@dataclass(frozen=True)
class LedgerState:
    version: str
    entries: Tuple[LedgerEntry, ...]
    total: AggregateTotal
    self_update_allowed: bool = False

    def find_entry(self, holder_id: str) -> int:
        """Index of the holder's entry, or -1."""
        for i, entry in enumerate(self.entries):
            if entry.holder_id == holder_id:
                return i
        return -1

    def holder_ids(self) -> Tuple[str, ...]:
        return tuple(e.holder_id for e in self.entries)


@dataclass(frozen=True)
class MintAllocation:
    holder_id: str
    public_key: bytes
    amount: int

    @classmethod
    def for_holder(cls, keypair: HolderKeyPair, amount: int) -> "MintAllocation":
        return cls(holder_id=keypair.holder_id, public_key=keypair.public_key, amount=amount)


def _check_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be an integer, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError("amount must be non-negative")
    if amount >= L:
        raise ValueError("amount must be below the group order")
    return amount


def _check_total(total_value: int) -> int:
    # T*G only pins T mod L; a total at or past L would open two ways
    if total_value >= L:
        raise ValueError("ledger total must stay below the group order")
    return total_value


def _as_allocation(alloc: Any) -> MintAllocation:
    """Accept a MintAllocation or a plain (public_key, holder_id, amount) tuple."""
    if isinstance(alloc, MintAllocation):
        return alloc
    if isinstance(alloc, tuple) and len(alloc) == 3:
        public_key, holder_id, amount = alloc
        return MintAllocation(holder_id=holder_id, public_key=public_key, amount=amount)
    raise ValueError(
        f"allocation must be a MintAllocation or a (public_key, holder_id, amount) tuple, "
        f"got {type(alloc).__name__}"
    )


def _seal(holder_id: str, public_key: bytes, value: int, random_bytes: RandomBytes) -> Tuple[LedgerEntry, int]:
    blinding = random_scalar(random_bytes)
    commitment = commit(value, blinding)
    blob = encrypt_opening(public_key, Opening(value, blinding), random_bytes)
    entry = LedgerEntry(
        holder_id=holder_id,
        commitment=commitment.hex(),
        encrypted_opening=base64.b64encode(blob).decode("ascii"),
    )
    return entry, blinding


# -----------------------------------------------------------------------------
# Transitions
# -----------------------------------------------------------------------------

def mint(allocations: Iterable[Any],
         self_update_allowed: bool = False,
         random_bytes: RandomBytes = secrets.token_bytes) -> LedgerState:
    """
    Build a ledger from an allocation list.

    Running sums give T and R; the aggregate commitment is the direct sum of
    the entry commitments so the two derivations can be checked against each
    other.
    """
    entries = []
    seen = set()
    total_value = 0
    total_blinding = 0

    for item in allocations:
        alloc = _as_allocation(item)
        if alloc.holder_id in seen:
            raise ValueError(f"duplicate holder in allocations: {alloc.holder_id}")
        seen.add(alloc.holder_id)
        value = _check_amount(alloc.amount)
        total_value = _check_total(total_value + value)

        entry, blinding = _seal(alloc.holder_id, alloc.public_key, value, random_bytes)
        entries.append(entry)
        total_blinding = reduce_scalar(total_blinding + blinding)

    aggregate = sum_commitments(e.commitment for e in entries)
    logger.debug("minted ledger with %d entries", len(entries))
    return LedgerState(
        version=LEDGER_VERSION,
        entries=tuple(entries),
        total=AggregateTotal(
            total_value=total_value,
            total_blinding=total_blinding,
            aggregate_commitment=aggregate.hex(),
        ),
        self_update_allowed=self_update_allowed,
    )


def update_own_entry(ledger: LedgerState,
                     holder_id: str,
                     holder_keypair: HolderKeyPair,
                     new_amount: int,
                     random_bytes: RandomBytes = secrets.token_bytes) -> LedgerState:
    """
    Replace the holder's own balance.

    Only the policy flag gates this; there is no authorization check here.
    Callers outside cooperative/demo mode must authorize before calling.
    """
    if not ledger.self_update_allowed:
        raise PermissionDenied("self-update is not allowed on this ledger")

    index = ledger.find_entry(holder_id)
    if index == -1:
        raise NotFound(f"holder {holder_id!r} has no entry in this ledger")
    new_value = _check_amount(new_amount)

    current = ledger.entries[index]
    try:
        old = decrypt_opening(holder_keypair.private_key, current.encrypted_bytes())
    except MalformedData as exc:
        raise DecryptionFailure("existing opening is not decodable") from exc
    total_value = _check_total(ledger.total.total_value - old.value + new_value)

    entry, new_blinding = _seal(holder_id, holder_keypair.public_key, new_value, random_bytes)
    entries = list(ledger.entries)
    entries[index] = entry

    aggregate = sum_commitments(e.commitment for e in entries)
    total = AggregateTotal(
        total_value=total_value,
        total_blinding=reduce_scalar(ledger.total.total_blinding - old.blinding + new_blinding),
        aggregate_commitment=aggregate.hex(),
    )
    logger.debug("holder %s updated own entry", holder_id)
    return replace(ledger, entries=tuple(entries), total=total)


# -----------------------------------------------------------------------------
# Wire form
# -----------------------------------------------------------------------------

def entry_to_dict(entry: LedgerEntry) -> Dict[str, str]:
    return {
        "holderId": entry.holder_id,
        "commit": entry.commitment,
        "openingEncrypted": entry.encrypted_opening,
    }


def ledger_to_dict(ledger: LedgerState) -> Dict[str, Any]:
    return {
        "version": ledger.version,
        "entries": [entry_to_dict(e) for e in ledger.entries],
        "total": {
            "T": str(ledger.total.total_value),
            "R": str(ledger.total.total_blinding),
            "commitSum": ledger.total.aggregate_commitment,
        },
        "allowSelfUpdate": ledger.self_update_allowed,
    }


def _require_str(doc: Dict[str, Any], key: str) -> str:
    value = doc.get(key)
    if not isinstance(value, str):
        raise MalformedData(f"{key} must be a string")
    return value


def _decimal(doc: Dict[str, Any], key: str) -> int:
    text = _require_str(doc, key)
    if not text.isdigit() or not text.isascii():
        raise MalformedData(f"{key} must be a non-negative decimal integer string")
    return int(text)


def ledger_from_dict(doc: Dict[str, Any]) -> LedgerState:
    """
    Load a stored ledger document.

    Shape is validated; group encodings are not, so a tampered ledger still
    loads and then fails verify_total.
    """
    if not isinstance(doc, dict):
        raise MalformedData("ledger document must be an object")
    version = _require_str(doc, "version")
    if version != LEDGER_VERSION:
        raise MalformedData(f"unsupported ledger version {version!r}")

    raw_entries = doc.get("entries")
    raw_total = doc.get("total")
    if not isinstance(raw_entries, list) or not isinstance(raw_total, dict):
        raise MalformedData("ledger needs an entries list and a total object")

    entries = []
    for item in raw_entries:
        if not isinstance(item, dict):
            raise MalformedData("ledger entry must be an object")
        entries.append(LedgerEntry(
            holder_id=_require_str(item, "holderId"),
            commitment=_require_str(item, "commit"),
            encrypted_opening=_require_str(item, "openingEncrypted"),
        ))
    ids = [e.holder_id for e in entries]
    if len(set(ids)) != len(ids):
        raise MalformedData("holder ids must be unique")

    allow = doc.get("allowSelfUpdate", False)
    if not isinstance(allow, bool):
        raise MalformedData("allowSelfUpdate must be a boolean")

    return LedgerState(
        version=version,
        entries=tuple(entries),
        total=AggregateTotal(
            total_value=_decimal(raw_total, "T"),
            total_blinding=_decimal(raw_total, "R"),
            aggregate_commitment=_require_str(raw_total, "commitSum"),
        ),
        self_update_allowed=allow,
    )


def allocations_for(holders: Sequence[HolderKeyPair], amounts: Sequence[int]) -> Tuple[MintAllocation, ...]:
    """Pair keypairs with amounts, in order."""
    if len(holders) != len(amounts):
        raise ValueError("holders and amounts differ in length")
    return tuple(MintAllocation.for_holder(kp, amt) for kp, amt in zip(holders, amounts))
