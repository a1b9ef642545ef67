"""
Pedersen commitments over ristretto255.

    C = v*G + r*H

Binding and hiding; additively homomorphic:
    commit(v1, r1) + commit(v2, r2) == commit(v1 + v2, r1 + r2 mod L)
"""

from __future__ import annotations

import logging
from typing import Iterable, Union

from conf_errors import MalformedData
from conf_group import G, H, GroupElement, reduce_scalar, to_element

logger = logging.getLogger("conf_ledger.commitment")

CommitmentLike = Union[GroupElement, str, bytes]


def commit(value: int, blinding: int) -> GroupElement:
    # Scalar multiplication by 0 yields the identity, so zero terms still add correctly
    return G * reduce_scalar(value) + H * reduce_scalar(blinding)


def verify_opening(commitment: CommitmentLike, value: int, blinding: int) -> bool:
    """True iff `commitment` opens to (value, blinding). Malformed input is False."""
    try:
        claimed = to_element(commitment)
    except MalformedData:
        logger.debug("verify_opening: commitment does not decode")
        return False
    return claimed == commit(value, blinding)


def sum_commitments(commitments: Iterable[CommitmentLike]) -> GroupElement:
    """Group sum of commitments; the identity for an empty sequence."""
    total = GroupElement.identity()
    for c in commitments:
        total = total + to_element(c)
    return total
