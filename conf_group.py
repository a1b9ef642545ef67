"""
ristretto255 group arithmetic.

Prime-order group built over Curve25519 (RFC 9496). Elements are kept in
extended Edwards coordinates and cross the module boundary only through the
canonical 32-byte encoding (or its hex form).

G is the standard base point. H is the hash-to-group image (RFC 9380
expand_message_xmd + RFC 9496 one-way map) of a fixed domain string, so no
one knows k with H = k*G.

Pure-Python big-int arithmetic: correct, not constant-time.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Callable, Tuple, Union

from conf_errors import MalformedData

logger = logging.getLogger("conf_ledger.group")

# ---- Curve / group parameters ------------------------------------------------

P = 2**255 - 19
L = 2**252 + 27742317777372353535851937790883648493

ELEMENT_BYTES = 32
SCALAR_BYTES = 32

H_DOMAIN = b"conf-ledger:H:v1"
HASH_TO_GROUP_DST = b"ristretto255_XMD:SHA-512_R255MAP_RO_"

RandomBytes = Callable[[int], bytes]


# ---- Field helpers -----------------------------------------------------------

def _inv(x: int) -> int:
    return pow(x % P, P - 2, P)


def _is_negative(x: int) -> bool:
    # RFC 9496: negative iff the canonical encoding has its low bit set
    return (x % P) & 1 == 1


def _abs(x: int) -> int:
    x %= P
    return P - x if _is_negative(x) else x


SQRT_M1 = pow(2, (P - 1) // 4, P)
D = (-121665 * _inv(121666)) % P


def _sqrt_ratio_m1(u: int, v: int) -> Tuple[bool, int]:
    """Return (was_square, sqrt(u/v)) or (False, sqrt(i*u/v)); root is non-negative."""
    u %= P
    v %= P
    v3 = v * v % P * v % P
    v7 = v3 * v3 % P * v % P
    r = u * v3 % P * pow(u * v7 % P, (P - 5) // 8, P) % P
    check = v * r % P * r % P

    correct_sign = check == u
    flipped_sign = check == (-u) % P
    flipped_sign_i = check == (-u) * SQRT_M1 % P

    if flipped_sign or flipped_sign_i:
        r = r * SQRT_M1 % P
    return correct_sign or flipped_sign, _abs(r)


def _sqrt(x: int) -> int:
    was_square, r = _sqrt_ratio_m1(x, 1)
    if not was_square:
        raise ArithmeticError("not a square mod p")
    return r


INVSQRT_A_MINUS_D = _inv(_sqrt((-1 - D) % P))
ONE_MINUS_D_SQ = (1 - D * D) % P
D_MINUS_ONE_SQ = (D - 1) * (D - 1) % P
# RFC 9496 fixes the negative (odd) root of a*d - 1
SQRT_AD_MINUS_ONE = (-_sqrt((-D - 1) % P)) % P


# ---- Group element -----------------------------------------------------------

@dataclass(frozen=True, eq=False, repr=False)
class GroupElement:
    """
    ristretto255 element in extended coordinates (x = X/Z, y = Y/Z, T = XY/Z).

    Equality is group equality: distinct Edwards representatives of the same
    ristretto255 element compare equal and share one encoding.
    """
    X: int
    Y: int
    Z: int
    T: int

    @classmethod
    def identity(cls) -> "GroupElement":
        return cls(0, 1, 1, 0)

    @classmethod
    def base(cls) -> "GroupElement":
        return _BASEPOINT

    def __add__(self, other: "GroupElement") -> "GroupElement":
        if not isinstance(other, GroupElement):
            return NotImplemented
        A = (self.Y - self.X) * (other.Y - other.X) % P
        B = (self.Y + self.X) * (other.Y + other.X) % P
        C = 2 * D * self.T % P * other.T % P
        Dz = 2 * self.Z * other.Z % P
        E, F, G_, H_ = B - A, Dz - C, Dz + C, B + A
        return GroupElement(E * F % P, G_ * H_ % P, F * G_ % P, E * H_ % P)

    def __neg__(self) -> "GroupElement":
        return GroupElement((-self.X) % P, self.Y, self.Z, (-self.T) % P)

    def __sub__(self, other: "GroupElement") -> "GroupElement":
        if not isinstance(other, GroupElement):
            return NotImplemented
        return self + (-other)

    def double(self) -> "GroupElement":
        A = self.X * self.X % P
        B = self.Y * self.Y % P
        C = 2 * self.Z * self.Z % P
        E = ((self.X + self.Y) * (self.X + self.Y) - A - B) % P
        G_ = (B - A) % P
        F = (G_ - C) % P
        H_ = (-A - B) % P
        return GroupElement(E * F % P, G_ * H_ % P, F * G_ % P, E * H_ % P)

    def __mul__(self, scalar: int) -> "GroupElement":
        if isinstance(scalar, bool) or not isinstance(scalar, int):
            return NotImplemented
        k = scalar % L
        # k == 0 lands on the identity, not on the unchanged accumulator
        result = GroupElement.identity()
        addend = self
        while k:
            if k & 1:
                result = result + addend
            addend = addend.double()
            k >>= 1
        return result

    __rmul__ = __mul__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GroupElement):
            return NotImplemented
        return (
            (self.X * other.Y - self.Y * other.X) % P == 0
            or (self.Y * other.Y - self.X * other.X) % P == 0
        )

    def __hash__(self) -> int:
        return hash(self.to_bytes())

    def __repr__(self) -> str:
        return f"GroupElement({self.hex()[:16]}...)"

    def is_identity(self) -> bool:
        return self == GroupElement.identity()

    # ---- Encoding --------------------------------------------------------------

    def to_bytes(self) -> bytes:
        u1 = (self.Z + self.Y) * (self.Z - self.Y) % P
        u2 = self.X * self.Y % P
        _, invsqrt = _sqrt_ratio_m1(1, u1 * u2 % P * u2 % P)
        den1 = invsqrt * u1 % P
        den2 = invsqrt * u2 % P
        z_inv = den1 * den2 % P * self.T % P

        x, y = self.X, self.Y
        den_inv = den2
        if _is_negative(self.T * z_inv):
            x, y = self.Y * SQRT_M1 % P, self.X * SQRT_M1 % P
            den_inv = den1 * INVSQRT_A_MINUS_D % P
        if _is_negative(x * z_inv):
            y = (-y) % P

        s = _abs(den_inv * (self.Z - y))
        return s.to_bytes(ELEMENT_BYTES, "little")

    @classmethod
    def from_bytes(cls, data: bytes) -> "GroupElement":
        if not isinstance(data, (bytes, bytearray)) or len(data) != ELEMENT_BYTES:
            raise MalformedData("group element encoding must be 32 bytes")
        s = int.from_bytes(bytes(data), "little")
        if s >= P or _is_negative(s):
            raise MalformedData("non-canonical group element encoding")

        ss = s * s % P
        u1 = (1 - ss) % P
        u2 = (1 + ss) % P
        u2_sqr = u2 * u2 % P
        v = (-(D * u1 % P * u1) - u2_sqr) % P
        was_square, invsqrt = _sqrt_ratio_m1(1, v * u2_sqr % P)

        den_x = invsqrt * u2 % P
        den_y = invsqrt * den_x % P * v % P
        x = _abs(2 * s * den_x)
        y = u1 * den_y % P
        t = x * y % P
        if not was_square or _is_negative(t) or y == 0:
            raise MalformedData("bytes do not encode a ristretto255 element")
        return cls(x, y, 1, t)

    def hex(self) -> str:
        return self.to_bytes().hex()

    @classmethod
    def from_hex(cls, value: str) -> "GroupElement":
        if not isinstance(value, str) or len(value) != 2 * ELEMENT_BYTES:
            raise MalformedData("group element hex must be 64 characters")
        try:
            raw = bytes.fromhex(value)
        except ValueError as exc:
            raise MalformedData(f"invalid hex: {exc}") from exc
        return cls.from_bytes(raw)


_BASE_X = 15112221349535400772501151409588531511454012693041857206046113283949847762202
_BASE_Y = 46316835694926478169428394003475163141307993866256225615783033603165251855960
_BASEPOINT = GroupElement(_BASE_X, _BASE_Y, 1, _BASE_X * _BASE_Y % P)


def to_element(value: Union[GroupElement, str, bytes]) -> GroupElement:
    """Accept an element, its hex string or its 32-byte encoding."""
    if isinstance(value, GroupElement):
        return value
    if isinstance(value, str):
        return GroupElement.from_hex(value)
    return GroupElement.from_bytes(value)


# ---- Hash to group -----------------------------------------------------------

def expand_message_xmd(msg: bytes, dst: bytes, length: int) -> bytes:
    """RFC 9380 section 5.3.1 with SHA-512."""
    b_in_bytes, s_in_bytes = 64, 128
    ell = -(-length // b_in_bytes)
    if ell > 255 or len(dst) > 255:
        raise ValueError("expand_message_xmd: length or dst too long")
    dst_prime = dst + bytes([len(dst)])
    msg_prime = bytes(s_in_bytes) + msg + length.to_bytes(2, "big") + b"\x00" + dst_prime

    b_0 = hashlib.sha512(msg_prime).digest()
    b_i = hashlib.sha512(b_0 + b"\x01" + dst_prime).digest()
    uniform = b_i
    for i in range(2, ell + 1):
        mixed = bytes(a ^ b for a, b in zip(b_0, b_i))
        b_i = hashlib.sha512(mixed + bytes([i]) + dst_prime).digest()
        uniform += b_i
    return uniform[:length]


def _elligator_map(t: int) -> GroupElement:
    r = SQRT_M1 * t % P * t % P
    u = (r + 1) * ONE_MINUS_D_SQ % P
    v = (-1 - r * D) * (r + D) % P
    was_square, s = _sqrt_ratio_m1(u, v)
    if was_square:
        c = P - 1
    else:
        s = (-_abs(s * t)) % P
        c = r
    N = (c * (r - 1) % P * D_MINUS_ONE_SQ - v) % P

    w0 = 2 * s * v % P
    w1 = N * SQRT_AD_MINUS_ONE % P
    w2 = (1 - s * s) % P
    w3 = (1 + s * s) % P
    return GroupElement(w0 * w3 % P, w2 * w1 % P, w1 * w3 % P, w0 * w2 % P)


def from_uniform_bytes(data: bytes) -> GroupElement:
    """RFC 9496 element derivation from 64 uniformly random bytes."""
    if len(data) != 64:
        raise ValueError("one-way map needs 64 bytes")
    mask = (1 << 255) - 1
    t1 = (int.from_bytes(data[:32], "little") & mask) % P
    t2 = (int.from_bytes(data[32:], "little") & mask) % P
    return _elligator_map(t1) + _elligator_map(t2)


def hash_to_group(msg: bytes, dst: bytes = HASH_TO_GROUP_DST) -> GroupElement:
    return from_uniform_bytes(expand_message_xmd(msg, dst, 64))


# ---- Scalars -----------------------------------------------------------------

def reduce_scalar(value: int) -> int:
    return value % L


def random_scalar(random_bytes: RandomBytes = secrets.token_bytes) -> int:
    """Draw 32 bytes, read them big-endian and reduce mod L."""
    raw = random_bytes(SCALAR_BYTES)
    if len(raw) != SCALAR_BYTES:
        raise ValueError("random source returned the wrong number of bytes")
    return int.from_bytes(raw, "big") % L


# ---- Generators --------------------------------------------------------------

G = GroupElement.base()
H = hash_to_group(H_DOMAIN)

if G == H or H.is_identity():
    raise RuntimeError("degenerate Pedersen generators")
logger.debug("Pedersen generators ready: G=%s H=%s", G.hex(), H.hex())
