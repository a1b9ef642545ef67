import pytest

from conf_errors import MalformedData
from conf_group import (
    G,
    H,
    H_DOMAIN,
    L,
    P,
    GroupElement,
    expand_message_xmd,
    hash_to_group,
    random_scalar,
)

# RFC 9496 appendix A.1: encodings of 1*B and 2*B
BASE_HEX = "e2f2ae0a6abc4e71a884a961c500515f58e30b6aa582dd8db6a65945e08d2d76"
TWO_BASE_HEX = "6a493210f7499cd17fecb510ae0cea23a110e8d5b901f8acadd3095c73a3b919"


def test_identity_encodes_to_zero_bytes():
    assert GroupElement.identity().to_bytes() == bytes(32)
    assert GroupElement.from_bytes(bytes(32)).is_identity()


def test_base_point_vectors():
    assert G.hex() == BASE_HEX
    assert (2 * G).hex() == TWO_BASE_HEX
    assert (G + G) == GroupElement.from_hex(TWO_BASE_HEX)


def test_zero_scalar_gives_identity():
    assert (G * 0).is_identity()
    assert (H * L).is_identity()


def test_scalar_reduced_mod_order():
    assert G * (L + 5) == G * 5
    assert G * -1 == -G


def test_negation_and_subtraction():
    assert (G + (-G)).is_identity()
    assert (3 * G) - G == 2 * G


@pytest.mark.parametrize("k", [1, 2, 3, 7, 255, 2**64 + 13, L - 1])
def test_encoding_round_trip(k):
    element = k * G + H
    decoded = GroupElement.from_bytes(element.to_bytes())
    assert decoded == element
    assert decoded.to_bytes() == element.to_bytes()
    assert GroupElement.from_hex(element.hex()) == element


def test_equal_elements_share_one_encoding():
    a = (5 * G) + (7 * H)
    b = (7 * H) + (2 * G) + (3 * G)
    assert a == b
    assert a.to_bytes() == b.to_bytes()
    assert hash(a) == hash(b)


@pytest.mark.parametrize("encoding", [
    # s >= p
    (P).to_bytes(32, "little"),
    b"\xff" * 31 + b"\x7f",
    # negative (odd) s
    (1).to_bytes(32, "little"),
    # wrong length
    bytes(31),
])
def test_rejects_bad_encodings(encoding):
    with pytest.raises(MalformedData):
        GroupElement.from_bytes(encoding)


def test_rejects_non_group_encodings():
    rejected = 0
    for s in range(2, 200, 2):
        try:
            GroupElement.from_bytes(s.to_bytes(32, "little"))
        except MalformedData:
            rejected += 1
    # roughly half of the even field elements decode
    assert 0 < rejected < 99


def test_from_hex_rejects_garbage():
    with pytest.raises(MalformedData):
        GroupElement.from_hex("zz" * 32)
    with pytest.raises(MalformedData):
        GroupElement.from_hex("00" * 31)


def test_h_is_independent_and_fixed():
    assert H != G
    assert not H.is_identity()
    assert H == hash_to_group(H_DOMAIN)
    assert hash_to_group(b"another domain") != H


def test_expand_message_xmd_length():
    out = expand_message_xmd(b"abc", b"dst", 64)
    assert len(out) == 64
    assert expand_message_xmd(b"abc", b"dst", 64) == out
    assert expand_message_xmd(b"abd", b"dst", 64) != out


def test_random_scalar_in_range(deterministic_random):
    values = [random_scalar(deterministic_random) for _ in range(32)]
    assert all(0 <= v < L for v in values)
    assert len(set(values)) == 32
