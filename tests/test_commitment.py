import pytest

from conf_commitment import commit, sum_commitments, verify_opening
from conf_group import G, H, L, GroupElement


def test_commit_is_deterministic():
    assert commit(5, 123) == commit(5, 123)
    assert commit(5, 123) != commit(6, 123)
    assert commit(5, 123) != commit(5, 124)


def test_commit_formula():
    assert commit(7, 11) == 7 * G + 11 * H


def test_zero_terms():
    assert commit(0, 0).is_identity()
    assert commit(0, 9) == 9 * H
    assert commit(9, 0) == 9 * G


@pytest.mark.parametrize("v1,r1,v2,r2", [
    (0, 1, 0, 1),
    (100, 555, 200, 777),
    (1, L - 1, 1, L - 1),
    (2**80, 2**200, 3, 2**251),
])
def test_homomorphism(v1, r1, v2, r2):
    assert commit(v1, r1) + commit(v2, r2) == commit(v1 + v2, (r1 + r2) % L)


def test_verify_opening():
    c = commit(42, 9999)
    assert verify_opening(c, 42, 9999)
    assert verify_opening(c.hex(), 42, 9999)
    assert not verify_opening(c, 43, 9999)
    assert not verify_opening(c, 42, 9998)


def test_verify_opening_malformed_is_false():
    assert not verify_opening("not hex at all", 1, 1)
    assert not verify_opening("01" + "00" * 31, 1, 1)


def test_sum_commitments():
    assert sum_commitments([]) == GroupElement.identity()
    parts = [commit(1, 2), commit(3, 4).hex(), commit(5, 6)]
    assert sum_commitments(parts) == commit(9, 12)
