import hashlib

import pytest

from conf_channel import generate_keypair
from conf_ledger import allocations_for, mint


class CountingRandom:
    """Deterministic stand-in for secrets.token_bytes: SHA-256 over (seed, counter)."""

    def __init__(self, seed: bytes = b"conf-ledger-tests"):
        self.seed = seed
        self.counter = 0

    def __call__(self, n: int) -> bytes:
        out = b""
        while len(out) < n:
            out += hashlib.sha256(self.seed + self.counter.to_bytes(8, "big")).digest()
            self.counter += 1
        return out[:n]


@pytest.fixture
def deterministic_random():
    return CountingRandom()


@pytest.fixture
def make_random():
    return CountingRandom


@pytest.fixture(scope="session")
def identities():
    rng = CountingRandom(b"identities")
    return {name: generate_keypair(name, rng) for name in ("alice", "bob", "carol", "dave")}


@pytest.fixture
def alice(identities):
    return identities["alice"]


@pytest.fixture
def bob(identities):
    return identities["bob"]


@pytest.fixture
def carol(identities):
    return identities["carol"]


@pytest.fixture
def dave(identities):
    return identities["dave"]


@pytest.fixture
def ledger(alice, bob, carol):
    return mint(allocations_for([alice, bob, carol], [100, 200, 300]))


@pytest.fixture
def open_ledger(alice, bob, carol):
    return mint(allocations_for([alice, bob, carol], [100, 200, 300]), self_update_allowed=True)
