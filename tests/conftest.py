import os

import pytest

from sitelock.storage.ttl import TtlPolicy

T0 = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ttl_policy(clock):
    return TtlPolicy(clock=clock)


@pytest.fixture(autouse=True)
def clean_sitelock_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("SITELOCK_"):
            monkeypatch.delenv(name, raising=False)
