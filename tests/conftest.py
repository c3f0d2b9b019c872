from __future__ import annotations

import pytest

from factories import StubProvider, fast_options, quiet_policy
from tripopt.schemas.trip import TransportMode


class FakeRedis:
    """In-memory stand-in for the three redis-py calls the cache layer makes."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed


@pytest.fixture
def public_stub():
    return StubProvider(TransportMode.PUBLIC)


@pytest.fixture
def policy():
    return quiet_policy()


@pytest.fixture
def options():
    return fast_options()


@pytest.fixture
def fake_redis(monkeypatch):
    client = FakeRedis()
    monkeypatch.setattr("tripopt.db.redis_client._client", client)
    return client
