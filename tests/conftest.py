"""
Module: conftest.py
Description: Shared pytest fixtures for linkdrop tests.

Provides an in-memory sorted set that behaves like the Redis commands
the queue store relies on, a controllable millisecond clock, and a
timer registry that records registrations instead of sleeping.
"""

from typing import Optional, Sequence

import pytest
from fastapi.testclient import TestClient

from linkdrop.core.config import PollerConfig, QueueConfig, TokenConfig
from linkdrop.core.token import TokenCodec
from linkdrop.main import app
from linkdrop.queue.engine import DeliveryEngine, get_delivery_engine
from linkdrop.queue.store import QueueStore
from linkdrop.storage.base import StorageError

TTL_SECONDS = 259200
START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class MemorySortedSetBackend:
    """In-memory sorted sets ordered like Redis: by score, then member."""

    def __init__(self):
        self.sets: dict[str, dict[str, float]] = {}
        self.expiries: dict[str, int] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise StorageError("backend down")

    def _ordered(self, key: str) -> list[str]:
        members = self.sets.get(key, {})
        return [m for m, _ in sorted(members.items(), key=lambda kv: (kv[1], kv[0]))]

    async def add(self, key: str, members: dict[str, float]) -> int:
        self._check()
        target = self.sets.setdefault(key, {})
        added = sum(1 for member in members if member not in target)
        target.update(members)
        return added

    async def range_by_rank(self, key: str, start: int, stop: int) -> list[str]:
        self._check()
        ordered = self._ordered(key)
        end = None if stop == -1 else stop + 1
        return ordered[start:end]

    async def remove_members(self, key: str, members: Sequence[str]) -> list[str]:
        self._check()
        target = self.sets.get(key, {})
        removed = [m for m in members if target.pop(m, None) is not None]
        if not target:
            self.sets.pop(key, None)
        return removed

    async def remove_by_score(self, key: str, min_score: float, max_score: float) -> int:
        self._check()
        target = self.sets.get(key, {})
        doomed = [m for m, s in target.items() if min_score <= s <= max_score]
        for member in doomed:
            del target[member]
        return len(doomed)

    async def cardinality(self, key: str) -> int:
        self._check()
        return len(self.sets.get(key, {}))

    async def expire(self, key: str, seconds: int) -> bool:
        self._check()
        if key not in self.sets:
            return False
        self.expiries[key] = seconds
        return True

    async def ping(self) -> bool:
        return not self.fail

    async def close(self) -> None:
        pass


class RecordingTimers:
    """Timer registry that stores callbacks so tests can fire them by hand."""

    def __init__(self):
        self.periodic: dict[str, tuple[float, object, float]] = {}
        self.once: dict[str, tuple[float, object]] = {}
        self.cancelled: list[str] = []

    def schedule_periodic(self, name, period, callback, initial_delay=0.0):
        self.periodic[name] = (period, callback, initial_delay)

    def schedule_once(self, name, delay, callback):
        self.once[name] = (delay, callback)

    def cancel(self, name):
        self.cancelled.append(name)
        self.periodic.pop(name, None)
        self.once.pop(name, None)

    def cancel_all(self):
        for name in list(self.periodic) + list(self.once):
            self.cancel(name)

    async def drain(self):
        pass

    async def fire_once(self, name: str) -> None:
        _, callback = self.once.pop(name)
        await callback()

    async def fire_periodic(self, name: str) -> None:
        _, callback, _ = self.periodic[name]
        await callback()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return MemorySortedSetBackend()


@pytest.fixture
def queue_config():
    return QueueConfig(
        key_prefix="test:q:",
        max_queue_size=100,
        max_deliver_per_poll=10,
        item_ttl_seconds=TTL_SECONDS
    )


@pytest.fixture
def codec():
    return TokenCodec(TokenConfig())


@pytest.fixture
def token(codec):
    return codec.generate()


@pytest.fixture
def store(backend, queue_config, clock):
    return QueueStore(backend, queue_config, clock=clock)


@pytest.fixture
def engine(store, queue_config, codec):
    return DeliveryEngine(store, queue_config, codec, public_base_url="https://relay.test")


@pytest.fixture
def poller_config():
    return PollerConfig(
        base_url="https://relay.test",
        poll_interval=60.0,
        turbo_interval=10.0,
        turbo_duration=300.0,
        initial_delay=3.0,
        request_timeout=5.0
    )


@pytest.fixture
def timers():
    return RecordingTimers()


@pytest.fixture
def api_client(engine):
    """TestClient wired to the in-memory engine (lifespan not started)."""
    app.dependency_overrides[get_delivery_engine] = lambda: engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides = {}
