import asyncio
import copy
import itertools
from collections import defaultdict
from datetime import UTC, datetime, timedelta

import pytest

from livelocal.models.domain.session_domain import AuthUser
from livelocal.services.notices import NoticeCenter
from livelocal.services.ratings_cache import RatingsCache
from livelocal.services.remote.change_feed import ChangeFeedHub
from livelocal.services.remote.contract import (
    ALL_EVENTS,
    ChangeEvent,
    RemoteServiceError,
    UniqueViolationError,
)
from livelocal.services.remote.filters import matches_all
from livelocal.services.session import AuthSession

BASE_TIME = datetime(2026, 1, 1, 9, 0, tzinfo=UTC)


def ts(minutes: int) -> str:
    """ISO timestamp `minutes` after BASE_TIME."""
    return (BASE_TIME + timedelta(minutes=minutes)).isoformat()


class FakeRemote:
    """In-memory remote data service that honors filter predicates and publishes changes."""

    UNIQUE_KEYS = {
        "saved_experiences": ("user_id", "experience_id"),
        "reviews": ("booking_id", "guest_id"),
    }

    def __init__(self):
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self.hub = ChangeFeedHub()
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self.gates: dict[tuple[str, str], asyncio.Event] = {}
        self._ids = itertools.count(1)
        self._clock = itertools.count(1000)

    def seed(self, table: str, *rows: dict) -> None:
        self.tables[table].extend(copy.deepcopy(list(rows)))

    def fail(self, op: str, table: str, error: Exception | None = None) -> None:
        self.failures[(op, table)] = error or RemoteServiceError(f"{op} {table} unavailable")

    def recover(self, op: str, table: str) -> None:
        self.failures.pop((op, table), None)

    def gate(self, op: str, table: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[(op, table)] = event
        return event

    def count(self, op: str, table: str) -> int:
        return sum(1 for call in self.calls if call == (op, table))

    async def _enter(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        gate = self.gates.get((op, table))
        if gate is not None:
            await gate.wait()
        error = self.failures.get((op, table))
        if error is not None:
            raise error

    async def select(self, table, predicates=(), *, columns="*", order=None, limit=None):
        await self._enter("select", table)
        rows = [r for r in self.tables[table] if matches_all(predicates, r)]
        if order is not None:
            rows.sort(key=lambda r: r.get(order.column) or "", reverse=not order.ascending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, table, row):
        await self._enter("insert", table)
        keys = self.UNIQUE_KEYS.get(table)
        if keys and any(all(r.get(k) == row.get(k) for k in keys) for r in self.tables[table]):
            raise UniqueViolationError("duplicate key value", code="23505", operation="insert")
        now = ts(next(self._clock))
        stored = {"id": f"{table}-{next(self._ids)}", "created_at": now, "updated_at": now, **row}
        self.tables[table].append(stored)
        await self.hub.publish(ChangeEvent(table, "INSERT", new=copy.deepcopy(stored)))
        return copy.deepcopy(stored)

    async def update(self, table, predicates, patch):
        await self._enter("update", table)
        for row in self.tables[table]:
            if matches_all(predicates, row):
                old = copy.deepcopy(row)
                row.update(patch)
                await self.hub.publish(
                    ChangeEvent(table, "UPDATE", new=copy.deepcopy(row), old=old)
                )

    async def delete(self, table, predicates):
        await self._enter("delete", table)
        removed = [r for r in self.tables[table] if matches_all(predicates, r)]
        self.tables[table] = [r for r in self.tables[table] if not matches_all(predicates, r)]
        for row in removed:
            await self.hub.publish(ChangeEvent(table, "DELETE", old=row))

    async def invoke(self, name, payload):
        await self._enter("invoke", name)
        return {"name": name, "payload": payload}

    def subscribe(self, table, predicates, on_event, *, events=ALL_EVENTS, on_resync=None):
        return self.hub.subscribe(table, predicates, on_event, events=events, on_resync=on_resync)

    def unsubscribe(self, subscription):
        self.hub.unsubscribe(subscription)

    async def push(self, table: str, event_type: str, new: dict, old: dict | None = None) -> int:
        """Simulate a server-side change arriving on the feed."""
        if event_type == "INSERT":
            self.tables[table].append(copy.deepcopy(new))
        return await self.hub.publish(ChangeEvent(table, event_type, new=new, old=old or {}))


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def session():
    return AuthSession()


@pytest.fixture
def notices():
    return NoticeCenter()


@pytest.fixture
def user():
    return AuthUser(id="user-1", email="guest@example.com")


@pytest.fixture
def host_user():
    return AuthUser(id="host-1", email="host@example.com")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ratings(fake_remote, clock):
    return RatingsCache(remote=fake_remote, ttl_seconds=600, clock=clock)
