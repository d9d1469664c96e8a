"""Shared test fixtures: stores, static catalog, sessions, test client."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from reelroom.catalog import StaticCatalog
from reelroom.config import settings
from reelroom.models import Card
from reelroom.redis_store import RedisTreeStore
from reelroom.session import RoomSession
from reelroom.store import MemoryTreeStore, join_path
from scripts.seed_catalog import generate_pages


class RecordingStore(MemoryTreeStore):
    """Memory store that keeps the global order of accepted writes."""

    def __init__(self, data: dict | None = None) -> None:
        super().__init__(data)
        self.trace: list[tuple[str, object]] = []

    async def _store(self, segments, value):
        self.trace.append((join_path(segments), value))
        await super()._store(segments, value)

    def writes_to(self, suffix: str) -> list[object]:
        return [value for path, value in self.trace if path.endswith(suffix)]


@pytest.fixture(autouse=True)
def _test_settings():
    """Ensure test-safe settings for every test."""
    original = settings.model_copy()
    settings.store_backend = "memory"
    settings.catalog_provider = "static"
    settings.tmdb_api_token = ""
    settings.max_members = 10
    settings.room_code_length = 6
    settings.room_code_attempts = 5
    settings.page_spread = 100
    yield
    for field in type(settings).model_fields:
        setattr(settings, field, getattr(original, field))


@pytest_asyncio.fixture
async def store():
    """Fresh recording memory store per test."""
    s = RecordingStore()
    yield s
    await s.close()


def make_catalog(page_count: int = 110, per_page: int = 20) -> StaticCatalog:
    pages = generate_pages(page_count, per_page=per_page)
    return StaticCatalog(
        {page: [Card.model_validate(c) for c in cards] for page, cards in pages.items()}
    )


@pytest.fixture
def catalog():
    return make_catalog()


@pytest.fixture
def fake_redis():
    """Fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest_asyncio.fixture
async def redis_store(fake_redis):
    """Redis tree store on fakeredis, namespace ``test``."""
    store = RedisTreeStore(fake_redis, namespace="test")
    yield store
    await store.close()
    await fake_redis.flushall()


@pytest.fixture
def codes():
    """Deterministic room codes: AB12CD, then ROOM02, ROOM03, ..."""
    issued = iter(["AB12CD"] + [f"ROOM{i:02d}" for i in range(2, 100)])
    return lambda: next(issued)


@pytest.fixture
def make_session(store, catalog, codes):
    """Factory for RoomSessions on the shared store; all are detached on teardown."""
    sessions: list[RoomSession] = []

    def factory(participant_id: str, display_name: str | None = None, **kwargs) -> RoomSession:
        kwargs.setdefault("code_factory", codes)
        session = RoomSession(
            store, catalog, participant_id, display_name or participant_id.upper(), **kwargs
        )
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        session.detach_all()


@pytest.fixture
def broadcast_spy():
    """Capture (channel, event, data) for every broadcast."""
    events: list[dict] = []

    async def spy(channel, event, data):
        events.append({"channel": channel, "event": event, "data": data})

    with patch("reelroom.routes.sessions_api.broadcaster.broadcast", side_effect=spy):
        yield events


@pytest_asyncio.fixture
async def client(store, catalog):
    """FastAPI async test client backed by the memory store and static catalog."""
    from reelroom.registry import registry

    with (
        patch("reelroom.registry.get_store", return_value=store),
        patch("reelroom.registry.get_catalog", return_value=catalog),
        patch("reelroom.main.close_backends", new_callable=AsyncMock),
    ):
        from reelroom.main import app

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac

    await registry.close()


async def eventually(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it is true; for backends that deliver out of band."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)
