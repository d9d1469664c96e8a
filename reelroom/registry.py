"""Process-wide backends (Redis pool, store, catalog) and the HTTP session registry."""

from __future__ import annotations

import logging

import redis.asyncio as redis

from reelroom.catalog import Catalog, StaticCatalog, TmdbCatalog
from reelroom.config import settings
from reelroom.driver import Driver
from reelroom.redis_store import RedisTreeStore
from reelroom.store import MemoryTreeStore, TreeStore

logger = logging.getLogger(__name__)

_pool: redis.ConnectionPool | None = None
_store: TreeStore | None = None
_catalog: Catalog | None = None


def get_pool() -> redis.ConnectionPool:
    global _pool
    if _pool is None:
        _pool = redis.ConnectionPool.from_url(settings.redis_url, decode_responses=True)
    return _pool


def get_redis() -> redis.Redis:
    return redis.Redis(connection_pool=get_pool())


def get_store() -> TreeStore:
    global _store
    if _store is None:
        if settings.store_backend == "redis":
            _store = RedisTreeStore(get_redis(), settings.store_namespace)
        elif settings.store_backend == "memory":
            _store = MemoryTreeStore()
        else:
            raise ValueError(f"Unknown store backend: {settings.store_backend!r}")
        logger.info(f"Using {settings.store_backend} store")
    return _store


def get_catalog() -> Catalog:
    global _catalog
    if _catalog is None:
        if settings.catalog_provider == "static":
            _catalog = StaticCatalog.from_file(settings.static_catalog_path)
        elif settings.catalog_provider == "tmdb":
            _catalog = TmdbCatalog()
        else:
            raise ValueError(f"Unknown catalog provider: {settings.catalog_provider!r}")
    return _catalog


async def close_backends() -> None:
    global _pool, _store, _catalog
    await registry.close()
    if _store is not None:
        await _store.close()
        _store = None
    if _catalog is not None:
        await _catalog.aclose()
        _catalog = None
    if _pool is not None:
        await _pool.aclose()
        _pool = None


class SessionRegistry:
    """One Driver per participant id for the HTTP service."""

    def __init__(self) -> None:
        self._drivers: dict[str, Driver] = {}

    def get(self, participant_id: str) -> Driver | None:
        return self._drivers.get(participant_id)

    def open(self, participant_id: str) -> Driver:
        driver = self._drivers.get(participant_id)
        if driver is None:
            driver = Driver(get_store(), get_catalog())
            self._drivers[participant_id] = driver
        return driver

    async def discard(self, participant_id: str) -> None:
        driver = self._drivers.pop(participant_id, None)
        if driver is not None:
            await driver.close()

    async def close(self) -> None:
        for participant_id in list(self._drivers):
            await self.discard(participant_id)

    def __len__(self) -> int:
        return len(self._drivers)


registry = SessionRegistry()
