"""Redis-backed tree store with a shared PubSub change listener.

The tree is flattened into a single hash: one field per leaf path, JSON values::

    {namespace}:tree     HASH  "rooms/AB12CD/status" -> "\"waiting\""
    {namespace}:changes  CHANNEL  {"path": ..., "value": ...} per write

Every process that subscribes runs one listener task for the channel and fans
notifications out to its local subscriptions, so all observers apply writes in
the order Redis accepted the publishes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Iterator

import redis.asyncio as redis
from redis.exceptions import RedisError

from reelroom.config import settings
from reelroom.errors import StoreError
from reelroom.store import TreeStore, join_path, normalize, set_in, split_path

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = set("*?[]\\")


def _glob_escape(text: str) -> str:
    return "".join(f"\\{c}" if c in _GLOB_SPECIAL else c for c in text)


def _flatten(path: str, value: Any) -> Iterator[tuple[str, Any]]:
    if isinstance(value, dict):
        for key, child in value.items():
            yield from _flatten(f"{path}/{key}", child)
    elif value is not None:
        yield path, value


class RedisTreeStore(TreeStore):
    """Tree store persisted in one Redis hash."""

    transport_errors = (RedisError, OSError)

    def __init__(self, client: redis.Redis, namespace: str | None = None) -> None:
        super().__init__()
        self._redis = client
        self._namespace = namespace or settings.store_namespace
        self._pubsub = None
        self._listener_task: asyncio.Task | None = None

    @property
    def tree_key(self) -> str:
        return f"{self._namespace}:tree"

    @property
    def channel(self) -> str:
        return f"{self._namespace}:changes"

    # --- Backend hooks ---

    async def _load(self, segments):
        path = join_path(segments)
        raw = await self._redis.hget(self.tree_key, path)
        if raw is not None:
            return json.loads(raw)

        tree = None
        depth = len(segments)
        async for field, raw in self._redis.hscan_iter(
            self.tree_key, match=f"{_glob_escape(path)}/*"
        ):
            tree = set_in(tree, split_path(field)[depth:], normalize(json.loads(raw)))
        return tree

    async def _store(self, segments, value):
        path = join_path(segments)
        stale = [
            field
            async for field, _ in self._redis.hscan_iter(
                self.tree_key, match=f"{_glob_escape(path)}/*"
            )
        ]
        # A leaf sitting on an ancestor path would shadow the new subtree.
        ancestors = [join_path(segments[:i]) for i in range(1, len(segments))]
        leaves = {field: json.dumps(leaf) for field, leaf in _flatten(path, value)}

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hdel(self.tree_key, path, *ancestors, *stale)
            if leaves:
                pipe.hset(self.tree_key, mapping=leaves)
            pipe.publish(self.channel, json.dumps({"path": path, "value": value}))
            await pipe.execute()

    async def _publish(self, segments, value):
        # Published inside the _store transaction.
        pass

    async def _prepare_subscription(self):
        try:
            await self._ensure_listener()
        except self.transport_errors as exc:
            raise StoreError(f"change listener unavailable: {exc}") from exc

    # --- Shared PubSub ---

    async def _ensure_listener(self) -> None:
        if self._pubsub is None:
            self._pubsub = self._redis.pubsub()
            await self._pubsub.subscribe(self.channel)

        if self._listener_task is None or self._listener_task.done():
            self._listener_task = asyncio.create_task(self._listen())
            logger.info(f"Change listener started on {self.channel}")

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    change = json.loads(message["data"])
                    self._dispatch(split_path(change["path"]), normalize(change.get("value")))
                except (json.JSONDecodeError, KeyError, ValueError) as e:
                    logger.warning(f"Malformed change notification: {e}")
        except self.transport_errors as exc:
            logger.error(f"Change listener lost its connection: {exc}")
            self._pubsub = None
            self._fail_subscriptions(StoreError(f"change feed interrupted: {exc}"))

    async def close(self) -> None:
        await super().close()
        if self._listener_task is not None:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
            self._pubsub = None
