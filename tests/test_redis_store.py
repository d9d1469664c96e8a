"""Tests for the Redis tree store against fakeredis."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from reelroom.errors import StoreError
from reelroom.redis_store import RedisTreeStore
from reelroom.store import ChildListener
from tests.conftest import eventually

pytestmark = pytest.mark.asyncio


class TestRedisReadWrite:
    async def test_leaves_are_hash_fields(self, redis_store, fake_redis):
        await redis_store.write("rooms/AB12CD", {"status": "waiting", "createdAt": 5})
        fields = await fake_redis.hgetall("test:tree")
        assert fields == {
            "rooms/AB12CD/status": json.dumps("waiting"),
            "rooms/AB12CD/createdAt": "5",
        }

    async def test_read_rebuilds_subtree(self, redis_store):
        await redis_store.write("rooms/AB12CD", {"status": "waiting"})
        await redis_store.write("rooms/AB12CD/members/u1", {"displayName": "Ann", "host": True})
        snap = await redis_store.read_once("rooms/AB12CD")
        assert snap.value == {
            "status": "waiting",
            "members": {"u1": {"displayName": "Ann", "host": True}},
        }
        assert (await redis_store.read_once("rooms/AB12CD/status")).value == "waiting"

    async def test_write_replaces_subtree(self, redis_store):
        await redis_store.write("rooms/X/members", {"u1": {"host": True}, "u2": {"host": False}})
        await redis_store.write("rooms/X/members", {"u3": {"host": True}})
        snap = await redis_store.read_once("rooms/X/members")
        assert [c.key for c in snap.children()] == ["u3"]

    async def test_delete_subtree(self, redis_store):
        await redis_store.write("rooms/X", {"status": "waiting", "votes": {"42": {"u1": True}}})
        await redis_store.delete("rooms/X")
        assert not await redis_store.exists("rooms/X")
        assert not await redis_store.exists("rooms/X/votes/42/u1")

    async def test_prefix_does_not_leak_between_siblings(self, redis_store):
        await redis_store.write("rooms/AB", {"status": "waiting"})
        await redis_store.write("rooms/ABC", {"status": "swiping"})
        assert (await redis_store.read_once("rooms/AB")).value == {"status": "waiting"}

    async def test_every_write_publishes(self, redis_store, fake_redis):
        pubsub = fake_redis.pubsub()
        await pubsub.subscribe("test:changes")
        await redis_store.write("rooms/X/status", "swiping")

        message = None
        for _ in range(10):
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
            if message:
                break
        assert json.loads(message["data"]) == {"path": "rooms/X/status", "value": "swiping"}
        await pubsub.aclose()

    async def test_publish_rides_the_write_transaction(self, redis_store, fake_redis):
        pubsub = fake_redis.pubsub()
        await pubsub.subscribe("test:changes")
        with patch.object(fake_redis, "publish", wraps=fake_redis.publish) as direct:
            await redis_store.write("rooms/X/status", "waiting")
            await redis_store.write("rooms/X/status", "swiping")
        direct.assert_not_called()

        values = []
        for _ in range(20):
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
            if message:
                values.append(json.loads(message["data"])["value"])
            if len(values) == 2:
                break
        assert values == ["waiting", "swiping"]
        await pubsub.aclose()

    async def test_transport_failure_is_store_error(self, fake_redis):
        store = RedisTreeStore(fake_redis, namespace="test")
        store._redis = AsyncMock()
        store._redis.hget.side_effect = RedisConnectionError("down")
        with pytest.raises(StoreError):
            await store.read_once("rooms/X")


class TestRedisSubscriptions:
    async def test_value_subscription_follows_writes(self, redis_store):
        seen = []
        await redis_store.subscribe_value("rooms/X/status", seen.append)
        await redis_store.write("rooms/X/status", "waiting")
        await redis_store.write("rooms/X/status", "swiping")
        await eventually(lambda: len(seen) == 3)
        assert seen == [None, "waiting", "swiping"]

    async def test_two_stores_share_the_feed(self, fake_redis):
        writer = RedisTreeStore(fake_redis, namespace="test")
        reader = RedisTreeStore(fake_redis, namespace="test")
        try:
            members = []
            await reader.subscribe_children(
                "rooms/X/members", ChildListener(on_added=lambda k, v: members.append(k))
            )
            await writer.write("rooms/X/members/u2", {"host": False})
            await writer.write("rooms/X/members/u1", {"host": True})
            await eventually(lambda: len(members) == 2)
            assert members == ["u2", "u1"]
        finally:
            await reader.close()
            await writer.close()
