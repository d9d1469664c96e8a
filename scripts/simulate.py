"""Run a whole room in-process and print the store write trace.

Usage:
    python -m scripts.simulate                  # 3 participants, match on the first card
    python -m scripts.simulate --members 5 --restart
    python -m scripts.simulate --redis          # use REDIS_URL instead of memory
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from reelroom.catalog import StaticCatalog
from reelroom.config import settings
from reelroom.driver import Driver
from reelroom.models import Card
from reelroom.redis_store import RedisTreeStore
from reelroom.store import MemoryTreeStore, TreeStore, join_path
from scripts.seed_catalog import generate_pages


class TracingStore(MemoryTreeStore):
    """Memory store that remembers every accepted write, in order."""

    def __init__(self) -> None:
        super().__init__()
        self.trace: list[tuple[str, object]] = []

    async def _store(self, segments, value):
        self.trace.append((join_path(segments), value))
        await super()._store(segments, value)


def build_catalog(page_count: int) -> StaticCatalog:
    pages = generate_pages(page_count)
    return StaticCatalog(
        {page: [Card.model_validate(c) for c in cards] for page, cards in pages.items()}
    )


async def simulate(members: int, restart: bool, use_redis: bool) -> None:
    store: TreeStore
    if use_redis:
        import redis.asyncio as redis

        store = RedisTreeStore(redis.Redis.from_url(settings.redis_url, decode_responses=True))
    else:
        store = TracingStore()
    catalog = build_catalog(settings.page_spread + 10)

    drivers = [Driver(store, catalog) for _ in range(members)]
    for i, driver in enumerate(drivers):
        await driver.create_session(f"u{i + 1}", f"Viewer {i + 1}")
        uid = f"u{i + 1}"
        driver.on_any(lambda event, payload, uid=uid: print(f"  [{uid}] {event} {payload}"))

    host = drivers[0]
    created = await host.create_room()
    code = created.value
    print(f"Room {code} created by u1")
    for driver in drivers[1:]:
        outcome = await driver.join_room(code)
        print(f"  join: {outcome.ok} {outcome.error or ''}")
    await store.settle()

    print(f"Start: {(await host.start_swiping()).value}")
    await store.settle()

    card_id = host.session.deck.cards[0].id
    print(f"Everyone votes Yes on {card_id}")
    for driver in drivers:
        await driver.cast_yes(card_id)
        await store.settle()

    if restart:
        print(f"Restart: {(await host.restart_from_match()).value}")
        await store.settle()

    for i, driver in enumerate(drivers):
        session = driver.session
        print(
            f"u{i + 1}: status trace {[s.value for s in session.status_trace]}, "
            f"deck {len(session.deck)} cards, pages {session.deck.pages}"
        )

    if isinstance(store, TracingStore):
        print("\nStore writes:")
        for path, value in store.trace:
            print(f"  {path} = {value!r}")

    for driver in drivers:
        await driver.close()
    await store.close()


def main():
    parser = argparse.ArgumentParser(description="Simulate a room end to end")
    parser.add_argument("--members", type=int, default=3, help="Participants (default: 3)")
    parser.add_argument("--restart", action="store_true", help="Restart after the match")
    parser.add_argument("--redis", action="store_true", help="Use Redis instead of memory")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    asyncio.run(simulate(args.members, args.restart, args.redis))


if __name__ == "__main__":
    main()
