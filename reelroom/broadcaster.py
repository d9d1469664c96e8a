"""SSE broadcaster: session events fanned out to each participant's streams."""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from typing import AsyncGenerator


class Broadcaster:
    """In-process pub/sub using asyncio queues, keyed by channel.

    A channel is a participant id. Every open stream on a channel gets its own
    queue; broadcasting to a channel pushes to all of them.
    """

    def __init__(self, maxsize: int = 256) -> None:
        self.maxsize = maxsize
        self._subscribers: dict[str, list[asyncio.Queue[str]]] = defaultdict(list)

    async def subscribe(
        self, channel: str, keepalive_seconds: int = 15
    ) -> AsyncGenerator[str, None]:
        """Yield SSE-formatted strings for ``channel``, with comment keepalives."""
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self.maxsize)
        self._subscribers[channel].append(queue)
        try:
            while True:
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
                    yield data
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        except asyncio.CancelledError:
            pass
        finally:
            self._remove(channel, queue)

    async def broadcast(self, channel: str, event: str, data: dict | str) -> None:
        payload = json.dumps(data) if isinstance(data, dict) else data
        message = f"event: {event}\ndata: {payload}\n\n"

        dead_queues: list[asyncio.Queue[str]] = []
        for queue in self._subscribers.get(channel, []):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                dead_queues.append(queue)

        for queue in dead_queues:
            self._remove(channel, queue)

    def _remove(self, channel: str, queue: asyncio.Queue[str]) -> None:
        queues = self._subscribers.get(channel)
        if queues and queue in queues:
            queues.remove(queue)
            if not queues:
                del self._subscribers[channel]

    def subscriber_count(self, channel: str | None = None) -> int:
        if channel is not None:
            return len(self._subscribers.get(channel, []))
        return sum(len(queues) for queues in self._subscribers.values())


# Global broadcaster instance
broadcaster = Broadcaster()
