"""In-process async fan-out of notifications to live subscribers."""

from __future__ import annotations

import asyncio
from collections import defaultdict

ALL_SOURCES = "*"


class EventBus:
    """Pub/sub backed by one asyncio.Queue per subscriber.

    Keys are automation names.  Subscribing to ``ALL_SOURCES`` receives the
    events of every key.  Queues are unbounded, so publishing never waits on
    a slow subscriber.
    """

    def __init__(self) -> None:
        self._queues: dict[str, list[asyncio.Queue]] = defaultdict(list)

    def subscribe(self, key: str = ALL_SOURCES) -> asyncio.Queue:
        """Return a queue that will receive all future events for *key*."""
        q: asyncio.Queue = asyncio.Queue()
        self._queues[key].append(q)
        return q

    def unsubscribe(self, key: str, q: asyncio.Queue) -> None:
        try:
            self._queues[key].remove(q)
        except ValueError:
            pass

    def subscriber_count(self, key: str = ALL_SOURCES) -> int:
        return len(self._queues.get(key, []))

    async def publish(self, key: str, event: dict) -> None:
        """Deliver *event* to subscribers of *key* and to wildcard subscribers."""
        targets = list(self._queues.get(key, []))
        if key != ALL_SOURCES:
            targets += self._queues.get(ALL_SOURCES, [])
        for q in targets:
            q.put_nowait(event)
