from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime, timezone

SUBSCRIBER_BACKLOG = 1000


class LogStream:
    def __init__(self, backlog: int = SUBSCRIBER_BACKLOG) -> None:
        self._subscribers: set[asyncio.Queue[dict[str, str]]] = set()
        self._lock = asyncio.Lock()
        self._backlog = backlog

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self) -> AsyncIterator[dict[str, str]]:
        queue: asyncio.Queue[dict[str, str]] = asyncio.Queue(maxsize=self._backlog)
        async with self._lock:
            self._subscribers.add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            async with self._lock:
                self._subscribers.discard(queue)

    async def publish(self, message: str, level: str = "info") -> None:
        async with self._lock:
            self.publish_nowait(message, level=level)

    def publish_nowait(self, message: str, level: str = "info") -> None:
        """Fan an event out without waiting; subscribers that are full miss it."""
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
        }
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                continue
