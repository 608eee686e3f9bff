from __future__ import annotations

import asyncio
from dataclasses import dataclass


@dataclass(frozen=True)
class Event:
    type: str
    data: dict

    @property
    def key(self) -> str:
        return f"{self.type}:{self.data.get('instance_id', '')}"


class EventBus:
    """Fan-out of pipeline results; late subscribers get the latest per instance."""

    def __init__(self, queue_size: int = 50) -> None:
        self._lock = asyncio.Lock()
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[Event]] = set()
        self._latest: dict[str, Event] = {}

    async def subscribe(self, *, replay: bool = True) -> asyncio.Queue[Event]:
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._queue_size)
        async with self._lock:
            if replay:
                for event in self._latest.values():
                    _offer(queue, event)
            self._subscribers.add(queue)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[Event]) -> None:
        async with self._lock:
            self._subscribers.discard(queue)

    async def publish(self, event: Event) -> None:
        async with self._lock:
            self._latest[event.key] = event
            subscribers = list(self._subscribers)
        for queue in subscribers:
            _offer(queue, event)


def _offer(queue: asyncio.Queue[Event], event: Event) -> None:
    try:
        queue.put_nowait(event)
    except asyncio.QueueFull:
        _ = queue.get_nowait()
        queue.put_nowait(event)
