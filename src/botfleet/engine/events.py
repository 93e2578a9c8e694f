from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Literal

logger = logging.getLogger("botfleet.events")

EventKind = Literal["statusUpdate", "newLog"]


@dataclass(frozen=True)
class Event:
    kind: EventKind
    data: Any


class Subscription:
    """One observer's bounded view of a tenant's event stream.

    When the observer falls behind, the oldest queued event is dropped so
    publishing never blocks the control plane.
    """

    def __init__(self, channel: EventChannel, maxsize: int) -> None:
        self._channel = channel
        self._queue: asyncio.Queue[Event | None] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def push(self, event: Event | None) -> None:
        if self._queue.full():
            try:
                self._queue.get_nowait()
                self.dropped += 1
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(event)

    async def get(self) -> Event | None:
        """Next event, or None once the channel has been closed."""
        return await self._queue.get()

    def close(self) -> None:
        self._channel.unsubscribe(self)


class EventChannel:
    def __init__(self, *, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._subscribers: list[Subscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self._queue_size)
        if self._closed:
            sub.push(None)
        else:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        try:
            self._subscribers.remove(sub)
        except ValueError:
            return

    def publish(self, kind: EventKind, data: Any) -> None:
        if self._closed:
            return
        event = Event(kind=kind, data=data)
        for sub in list(self._subscribers):
            sub.push(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for sub in self._subscribers:
            sub.push(None)
        self._subscribers.clear()
