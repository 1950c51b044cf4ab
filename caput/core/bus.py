"""In-process pub/sub for trace, usage, notification and connectivity events."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Coroutine
from uuid import uuid4

from caput.utils.logging import get_logger

log = get_logger(__name__)


class EventType(str, Enum):
    TRACE = "agent.trace"
    USAGE = "agent.usage"
    NOTIFICATION = "agent.notification"
    CONNECTIVITY = "connectivity.changed"


@dataclass
class Event:
    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TraceEmitted(Event):
    type: EventType = field(default=EventType.TRACE, init=False)


@dataclass
class UsageUpdated(Event):
    type: EventType = field(default=EventType.USAGE, init=False)


@dataclass
class NotificationRaised(Event):
    type: EventType = field(default=EventType.NOTIFICATION, init=False)


@dataclass
class ConnectivityChanged(Event):
    type: EventType = field(default=EventType.CONNECTIVITY, init=False)


Handler = Callable[[Event], Coroutine[Any, Any, None]]


@dataclass
class _Subscription:
    handler: Handler
    queue: asyncio.Queue[Event]
    task: asyncio.Task[None] | None = None


class EventBus:
    """Each subscriber gets its own bounded queue and consumer task.

    Publishing never blocks: when a subscriber's queue is full the event
    is dropped for that subscriber only.
    """

    def __init__(self, max_queue_size: int = 256) -> None:
        self._subs: dict[EventType, list[_Subscription]] = {}
        self._max_queue_size = max_queue_size
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        sub = _Subscription(handler, asyncio.Queue(maxsize=self._max_queue_size))
        self._subs.setdefault(event_type, []).append(sub)
        if self._running:
            self._spawn(event_type, sub)

    async def publish(self, event: Event) -> int:
        """Queue ``event`` for every subscriber of its type. Returns how many accepted it."""
        accepted = 0
        for sub in self._subs.get(event.type, []):
            try:
                sub.queue.put_nowait(event)
                accepted += 1
            except asyncio.QueueFull:
                log.warning(
                    "event_dropped",
                    event_type=event.type.value,
                    handler=sub.handler.__qualname__,
                )
        return accepted

    async def start(self) -> None:
        self._running = True
        for event_type, subs in self._subs.items():
            for sub in subs:
                self._spawn(event_type, sub)

    def _spawn(self, event_type: EventType, sub: _Subscription) -> None:
        if sub.task is None or sub.task.done():
            sub.task = asyncio.create_task(
                self._consume(sub, event_type),
                name=f"bus-{event_type.value}-{sub.handler.__qualname__}",
            )

    async def _consume(self, sub: _Subscription, event_type: EventType) -> None:
        while True:
            event = await sub.queue.get()
            try:
                await sub.handler(event)
            except Exception:
                log.exception("event_handler_failed", event_type=event_type.value)

    async def stop(self) -> None:
        self._running = False
        tasks = [s.task for subs in self._subs.values() for s in subs if s.task]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for subs in self._subs.values():
            for sub in subs:
                sub.task = None
