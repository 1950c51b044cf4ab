"""Fire-and-forget sinks for trace, usage and notification events.

Callers never see a sink failure: every delivery is wrapped by
:func:`emit`, which logs and swallows.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

from caput.core.bus import EventBus, NotificationRaised, TraceEmitted, UsageUpdated
from caput.models import TraceEvent
from caput.utils.logging import get_logger

log = get_logger(__name__)


class TraceSink(Protocol):
    async def trace(self, event: TraceEvent) -> None: ...


class UsageSink(Protocol):
    async def usage(self, tokens: int, cost: float, tool_calls: int) -> None: ...


class NotificationSink(Protocol):
    async def notify(self, message: str, level: str = "info") -> None: ...


async def emit(sink_name: str, deliver: Callable[[], Awaitable[Any]]) -> None:
    try:
        await deliver()
    except Exception:
        log.exception("sink_delivery_failed", sink=sink_name)


class LogSink:
    """Writes every event to the structured log."""

    async def trace(self, event: TraceEvent) -> None:
        log.info(
            "trace",
            trace_event=event.event,
            tool=event.tool,
            status=event.status,
        )

    async def usage(self, tokens: int, cost: float, tool_calls: int) -> None:
        log.debug("usage_updated", tokens=tokens, cost=cost, tool_calls=tool_calls)

    async def notify(self, message: str, level: str = "info") -> None:
        log.info("notification", message=message, level=level)


class BusSink:
    """Publishes events onto the event bus for UI-side subscribers."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    async def trace(self, event: TraceEvent) -> None:
        await self._bus.publish(TraceEmitted(data={
            "event": event.event,
            "tool": event.tool,
            "status": event.status,
            "metadata": event.metadata,
            "timestamp": event.timestamp,
        }))

    async def usage(self, tokens: int, cost: float, tool_calls: int) -> None:
        await self._bus.publish(UsageUpdated(data={
            "tokens": tokens,
            "cost": cost,
            "tool_calls": tool_calls,
        }))

    async def notify(self, message: str, level: str = "info") -> None:
        await self._bus.publish(NotificationRaised(data={
            "message": message,
            "level": level,
        }))


class MultiSink:
    """Fans each event out to several sinks; one failing sink never starves the rest."""

    def __init__(self, *sinks: Any) -> None:
        self._sinks = sinks

    async def trace(self, event: TraceEvent) -> None:
        for sink in self._sinks:
            await emit(type(sink).__name__, lambda s=sink: s.trace(event))

    async def usage(self, tokens: int, cost: float, tool_calls: int) -> None:
        for sink in self._sinks:
            await emit(type(sink).__name__, lambda s=sink: s.usage(tokens, cost, tool_calls))

    async def notify(self, message: str, level: str = "info") -> None:
        for sink in self._sinks:
            await emit(type(sink).__name__, lambda s=sink: s.notify(message, level))
