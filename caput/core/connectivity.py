"""Online/offline state driven by platform connectivity events."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from caput.core.bus import ConnectivityChanged, EventBus
from caput.utils.logging import get_logger

log = get_logger(__name__)

OnlineCallback = Callable[[], Awaitable[Any]]


class ConnectivityMonitor:
    """Tracks connectivity. No polling: state changes only via the handlers.

    Going offline only flips the flag; in-flight work is left alone.
    Coming back online runs ``on_online`` (queue drainage).
    """

    def __init__(
        self,
        on_online: OnlineCallback | None = None,
        bus: EventBus | None = None,
        offline: bool = False,
    ) -> None:
        self._offline = offline
        self._on_online = on_online
        self._bus = bus

    @property
    def is_offline(self) -> bool:
        return self._offline

    def set_online_callback(self, callback: OnlineCallback) -> None:
        self._on_online = callback

    async def handle_offline(self) -> None:
        if self._offline:
            return
        self._offline = True
        log.warning("connectivity_lost")
        await self._publish(online=False)

    async def handle_online(self) -> None:
        if not self._offline:
            return
        self._offline = False
        log.info("connectivity_restored")
        await self._publish(online=True)
        if self._on_online is not None:
            try:
                await self._on_online()
            except Exception:
                log.exception("online_callback_failed")

    async def _publish(self, online: bool) -> None:
        if self._bus is not None:
            await self._bus.publish(ConnectivityChanged(data={"online": online}))
