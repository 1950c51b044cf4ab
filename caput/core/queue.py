"""Offline request queue persisted in the cache store."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable
from uuid import uuid4

from caput.core.cache import CacheStore
from caput.core.sinks import NotificationSink, emit
from caput.models import QueuedRequest
from caput.utils.logging import get_logger

log = get_logger(__name__)

OFFLINE_QUEUE_KEY = "caput_offline_queue"

ReplayFn = Callable[[QueuedRequest], Awaitable[Any]]


class OfflineQueue:
    """Deferred pipeline stages awaiting connectivity.

    The whole queue is stored as one blob under a fixed key. Every mutation
    is a read-modify-write of that blob done under ``_lock``, so an enqueue
    from the pipeline cannot interleave with a drain's remove or update.
    """

    def __init__(
        self,
        cache: CacheStore,
        max_retries: int = 5,
        ttl_minutes: float = 7 * 24 * 60,
        notifier: NotificationSink | None = None,
    ) -> None:
        self._cache = cache
        self._max_retries = max_retries
        self._ttl_minutes = ttl_minutes
        self._notifier = notifier
        self._processing = False
        self._lock = asyncio.Lock()

    @property
    def is_processing(self) -> bool:
        return self._processing

    async def list(self) -> list[QueuedRequest]:
        raw = await self._cache.get(OFFLINE_QUEUE_KEY) or []
        return [QueuedRequest.from_dict(item) for item in raw]

    async def _save(self, requests: list[QueuedRequest]) -> None:
        if not requests:
            await self._cache.delete(OFFLINE_QUEUE_KEY)
            return
        await self._cache.set(
            OFFLINE_QUEUE_KEY,
            [r.to_dict() for r in requests],
            ttl_minutes=self._ttl_minutes,
        )

    async def enqueue(self, request: QueuedRequest) -> QueuedRequest:
        async with self._lock:
            requests = await self.list()
            requests.append(request)
            await self._save(requests)
        log.info(
            "request_queued",
            request_id=request.id,
            goal_id=request.goal_id,
            action=request.original_action,
        )
        return request

    async def remove(self, request_id: str) -> bool:
        async with self._lock:
            requests = await self.list()
            kept = [r for r in requests if r.id != request_id]
            if len(kept) == len(requests):
                return False
            await self._save(kept)
            return True

    async def update(self, request: QueuedRequest) -> None:
        async with self._lock:
            requests = await self.list()
            await self._save([request if r.id == request.id else r for r in requests])

    async def has_goal(self, goal_id: str, exclude: str | None = None) -> bool:
        return any(
            r.goal_id == goal_id and r.id != exclude for r in await self.list()
        )

    async def drain(self, replay: ReplayFn) -> dict[str, int]:
        """Replay every queued request once.

        Only one drain runs at a time; a call made while another is in
        progress returns immediately with zero counts.
        """
        counts = {"replayed": 0, "failed": 0, "dropped": 0}
        if self._processing:
            log.debug("queue_drain_already_running")
            return counts

        self._processing = True
        try:
            pending = await self.list()
            if pending:
                log.info("queue_drain_started", pending=len(pending))
            for request in pending:
                try:
                    await replay(request)
                except Exception as e:
                    await self._record_failure(request, e, counts)
                else:
                    await self.remove(request.id)
                    counts["replayed"] += 1
                    log.info("queued_request_replayed", request_id=request.id)
        finally:
            self._processing = False
        return counts

    async def _record_failure(
        self, request: QueuedRequest, error: Exception, counts: dict[str, int]
    ) -> None:
        request.retries += 1
        if request.retries >= self._max_retries:
            await self.remove(request.id)
            counts["dropped"] += 1
            log.warning(
                "queued_request_dropped",
                request_id=request.id,
                retries=request.retries,
                error=str(error),
            )
            if self._notifier is not None:
                notifier = self._notifier
                await emit("notification", lambda: notifier.notify(
                    f"Deferred {request.original_action} for goal {request.goal_id} "
                    f"dropped after {request.retries} attempts: {error}",
                    "error",
                ))
            return
        await self.update(request)
        counts["failed"] += 1
        log.warning(
            "queued_request_retry_failed",
            request_id=request.id,
            retries=request.retries,
            error=str(error),
        )


def new_request_id() -> str:
    return uuid4().hex[:12]
