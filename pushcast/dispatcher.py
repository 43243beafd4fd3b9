"""Fan-out of one payload to every registered subscription."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from typing import Coroutine, Optional

import anyio

from .aggregator import ResultAggregator
from .blocking import to_thread
from .credentials import VapidCredentials
from .metrics import BROADCAST_LAT, BROADCASTS, DELIVERIES
from .models import BroadcastResult, DeliveryOutcome, JobState, Subscription
from .registry import SubscriptionRegistry
from .transport import DeliveryTransport

logger = logging.getLogger(__name__)


class BroadcastHandle:
    """Caller-side view of a dispatched broadcast job."""

    def __init__(
        self,
        job_id: str,
        size: int,
        aggregator: ResultAggregator,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.job_id = job_id
        self.size = size
        self.aggregator = aggregator
        self.started_at = time.monotonic()
        self.finished_at: Optional[float] = None
        self._loop = loop
        self._finished: asyncio.Future[BroadcastResult] = loop.create_future()
        aggregator.add_done_callback(self._on_complete)

    def _on_complete(self, result: BroadcastResult) -> None:
        self.finished_at = time.monotonic()
        self._loop.call_soon_threadsafe(self._resolve, result)

    def _resolve(self, result: BroadcastResult) -> None:
        if not self._finished.done():
            self._finished.set_result(result)

    @property
    def state(self) -> JobState:
        return self.aggregator.state

    def done(self) -> bool:
        return self.aggregator.state is JobState.COMPLETED

    @property
    def result(self) -> Optional[BroadcastResult]:
        return self.aggregator.result() if self.done() else None

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    async def wait(self) -> BroadcastResult:
        return await asyncio.shield(self._finished)


class BroadcastDispatcher:
    """Sends a payload to a registry snapshot, one task per subscription.

    ``dispatch`` must be called from the event loop and returns as soon as the
    tasks are spawned. Deliveries run on worker threads bounded by a
    capacity limiter shared by every broadcast of this dispatcher. A
    separate reporter task logs the tally once the job completes.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        transport: DeliveryTransport,
        credentials: VapidCredentials,
        *,
        concurrency: int = 64,
        history: int = 50,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.credentials = credentials
        self.concurrency = concurrency
        self._limiter: anyio.CapacityLimiter | None = None
        self._tasks: set[asyncio.Task] = set()
        self._reporters: set[asyncio.Task] = set()
        self._recent: OrderedDict[str, BroadcastHandle] = OrderedDict()
        self._history = history

    def _get_limiter(self) -> anyio.CapacityLimiter:
        # created lazily so it binds to the running event loop
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(self.concurrency)
        return self._limiter

    def dispatch(self, payload: bytes) -> BroadcastHandle:
        loop = asyncio.get_running_loop()
        snapshot = self.registry.snapshot()
        aggregator = ResultAggregator(len(snapshot))
        handle = BroadcastHandle(uuid.uuid4().hex, len(snapshot), aggregator, loop)

        for subscription in snapshot:
            self._spawn(self._deliver_one(handle, subscription, payload), self._tasks)
        aggregator.start()
        self._spawn(self._report(handle), self._reporters)

        self._remember(handle)
        BROADCASTS.inc()
        logger.info(
            "Broadcast %s dispatched to %d subscriptions", handle.job_id, handle.size
        )
        return handle

    def get(self, job_id: str) -> Optional[BroadcastHandle]:
        return self._recent.get(job_id)

    def _spawn(self, coro: Coroutine, group: set[asyncio.Task]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        group.add(task)
        task.add_done_callback(group.discard)
        return task

    def _remember(self, handle: BroadcastHandle) -> None:
        self._recent[handle.job_id] = handle
        while len(self._recent) > self._history:
            self._recent.popitem(last=False)

    async def _deliver_one(
        self,
        handle: BroadcastHandle,
        subscription: Subscription,
        payload: bytes,
    ) -> None:
        try:
            outcome = await to_thread(
                self.transport.deliver,
                subscription,
                payload,
                self.credentials,
                limiter=self._get_limiter(),
            )
        except asyncio.CancelledError:
            self._record(handle, subscription, DeliveryOutcome.failure("cancelled"))
            raise
        except Exception as exc:  # noqa: BLE001
            outcome = DeliveryOutcome.failure(repr(exc))
        self._record(handle, subscription, outcome)

    def _record(
        self,
        handle: BroadcastHandle,
        subscription: Subscription,
        outcome: DeliveryOutcome,
    ) -> None:
        if outcome.ok:
            DELIVERIES.labels("success").inc()
        else:
            DELIVERIES.labels("failure").inc()
            logger.warning(
                "Failed to send notification to endpoint %s: %s",
                subscription.endpoint,
                outcome.reason,
            )
        handle.aggregator.record(outcome)

    async def _report(self, handle: BroadcastHandle) -> None:
        result = await handle.wait()
        duration = handle.duration or 0.0
        BROADCAST_LAT.observe(duration)
        logger.info(
            "Broadcast %s complete: sent to %d of %d subscriptions (%d failed) in %.2fs",
            handle.job_id,
            result.succeeded,
            result.total,
            result.failed,
            duration,
        )

    async def aclose(self, grace: float = 5.0) -> None:
        """Wait up to ``grace`` seconds for in-flight jobs, then cancel the rest.

        Only deliveries are cancelled. Reporters are awaited so every job
        still logs its final tally.
        """

        pending = list(self._tasks | self._reporters)
        if not pending:
            return
        await asyncio.wait(pending, timeout=grace)
        still_running = [task for task in self._tasks if not task.done()]
        if still_running:
            logger.warning("Cancelling %d unfinished deliveries", len(still_running))
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
        if self._reporters:
            await asyncio.gather(*list(self._reporters), return_exceptions=True)
