from __future__ import annotations

import threading
from typing import Callable, Optional

from .models import BroadcastResult, DeliveryOutcome, JobState

DoneCallback = Callable[[BroadcastResult], None]


class ResultAggregator:
    """Counts the outcomes of one broadcast job and signals when all are in.

    ``record`` may be called from any thread. Completion fires once, after
    ``start`` has been called and ``expected`` outcomes have been recorded.
    """

    def __init__(self, expected: int) -> None:
        if expected < 0:
            raise ValueError("expected must be >= 0")
        self.expected = expected
        self._lock = threading.Lock()
        self._succeeded = 0
        self._failed = 0
        self._state = JobState.DISPATCHED
        self._done = threading.Event()
        self._callbacks: list[DoneCallback] = []

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def pending(self) -> int:
        with self._lock:
            return self.expected - self._succeeded - self._failed

    def start(self) -> None:
        """Mark all delivery tasks as spawned."""

        with self._lock:
            if self._state is not JobState.DISPATCHED:
                raise RuntimeError(f"cannot start job in state {self._state.value}")
            self._state = JobState.IN_FLIGHT
            fire = self._maybe_complete()
        if fire:
            self._fire()

    def record(self, outcome: DeliveryOutcome) -> None:
        with self._lock:
            if self._state is JobState.COMPLETED:
                raise RuntimeError("outcome recorded after job completed")
            if self._succeeded + self._failed >= self.expected:
                raise RuntimeError("more outcomes recorded than deliveries spawned")
            if outcome.ok:
                self._succeeded += 1
            else:
                self._failed += 1
            fire = self._maybe_complete()
        if fire:
            self._fire()

    def _maybe_complete(self) -> bool:
        # caller holds the lock
        if self._state is not JobState.IN_FLIGHT:
            return False
        if self._succeeded + self._failed < self.expected:
            return False
        self._state = JobState.COMPLETED
        return True

    def _fire(self) -> None:
        self._done.set()
        result = self.result()
        with self._lock:
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(result)

    def add_done_callback(self, callback: DoneCallback) -> None:
        """Run ``callback(result)`` on completion, immediately if already done."""

        with self._lock:
            if self._state is not JobState.COMPLETED:
                self._callbacks.append(callback)
                return
        callback(self.result())

    def result(self) -> BroadcastResult:
        with self._lock:
            return BroadcastResult(succeeded=self._succeeded, failed=self._failed)

    def wait(self, timeout: Optional[float] = None) -> Optional[BroadcastResult]:
        """Block until completion; returns None on timeout."""

        if not self._done.wait(timeout):
            return None
        return self.result()
