"""
Request scheduler: bounded in-flight provider work with a FIFO wait queue.
"""

import asyncio
import threading
from collections import deque
from typing import Deque, Optional

from faithqa.shared.config import settings
from faithqa.shared.exceptions import OverloadedError
from faithqa.shared.logging import get_logger

logger = get_logger(__name__)


class RequestScheduler:
    """
    Cooperative admission control.

    At most max_inflight holders at once; up to queue_capacity waiters are
    parked in arrival order. release() hands the slot directly to the oldest
    waiter, so admission order is strict FIFO.
    """

    def __init__(
        self,
        max_inflight: Optional[int] = None,
        queue_capacity: Optional[int] = None
    ):
        self.max_inflight = max_inflight if max_inflight is not None else settings.pipeline.concurrent_requests
        self.queue_capacity = queue_capacity if queue_capacity is not None else settings.pipeline.queue_capacity
        self._inflight = 0
        self._waiters: Deque[asyncio.Future] = deque()
        self._lock = threading.Lock()

    @property
    def inflight(self) -> int:
        return self._inflight

    @property
    def queued(self) -> int:
        return len(self._waiters)

    async def admit(self, timeout: Optional[float] = None):
        """
        Take a slot, waiting in line if none is free.

        Raises:
            OverloadedError: the wait queue is full
            asyncio.TimeoutError: no slot within timeout (the waiter is removed)
        """
        with self._lock:
            if self._inflight < self.max_inflight and not self._waiters:
                self._inflight += 1
                return
            if len(self._waiters) >= self.queue_capacity:
                logger.warning(
                    "Admission rejected: queue full",
                    extra={"action": "admit", "inflight": self._inflight, "queued": len(self._waiters)}
                )
                raise OverloadedError("Too many pending requests, retry shortly", retry_after_seconds=1)
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)

        try:
            if timeout is None:
                await waiter
            else:
                await asyncio.wait_for(asyncio.shield(waiter), timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            with self._lock:
                granted = waiter.done() and not waiter.cancelled()
                if not granted:
                    waiter.cancel()
                    try:
                        self._waiters.remove(waiter)
                    except ValueError:
                        pass
            if granted:
                # The slot arrived as we gave up; pass it on
                self.release()
            raise

    def release(self):
        """Return a slot, handing it to the oldest live waiter if any."""
        with self._lock:
            while self._waiters:
                waiter = self._waiters.popleft()
                if not waiter.done():
                    # Slot ownership moves to the waiter; inflight is unchanged
                    waiter.set_result(True)
                    return
            if self._inflight > 0:
                self._inflight -= 1
