"""Admission control for sandbox jobs.

An ``AdmissionQueue`` bounds how many jobs may hold an execution slot at
once. Callers that find the queue full wait in strict FIFO order; a released
slot is handed straight to the oldest waiter, so ``active`` never drops and
rises again in between.

Usage:
    queue = AdmissionQueue(max_concurrency=4)

    async with queue.slot():
        ...

    # or, when the slot must outlive the current block:
    ticket = await queue.acquire()
    try:
        ...
    finally:
        ticket.release()
"""

import asyncio
import itertools
import logging
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

_logger = logging.getLogger("playground.sandbox.admission")

_ticket_ids = itertools.count(1)


class AdmissionTicket:
    """One occupied slot. Releasing a ticket more than once is a no-op."""

    def __init__(self, queue: "AdmissionQueue") -> None:
        self.id = next(_ticket_ids)
        self._queue = queue
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._queue._release_slot()

    def __repr__(self) -> str:
        return f"AdmissionTicket(id={self.id}, released={self._released})"


class AdmissionQueue:
    """Counting semaphore with FIFO waiters and observable counters.

    All mutation happens on the event loop thread, so no lock is needed.
    """

    def __init__(self, max_concurrency: int = 4, name: str = "default") -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.name = name
        self._limit = max_concurrency
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    def stats(self) -> dict[str, int]:
        return {"active": self._active, "queued": self.queued, "limit": self._limit}

    async def acquire(self) -> AdmissionTicket:
        """Wait for a free slot and return the ticket that owns it."""
        if self._active < self._limit and not self.queued:
            self._active += 1
            return AdmissionTicket(self)

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        _logger.debug("admission.wait queue=%s active=%d queued=%d", self.name, self._active, self.queued)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was handed over just before the cancellation landed.
                self._release_slot()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise
        return AdmissionTicket(self)

    def _release_slot(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Ownership moves to the waiter; active stays the same.
                waiter.set_result(None)
                return
        if self._active <= 0:
            _logger.error("admission.release without holder queue=%s", self.name)
            return
        self._active -= 1

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[AdmissionTicket]:
        ticket = await self.acquire()
        try:
            yield ticket
        finally:
            ticket.release()
