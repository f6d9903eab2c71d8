"""
Bounded worker pool shared by batch jobs and streaming sessions.

The pool is the only thing limiting how many heavy transcription calls run
at once, independent of how many jobs are merely queued.
"""

import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Permit:
    """One held unit of the pool's concurrency bound."""
    id: int
    owner: str


class WorkerPool:
    """
    Counting permit gate with `max_workers` permits.

    Prefer `slot()`, which releases on every exit path. `acquire()` and
    `release()` are exposed for callers that cannot use a context manager;
    each successful acquire must be released exactly once.
    """

    def __init__(self, max_workers: int):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, but was {max_workers}")
        self._max_workers = max_workers
        self._semaphore = asyncio.Semaphore(max_workers)
        self._held: Set[Permit] = set()
        self._ids = itertools.count(1)
        self._waiting = 0
        logger.info(f"Worker pool initialized with {max_workers} permits")

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def in_use(self) -> int:
        """Number of permits currently held."""
        return len(self._held)

    @property
    def available(self) -> int:
        return self._max_workers - len(self._held)

    @property
    def waiting(self) -> int:
        """Number of callers suspended in acquire()."""
        return self._waiting

    async def acquire(self, owner: str = "") -> Permit:
        """
        Wait for a free permit.

        Cancelling the waiting task abandons the attempt without taking a permit.
        """
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1

        permit = Permit(id=next(self._ids), owner=owner)
        self._held.add(permit)
        logger.debug(f"Worker slot acquired by {owner or 'anonymous'} ({self.in_use}/{self._max_workers} in use)")
        return permit

    def release(self, permit: Permit) -> None:
        """Return a permit. Releasing a permit that is not held is an error."""
        if permit not in self._held:
            raise RuntimeError(f"Permit {permit.id} ({permit.owner}) is not held by this pool")
        self._held.discard(permit)
        self._semaphore.release()
        logger.debug(f"Worker slot released by {permit.owner or 'anonymous'} ({self.in_use}/{self._max_workers} in use)")

    @asynccontextmanager
    async def slot(self, owner: str = "") -> AsyncIterator[Permit]:
        """Hold one permit for the duration of the block."""
        permit = await self.acquire(owner)
        try:
            yield permit
        finally:
            self.release(permit)
