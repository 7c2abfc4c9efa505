"""Single attempt execution with a wall-clock deadline."""

from __future__ import annotations

import logging as py_logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Protocol, TypeVar

from boundretry.config import DEFAULT_POLL_INTERVAL
from boundretry.errors import AttemptCancelled
from boundretry.pool import WorkerPool, default_pool

logger = py_logging.getLogger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class CancellationToken:
    """Per-attempt flag set by the runner once the attempt is abandoned."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to ``timeout`` seconds; True when cancellation was requested."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise AttemptCancelled("Attempt was cancelled after its deadline.")


class Operation(Protocol[T_co]):
    def __call__(self) -> T_co | None: ...


class CancellableOperation(Protocol[T_co]):
    def __call__(self, token: CancellationToken) -> T_co | None: ...


class AttemptStatus(str, Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAULTED = "faulted"


@dataclass(frozen=True)
class AttemptOutcome(Generic[T]):
    status: AttemptStatus
    value: T | None = None
    error: Exception | None = None
    elapsed: float = 0.0
    cancel_requested: bool = False

    @property
    def timed_out(self) -> bool:
        return self.status is AttemptStatus.TIMED_OUT

    @property
    def faulted(self) -> bool:
        return self.status is AttemptStatus.FAULTED


class AttemptRunner:
    def __init__(
        self,
        pool: WorkerPool | None = None,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._pool = pool
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    @property
    def pool(self) -> WorkerPool:
        if self._pool is None:
            self._pool = default_pool()
        return self._pool

    def run(self, operation: CancellableOperation[T], timeout: float) -> AttemptOutcome[T]:
        pool = self.pool
        token = CancellationToken()
        started = self._clock()
        future = pool.submit(operation, token)
        while not future.done():
            elapsed = self._clock() - started
            if elapsed >= timeout:
                return self._abandon(pool, future, token, timeout, elapsed)
            self._sleep(min(self.poll_interval, timeout - elapsed))

        elapsed = self._clock() - started
        if future.cancelled():
            # Pool shut down while the attempt was still queued.
            logger.debug("Operation cancelled before it started, elapsed: %.3fs", elapsed)
            return AttemptOutcome(AttemptStatus.TIMED_OUT, elapsed=elapsed, cancel_requested=True)
        error = future.exception()
        if error is None:
            return AttemptOutcome(AttemptStatus.COMPLETED, value=future.result(), elapsed=elapsed)
        if not isinstance(error, Exception):
            raise error
        return AttemptOutcome(AttemptStatus.FAULTED, error=error, elapsed=elapsed)

    def _abandon(
        self,
        pool: WorkerPool,
        future: Future[T | None],
        token: CancellationToken,
        timeout: float,
        elapsed: float,
    ) -> AttemptOutcome[T]:
        token.cancel()
        canceled = future.cancel()
        if not canceled:
            pool.abandon(future)
        logger.debug(
            "Operation timeout, canceled: %s, waitTime: %.3fs, elapsed: %.3fs",
            canceled,
            timeout,
            elapsed,
        )
        return AttemptOutcome(AttemptStatus.TIMED_OUT, elapsed=elapsed, cancel_requested=True)
