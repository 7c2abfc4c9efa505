"""Bounded worker pool that runs retry attempts."""

from __future__ import annotations

import atexit
import logging as py_logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

from boundretry.errors import BoundRetryError, ErrorCode, InvalidConfiguration

logger = py_logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_WORKERS = 6


class WorkerPool:
    """Fixed-size pool shared by the executions that are handed it.

    A slot stays busy until the operation returns, including after its attempt
    was abandoned on timeout. Operations that ignore cancellation therefore keep
    their slot and, once every slot is held, later attempts wait in the queue
    and time out. ``abandoned`` reports how many such operations are still
    running.
    """

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS, *, name: str = "boundretry") -> None:
        if max_workers < 1:
            raise InvalidConfiguration(
                "Invalid worker pool size",
                hint="max_workers must be at least 1.",
            )
        self.max_workers = max_workers
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._in_flight = 0
        self._abandoned: set[Future[Any]] = set()
        self._closed = False

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def abandoned(self) -> int:
        with self._lock:
            return len(self._abandoned)

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, fn: Callable[..., T], /, *args: Any) -> Future[T]:
        with self._lock:
            if self._closed:
                raise BoundRetryError(
                    f"Worker pool is shut down: {self.name}",
                    code=ErrorCode.RUNTIME_ERROR,
                    hint="Create a new WorkerPool or use the default pool.",
                )
            self._in_flight += 1
        try:
            future = self._executor.submit(fn, *args)
        except RuntimeError as exc:
            with self._lock:
                self._in_flight -= 1
            raise BoundRetryError(
                f"Worker pool rejected the operation: {self.name}",
                code=ErrorCode.RUNTIME_ERROR,
            ) from exc
        future.add_done_callback(self._release)
        return future

    def abandon(self, future: Future[Any]) -> bool:
        """Mark a running operation as abandoned; False when it already finished."""
        with self._lock:
            if future.done():
                return False
            self._abandoned.add(future)
            abandoned = len(self._abandoned)
        logger.warning(
            "Operation abandoned while still running pool=%s abandoned=%s max_workers=%s",
            self.name,
            abandoned,
            self.max_workers,
        )
        return True

    def _release(self, future: Future[Any]) -> None:
        with self._lock:
            self._in_flight -= 1
            was_abandoned = future in self._abandoned
            self._abandoned.discard(future)
        if was_abandoned:
            error = None if future.cancelled() else future.exception()
            logger.debug(
                "Abandoned operation released its worker pool=%s error=%r",
                self.name,
                error,
            )

    def shutdown(self, *, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            abandoned = len(self._abandoned)
        if abandoned:
            logger.warning(
                "Shutting down pool=%s with %s abandoned operations still running",
                self.name,
                abandoned,
            )
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> WorkerPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=False)


_default_pool: WorkerPool | None = None
_default_lock = threading.Lock()


def default_pool() -> WorkerPool:
    """Process-wide pool used when an execution is not handed one."""
    global _default_pool
    with _default_lock:
        if _default_pool is None or _default_pool.closed:
            _default_pool = WorkerPool(name="boundretry-default")
            atexit.register(_default_pool.shutdown, wait=False)
        return _default_pool
