"""Retry controller: attempt sequencing, judgement and the public execute API."""

from __future__ import annotations

import logging as py_logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from boundretry.config import RetryPolicy, build_policy
from boundretry.errors import InvalidConfiguration, OperationFault
from boundretry.judgement import Judgement, should_retry
from boundretry.pool import WorkerPool
from boundretry.runner import (
    AttemptOutcome,
    AttemptRunner,
    CancellableOperation,
    CancellationToken,
    Operation,
)

logger = py_logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ExecutionState(Generic[T]):
    attempts_made: int = 0
    last_result: T | None = None


@dataclass(frozen=True)
class RetryReport(Generic[T]):
    value: T | None
    attempts: tuple[AttemptOutcome[T], ...]
    exhausted: bool

    @property
    def attempts_made(self) -> int:
        return len(self.attempts)


def _require_operation(operation: object) -> None:
    if operation is None:
        raise InvalidConfiguration(
            "Operation must not be None",
            hint="Configure an operation before executing.",
        )
    if not callable(operation):
        raise InvalidConfiguration(
            f"Operation must be callable, got {type(operation).__name__}",
        )


def _ignore_token(operation: Operation[T]) -> CancellableOperation[T]:
    def _call(token: CancellationToken) -> T | None:
        del token
        return operation()

    return _call


def run_with_report(
    operation: Operation[T] | CancellableOperation[T] | None,
    *,
    policy: RetryPolicy,
    judgements: Sequence[Judgement] = (),
    cancellable: bool = False,
    pool: WorkerPool | None = None,
    runner: AttemptRunner | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryReport[T]:
    _require_operation(operation)
    target = operation if cancellable else _ignore_token(operation)  # type: ignore[arg-type]
    checks = tuple(judgements)
    attempt_runner = runner or AttemptRunner(pool, poll_interval=policy.poll_interval)

    state: ExecutionState[T] = ExecutionState()
    outcomes: list[AttemptOutcome[T]] = []
    exhausted = False
    while state.attempts_made <= policy.max_retry_times:
        if state.attempts_made == 0:
            logger.debug("Operation: %s", state.attempts_made)
        else:
            logger.debug("Operation retry: %s/%s", state.attempts_made, policy.max_retry_times)
        outcome = attempt_runner.run(target, policy.max_operation_wait_time)  # type: ignore[arg-type]
        outcomes.append(outcome)
        if outcome.faulted:
            if policy.on_fault == "raise":
                raise OperationFault(
                    f"Operation failed on attempt {state.attempts_made}: {outcome.error}",
                    hint="Use on_fault='retry' to retry failed operations.",
                    attempt=state.attempts_made,
                ) from outcome.error
            logger.warning(
                "Operation failed on attempt %s, treating as no value: %r",
                state.attempts_made,
                outcome.error,
                exc_info=outcome.error,
            )
        state.last_result = outcome.value

        if not should_retry(state.last_result, checks):
            break
        state.attempts_made += 1
        if state.attempts_made > policy.max_retry_times:
            exhausted = True
            break
        if policy.retry_interval_time > 0:
            sleep(policy.retry_interval_time)

    logger.debug("done. attempts=%s exhausted=%s", len(outcomes), exhausted)
    return RetryReport(value=state.last_result, attempts=tuple(outcomes), exhausted=exhausted)


def run_with_retry(
    operation: Operation[T] | CancellableOperation[T] | None,
    *,
    policy: RetryPolicy,
    judgements: Sequence[Judgement] = (),
    cancellable: bool = False,
    pool: WorkerPool | None = None,
    runner: AttemptRunner | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T | None:
    """Run ``operation`` until no judgement asks for a retry or the budget runs out.

    Returns the last value produced, which is ``None`` when the final attempt
    timed out. Exhausting the budget is not an error.
    """
    report: RetryReport[T] = run_with_report(
        operation,
        policy=policy,
        judgements=judgements,
        cancellable=cancellable,
        pool=pool,
        runner=runner,
        sleep=sleep,
    )
    return report.value


@dataclass(frozen=True)
class RetryPlan(Generic[T]):
    """Finished, immutable execution request produced by :class:`Retry`."""

    operation: Operation[T] | CancellableOperation[T]
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    judgements: tuple[Judgement, ...] = ()
    cancellable: bool = False
    pool: WorkerPool | None = None

    def run(self) -> RetryReport[T]:
        return run_with_report(
            self.operation,
            policy=self.policy,
            judgements=self.judgements,
            cancellable=self.cancellable,
            pool=self.pool,
        )

    def execute(self) -> T | None:
        return self.run().value


class Retry(Generic[T]):
    """Fluent builder; every setter returns the builder for chaining."""

    def __init__(self) -> None:
        self._policy = RetryPolicy()
        self._overrides: dict[str, object] = {}
        self._operation: Operation[T] | CancellableOperation[T] | None = None
        self._cancellable = False
        self._judgements: list[Judgement] = []
        self._pool: WorkerPool | None = None

    def policy(self, policy: RetryPolicy) -> Retry[T]:
        """Use ``policy`` as the base; values set through the other setters still apply on top."""
        self._policy = policy
        return self

    def max_operation_wait_time(self, seconds: float) -> Retry[T]:
        self._overrides["max_operation_wait_time"] = seconds
        return self

    def retry_interval_time(self, seconds: float) -> Retry[T]:
        self._overrides["retry_interval_time"] = seconds
        return self

    def max_retry_times(self, times: int) -> Retry[T]:
        self._overrides["max_retry_times"] = times
        return self

    def poll_interval(self, seconds: float) -> Retry[T]:
        self._overrides["poll_interval"] = seconds
        return self

    def on_fault(self, mode: str) -> Retry[T]:
        self._overrides["on_fault"] = mode
        return self

    def operation(self, operation: Operation[T]) -> Retry[T]:
        self._operation = operation
        self._cancellable = False
        return self

    def cancellable_operation(self, operation: CancellableOperation[T]) -> Retry[T]:
        self._operation = operation
        self._cancellable = True
        return self

    def judgement(self, judgement: Judgement) -> Retry[T]:
        """Add a judgement; the operation is retried when any judgement returns True."""
        self._judgements.append(judgement)
        return self

    def pool(self, pool: WorkerPool) -> Retry[T]:
        self._pool = pool
        return self

    def build(self) -> RetryPlan[T]:
        _require_operation(self._operation)
        policy = self._policy
        if self._overrides:
            policy = build_policy(**{**policy.model_dump(), **self._overrides})
        return RetryPlan(
            operation=self._operation,
            policy=policy,
            judgements=tuple(self._judgements),
            cancellable=self._cancellable,
            pool=self._pool,
        )

    def execute(self) -> T | None:
        return self.build().execute()


class RetryExecutor:
    """Reusable executor bound to one policy and pool."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        pool: WorkerPool | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self.pool = pool
        self._sleep = sleep

    def run(
        self,
        operation: Operation[T] | CancellableOperation[T] | None,
        *judgements: Judgement,
        cancellable: bool = False,
    ) -> RetryReport[T]:
        return run_with_report(
            operation,
            policy=self.policy,
            judgements=judgements,
            cancellable=cancellable,
            pool=self.pool,
            sleep=self._sleep,
        )

    def execute(
        self,
        operation: Operation[T] | CancellableOperation[T] | None,
        *judgements: Judgement,
        cancellable: bool = False,
    ) -> T | None:
        return self.run(operation, *judgements, cancellable=cancellable).value


def execute(
    max_operation_wait_time: float,
    retry_interval_time: float,
    max_retry_times: int,
    operation: Operation[T] | None,
    judgements: Iterable[Judgement] | None = None,
    *,
    pool: WorkerPool | None = None,
) -> T | None:
    """One-shot form taking every parameter explicitly."""
    _require_operation(operation)
    policy = build_policy(
        max_operation_wait_time=max_operation_wait_time,
        retry_interval_time=retry_interval_time,
        max_retry_times=max_retry_times,
    )
    return run_with_retry(
        operation,
        policy=policy,
        judgements=tuple(judgements or ()),
        pool=pool,
    )
