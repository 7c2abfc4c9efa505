"""Bounded-retry executor: run an operation with per-attempt timeouts and judged retries."""

from .config import RetryPolicy, build_policy, load_policy, save_policy
from .errors import (
    AttemptCancelled,
    BoundRetryError,
    ErrorCode,
    InvalidConfiguration,
    OperationFault,
)
from .executor import (
    Retry,
    RetryExecutor,
    RetryPlan,
    RetryReport,
    execute,
    run_with_report,
    run_with_retry,
)
from .judgement import Judgement, any_of, is_null_judgement, should_retry
from .logging import configure_logging
from .pool import WorkerPool, default_pool
from .runner import AttemptOutcome, AttemptRunner, AttemptStatus, CancellationToken

__all__ = [
    "any_of",
    "AttemptCancelled",
    "AttemptOutcome",
    "AttemptRunner",
    "AttemptStatus",
    "BoundRetryError",
    "build_policy",
    "CancellationToken",
    "configure_logging",
    "default_pool",
    "ErrorCode",
    "execute",
    "InvalidConfiguration",
    "is_null_judgement",
    "Judgement",
    "load_policy",
    "OperationFault",
    "Retry",
    "RetryExecutor",
    "RetryPlan",
    "RetryPolicy",
    "RetryReport",
    "run_with_report",
    "run_with_retry",
    "save_policy",
    "should_retry",
    "WorkerPool",
]
