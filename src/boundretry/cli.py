"""Command line entrypoint: run a shell command under a retry policy."""

from __future__ import annotations

import argparse
import logging as py_logging
import re
import sys
from collections.abc import Sequence
from pathlib import Path

from .command import CommandResult, command_operation, exit_status_judgement, output_judgement
from .config import build_policy, load_policy
from .errors import BoundRetryError, ErrorCode, user_facing_error
from .executor import RetryReport, run_with_report
from .judgement import Judgement
from .logging import configure_logging
from .pool import WorkerPool

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_VALID_FAULT_MODES = ("retry", "raise")


def _seconds_type(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be a number of seconds") from exc
    if seconds < 0:
        raise argparse.ArgumentTypeError("must not be negative")
    return seconds


def _positive_seconds_type(value: str) -> float:
    seconds = _seconds_type(value)
    if seconds == 0:
        raise argparse.ArgumentTypeError("must be greater than zero")
    return seconds


def _retry_times_type(value: str) -> int:
    try:
        times = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--max-retry-times must be an integer") from exc
    if times < 0:
        raise argparse.ArgumentTypeError("--max-retry-times must not be negative")
    return times


def _pattern_type(value: str) -> str:
    try:
        re.compile(value)
    except re.error as exc:
        raise argparse.ArgumentTypeError(f"invalid regular expression: {exc}") from exc
    return value


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="boundretry",
        description="Run a command, retrying while it fails or exceeds its time budget.",
    )
    parser.add_argument("--config", type=Path, default=None, help="TOML file with a [retry] table")
    parser.add_argument("--max-operation-wait-time", type=_seconds_type, default=None)
    parser.add_argument("--retry-interval-time", type=_seconds_type, default=None)
    parser.add_argument("--max-retry-times", type=_retry_times_type, default=None)
    parser.add_argument("--poll-interval", type=_positive_seconds_type, default=None)
    parser.add_argument("--on-fault", choices=_VALID_FAULT_MODES, default=None)
    parser.add_argument(
        "--retry-on-output",
        type=_pattern_type,
        action="append",
        default=[],
        metavar="REGEX",
        help="Also retry while stdout matches REGEX (repeatable)",
    )
    parser.add_argument("--log-level", type=_log_level_type, default="WARN")
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument("command", nargs=argparse.REMAINDER)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def _command_argv(namespace: argparse.Namespace) -> list[str]:
    command = list(namespace.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        raise BoundRetryError(
            "No command given",
            code=ErrorCode.INVALID_ARGS,
            hint="Pass the command after '--', e.g. boundretry -- curl -f URL.",
        )
    return command


def _judgements(namespace: argparse.Namespace) -> list[Judgement]:
    judgements: list[Judgement] = [exit_status_judgement]
    judgements.extend(output_judgement(pattern) for pattern in namespace.retry_on_output)
    return judgements


def _exit_code(report: RetryReport[CommandResult]) -> int:
    result = report.value
    if result is not None:
        if result.returncode < 0:
            # Killed by a signal; report it the way a shell does.
            return 128 - result.returncode
        return result.returncode
    last = report.attempts[-1]
    if last.faulted:
        return int(ErrorCode.OPERATION_FAULT)
    return int(ErrorCode.TIMEOUT)


def run_cli_flow(namespace: argparse.Namespace, *, pool: WorkerPool | None = None) -> int:
    command = _command_argv(namespace)
    base = load_policy(namespace.config)
    overrides = {
        name: value
        for name, value in (
            ("max_operation_wait_time", namespace.max_operation_wait_time),
            ("retry_interval_time", namespace.retry_interval_time),
            ("max_retry_times", namespace.max_retry_times),
            ("poll_interval", namespace.poll_interval),
            ("on_fault", namespace.on_fault),
        )
        if value is not None
    }
    policy = build_policy(**{**base.model_dump(), **overrides})

    owned_pool = pool is None
    worker_pool = pool or WorkerPool(max_workers=2, name="boundretry-cli")
    try:
        report: RetryReport[CommandResult] = run_with_report(
            command_operation(command, poll_interval=policy.poll_interval),
            policy=policy,
            judgements=_judgements(namespace),
            cancellable=True,
            pool=worker_pool,
        )
    finally:
        if owned_pool:
            worker_pool.shutdown(wait=False)

    if report.value is not None:
        sys.stdout.write(report.value.stdout)
        sys.stderr.write(report.value.stderr)
    if report.exhausted:
        print(
            f"boundretry: gave up after {report.attempts_made} attempts",
            file=sys.stderr,
        )
    return _exit_code(report)


def main(argv: Sequence[str] | None = None, *, pool: WorkerPool | None = None) -> int:
    logger = configure_logging(level="WARN")
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    logger = configure_logging(level=namespace.log_level, log_file=namespace.log_file)
    try:
        logger.debug("Starting CLI flow")
        return run_cli_flow(namespace, pool=pool)
    except BoundRetryError as exc:
        logger.error(
            "Handled BoundRetryError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        print(user_facing_error("Unexpected runtime failure"), file=sys.stderr)
        return int(ErrorCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
