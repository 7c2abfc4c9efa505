"""Shell command operations with cooperative cancellation."""

from __future__ import annotations

import logging as py_logging
import re
import subprocess
from collections.abc import Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass

from boundretry.config import DEFAULT_POLL_INTERVAL
from boundretry.judgement import Judgement
from boundretry.runner import CancellableOperation, CancellationToken

logger = py_logging.getLogger(__name__)

TERMINATE_GRACE_SECONDS = 2.0


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def _stop(process: subprocess.Popen[str]) -> None:
    process.terminate()
    try:
        process.communicate(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        logger.warning("Command ignored terminate, killing pid=%s", process.pid)
        process.kill()
        with suppress(subprocess.TimeoutExpired):
            process.communicate(timeout=TERMINATE_GRACE_SECONDS)


def run_command(
    argv: Sequence[str],
    token: CancellationToken,
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    popen: Callable[..., subprocess.Popen[str]] = subprocess.Popen,
) -> CommandResult:
    """Run ``argv`` to completion, stopping the process once ``token`` is cancelled."""
    logger.debug("Starting command argv=%s", list(argv))
    process = popen(
        list(argv),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    while True:
        try:
            stdout, stderr = process.communicate(timeout=poll_interval)
        except subprocess.TimeoutExpired:
            if token.cancelled:
                logger.debug("Stopping cancelled command pid=%s", process.pid)
                _stop(process)
                token.raise_if_cancelled()
            continue
        break
    logger.debug("Command finished returncode=%s argv=%s", process.returncode, list(argv))
    return CommandResult(
        argv=tuple(argv),
        returncode=process.returncode,
        stdout=stdout or "",
        stderr=stderr or "",
    )


def command_operation(
    argv: Sequence[str],
    *,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> CancellableOperation[CommandResult]:
    frozen = tuple(argv)

    def _operate(token: CancellationToken) -> CommandResult:
        return run_command(frozen, token, poll_interval=poll_interval)

    return _operate


def exit_status_judgement(result: CommandResult | None) -> bool:
    """Retry while the command timed out or exited non-zero."""
    return result is None or not result.success


def output_judgement(pattern: str) -> Judgement:
    """Retry while stdout matches ``pattern``."""
    compiled = re.compile(pattern)

    def _judge(result: CommandResult | None) -> bool:
        return result is not None and compiled.search(result.stdout) is not None

    return _judge
