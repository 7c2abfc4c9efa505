from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path

import pytest

from boundretry.runner import AttemptOutcome, AttemptStatus, CancellationToken

_SLOW_TEST_FILES = {
    "test_retry_edge_cases.py",
}


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        name = path.name

        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)

        if name in _SLOW_TEST_FILES:
            item.add_marker(pytest.mark.slow)


class InlineRunner:
    """Runs each attempt on the calling thread and records the timeouts it was given."""

    def __init__(self) -> None:
        self.timeouts: list[float] = []
        self.tokens: list[CancellationToken] = []

    def run(self, operation, timeout: float) -> AttemptOutcome:
        self.timeouts.append(timeout)
        token = CancellationToken()
        self.tokens.append(token)
        try:
            value = operation(token)
        except Exception as exc:
            return AttemptOutcome(AttemptStatus.FAULTED, error=exc)
        return AttemptOutcome(AttemptStatus.COMPLETED, value=value)


@pytest.fixture
def inline_runner() -> InlineRunner:
    return InlineRunner()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    def _wait(predicate: Callable[[], bool], *, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return _wait
