from __future__ import annotations

import pytest

from boundretry.config import RetryPolicy
from boundretry.errors import ErrorCode, InvalidConfiguration, OperationFault
from boundretry.executor import run_with_report, run_with_retry
from boundretry.runner import CancellationToken


def test_retry_policy_recovers_after_empty_results(inline_runner) -> None:
    attempts = {"count": 0}

    def operation() -> str | None:
        attempts["count"] += 1
        if attempts["count"] < 3:
            return None
        return "ok"

    result = run_with_retry(
        operation,
        policy=RetryPolicy(max_retry_times=4),
        runner=inline_runner,
        sleep=lambda _: None,
    )
    assert result == "ok"
    assert attempts["count"] == 3


def test_retry_policy_returns_last_value_when_budget_exhausted(inline_runner) -> None:
    attempts = {"count": 0}

    def operation() -> None:
        attempts["count"] += 1

    report = run_with_report(
        operation,
        policy=RetryPolicy(max_retry_times=2),
        runner=inline_runner,
        sleep=lambda _: None,
    )
    assert report.value is None
    assert report.exhausted is True
    assert report.attempts_made == 3
    assert attempts["count"] == 3


def test_zero_retry_times_runs_exactly_once(inline_runner) -> None:
    calls = []

    report = run_with_report(
        lambda: calls.append(1),
        policy=RetryPolicy(max_retry_times=0),
        runner=inline_runner,
        sleep=lambda _: None,
    )
    assert len(calls) == 1
    assert report.exhausted is True


def test_interval_is_slept_between_attempts_only(inline_runner) -> None:
    sleeps: list[float] = []

    run_with_retry(
        lambda: None,
        policy=RetryPolicy(max_retry_times=2, retry_interval_time=0.5),
        runner=inline_runner,
        sleep=sleeps.append,
    )
    assert sleeps == [0.5, 0.5]


def test_zero_interval_never_sleeps(inline_runner) -> None:
    sleeps: list[float] = []

    run_with_retry(
        lambda: None,
        policy=RetryPolicy(max_retry_times=3),
        runner=inline_runner,
        sleep=sleeps.append,
    )
    assert sleeps == []


def test_each_attempt_gets_the_operation_wait_time(inline_runner) -> None:
    run_with_retry(
        lambda: None,
        policy=RetryPolicy(max_retry_times=1, max_operation_wait_time=2.5),
        runner=inline_runner,
        sleep=lambda _: None,
    )
    assert inline_runner.timeouts == [2.5, 2.5]


def test_judgements_are_combined_with_or(inline_runner) -> None:
    values = iter(["", "x", None])

    result = run_with_retry(
        lambda: next(values),
        policy=RetryPolicy(max_retry_times=5),
        judgements=[lambda t: t is None, lambda t: t == ""],
        runner=inline_runner,
        sleep=lambda _: None,
    )
    assert result == "x"
    assert inline_runner.timeouts == [30.0, 30.0]


def test_every_judgement_is_evaluated_each_attempt(inline_runner) -> None:
    seen: dict[str, list[object]] = {"first": [], "second": []}

    def first(value: object) -> bool:
        seen["first"].append(value)
        return value is None

    def second(value: object) -> bool:
        seen["second"].append(value)
        return False

    values = iter([None, "done"])
    run_with_retry(
        lambda: next(values),
        policy=RetryPolicy(),
        judgements=[first, second],
        runner=inline_runner,
        sleep=lambda _: None,
    )
    assert seen["first"] == [None, "done"]
    assert seen["second"] == [None, "done"]


def test_judgement_can_retry_non_null_values(inline_runner) -> None:
    values = iter([1, 2, 3, 4])

    result = run_with_retry(
        lambda: next(values),
        policy=RetryPolicy(max_retry_times=5),
        judgements=[lambda t: t < 3],
        runner=inline_runner,
        sleep=lambda _: None,
    )
    assert result == 3


def test_operation_fault_is_retried_by_default(inline_runner) -> None:
    attempts = {"count": 0}

    def operation() -> str:
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise ConnectionError("flaky")
        return "ok"

    report = run_with_report(
        operation,
        policy=RetryPolicy(),
        runner=inline_runner,
        sleep=lambda _: None,
    )
    assert report.value == "ok"
    assert report.attempts[0].faulted
    assert isinstance(report.attempts[0].error, ConnectionError)


def test_operation_fault_propagates_when_policy_raises(inline_runner) -> None:
    attempts = {"count": 0}

    def operation() -> str:
        attempts["count"] += 1
        raise ConnectionError("down")

    with pytest.raises(OperationFault) as excinfo:
        run_with_retry(
            operation,
            policy=RetryPolicy(on_fault="raise"),
            runner=inline_runner,
            sleep=lambda _: None,
        )
    assert attempts["count"] == 1
    assert excinfo.value.code == ErrorCode.OPERATION_FAULT
    assert excinfo.value.attempt == 0
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_missing_operation_fails_before_any_attempt(inline_runner) -> None:
    with pytest.raises(InvalidConfiguration):
        run_with_retry(None, policy=RetryPolicy(), runner=inline_runner)
    assert inline_runner.timeouts == []


def test_non_callable_operation_is_rejected(inline_runner) -> None:
    with pytest.raises(InvalidConfiguration):
        run_with_retry("not callable", policy=RetryPolicy(), runner=inline_runner)  # type: ignore[arg-type]


def test_cancellable_operation_receives_token(inline_runner) -> None:
    received: list[object] = []

    def operation(token: CancellationToken) -> str:
        received.append(token)
        return "ok"

    run_with_retry(operation, policy=RetryPolicy(), cancellable=True, runner=inline_runner)
    assert received == inline_runner.tokens
    assert isinstance(received[0], CancellationToken)


def test_raising_judgement_propagates_to_caller(inline_runner) -> None:
    def judgement(value: object) -> bool:
        raise LookupError("bad predicate")

    with pytest.raises(LookupError):
        run_with_retry(
            lambda: "x",
            policy=RetryPolicy(),
            judgements=[judgement],
            runner=inline_runner,
            sleep=lambda _: None,
        )
    assert inline_runner.timeouts == [30.0]
