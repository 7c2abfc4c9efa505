from __future__ import annotations

from boundretry.judgement import any_of, is_null_judgement, should_retry


def test_null_judgement_retries_only_on_none() -> None:
    assert is_null_judgement(None) is True
    assert is_null_judgement("") is False
    assert is_null_judgement(0) is False


def test_no_judgements_falls_back_to_null_check() -> None:
    assert should_retry(None, []) is True
    assert should_retry("value", []) is False
    assert should_retry(False, ()) is False


def test_judgements_combine_with_or() -> None:
    judgements = [lambda t: t is None, lambda t: t == ""]

    assert should_retry("", judgements) is True
    assert should_retry(None, judgements) is True
    assert should_retry("x", judgements) is False


def test_configured_judgements_replace_default_null_check() -> None:
    assert should_retry(None, [lambda t: False]) is False


def test_all_judgements_run_without_short_circuit() -> None:
    calls: list[str] = []

    def first(value: object) -> bool:
        calls.append("first")
        return True

    def second(value: object) -> bool:
        calls.append("second")
        return False

    assert should_retry("x", [first, second]) is True
    assert calls == ["first", "second"]


def test_truthy_verdicts_are_normalized() -> None:
    assert should_retry("x", [lambda t: "yes"]) is True
    assert should_retry("x", [lambda t: 0]) is False


def test_any_of_folds_judgements() -> None:
    combined = any_of([lambda t: t is None, lambda t: t == ""])

    assert combined("") is True
    assert combined("x") is False
    assert any_of([])(None) is True
