"""Retry judgements: predicates over an attempt result that vote to retry."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import Any, Optional

Judgement = Callable[[Optional[Any]], bool]


def is_null_judgement(value: object) -> bool:
    """Default judgement: retry while the operation produced nothing."""
    return value is None


def should_retry(value: object, judgements: Sequence[Judgement]) -> bool:
    if not judgements:
        return is_null_judgement(value)
    # Every judgement sees the value, even after an earlier one voted to retry.
    verdicts = [bool(judgement(value)) for judgement in judgements]
    return any(verdicts)


def any_of(judgements: Iterable[Judgement]) -> Judgement:
    """Fold several judgements into one with the same evaluate-all OR rule."""
    collected = tuple(judgements)

    def _judge(value: object) -> bool:
        return should_retry(value, collected)

    return _judge
