"""Sliding-window evaluation over a newest-first timestamp log.

The log is strictly newest-first: every admitted request is prepended. Both
trimming and counting stop at the first timestamp outside the window, which
is only correct while that ordering holds.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence, TypeVar

from ratelimiter.domain.rules import RateRule

T = TypeVar("T")


@dataclass(frozen=True)
class WindowEvaluation:
    """Result of evaluating a key's log against a set of rules.

    Attributes:
        log: Trimmed working log to persist (newest-first).
        retry_at: Earliest time every violated rule allows again, or None
            when no rule is violated.
    """

    log: list[int]
    retry_at: int | None

    @property
    def limited(self) -> bool:
        return self.retry_at is not None


def filter_until(items: Sequence[T], predicate: Callable[[T], bool]) -> list[T]:
    """Return the longest prefix of ``items`` satisfying ``predicate``."""

    values: list[T] = []
    for item in items:
        if not predicate(item):
            break
        values.append(item)
    return values


def count_until(items: Sequence[T], predicate: Callable[[T], bool]) -> tuple[int, T | None]:
    """Count the prefix satisfying ``predicate`` and return its last element."""

    count = 0
    last: T | None = None
    for item in items:
        if not predicate(item):
            break
        count += 1
        last = item
    return count, last


def evaluate(
    log: Sequence[int],
    rules: Sequence[RateRule],
    now: int,
    *,
    count_rejected: bool = False,
) -> WindowEvaluation:
    """Trim ``log``, check every rule and record ``now`` when admitted.

    Args:
        log: Stored timestamps, newest-first.
        rules: Rules to enforce; must be non-empty.
        now: Current unix time in whole seconds.
        count_rejected: Also record ``now`` when the request is rejected.

    Returns:
        WindowEvaluation with the log to persist and the retry time.
    """

    biggest_interval = max(rule.interval for rule in rules)
    working = filter_until(log, lambda ts: ts + biggest_interval >= now)

    retry_at: int | None = None
    # every rule is evaluated so the strictest boundary wins
    for rule in rules:
        count, boundary = count_until(working, lambda ts: ts + rule.interval >= now)
        if count >= rule.limit and boundary is not None:
            candidate = boundary + rule.interval
            retry_at = candidate if retry_at is None else max(retry_at, candidate)

    if retry_at is None or count_rejected:
        working.insert(0, now)

    return WindowEvaluation(log=working, retry_at=retry_at)
