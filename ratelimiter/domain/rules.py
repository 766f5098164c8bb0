"""Rate rules and their ``<limit>:<interval>`` wire encoding."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from ratelimiter.core.errors import ValidationAppError


@dataclass(frozen=True)
class RateRule:
    """At most ``limit`` admissions per rolling ``interval`` seconds."""

    limit: int
    interval: int

    def encode(self) -> str:
        return f"{self.limit}:{self.interval}"


def parse_rule(raw: str) -> RateRule:
    """Parse a single ``<limit>:<interval>`` rule.

    Args:
        raw: Encoded rule, e.g. ``"3:10"``.

    Returns:
        The decoded RateRule.

    Raises:
        ValidationAppError: If the encoding is malformed or either part is
            not a positive integer.
    """

    limit_part, sep, interval_part = raw.strip().partition(":")
    if not sep:
        raise ValidationAppError(
            code="invalid_rate_rule",
            message=f"Rate rule must be formatted as <limit>:<interval>, got {raw!r}",
            details={"rule": raw},
        )
    try:
        rule = RateRule(limit=int(limit_part), interval=int(interval_part))
    except ValueError as exc:
        raise ValidationAppError(
            code="invalid_rate_rule",
            message=f"Rate rule parts must be integers, got {raw!r}",
            details={"rule": raw},
        ) from exc

    validate_rules([rule])
    return rule


def parse_rules(raw_rules: Iterable[str]) -> list[RateRule]:
    """Parse repeated ``r`` parameters, preserving their order."""

    return [parse_rule(raw) for raw in raw_rules]


def parse_rules_csv(raw: str) -> list[RateRule]:
    """Parse a comma-separated rule list such as ``"3:10,100:3600"``."""

    parts = [part for part in raw.split(",") if part.strip()]
    rules = parse_rules(parts)
    validate_rules(rules)
    return rules


def validate_rules(rules: Sequence[RateRule]) -> None:
    """Reject empty rule lists and non-positive limits or intervals.

    Raises:
        ValidationAppError: If any rule violates the caller contract.
    """

    if not rules:
        raise ValidationAppError(
            code="invalid_rate_rule",
            message="At least one rate rule is required",
        )

    for rule in rules:
        # bool is an int subclass; True/False are never meaningful limits
        for name, value in (("limit", rule.limit), ("interval", rule.interval)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValidationAppError(
                    code="invalid_rate_rule",
                    message=f"Rate rule {name} must be a positive integer, got {value!r}",
                    details={"rule": f"{rule.limit}:{rule.interval}"},
                )
