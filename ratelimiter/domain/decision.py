"""Decisions, actor wire messages and the caller-facing rejection.

``ActorRequest`` is the canonical descriptor of one rate limit check: its URL
is both the response cache key and the message a KeyActor receives.
``ActorResponse`` is what a KeyActor answers and what the response cache
stores for LIMITED outcomes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence
from urllib.parse import parse_qs, urlencode, urlsplit

from ratelimiter.core.errors import ValidationAppError
from ratelimiter.domain.rules import RateRule, parse_rules

ACTOR_BASE_URL = "http://rate-limiter/"

STATUS_OK = "OK"
STATUS_LIMITED = "LIMITED"

_MAX_AGE_RE = re.compile(r"(?:^|,)\s*max-age=(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class Allowed:
    """The request was admitted and recorded."""


@dataclass(frozen=True)
class Limited:
    """The request was rejected; retrying before ``retry_at`` is pointless."""

    retry_at: int


Decision = Allowed | Limited


@dataclass(frozen=True)
class ActorRequest:
    """Canonical ``(key, rules)`` descriptor, rules kept in caller order."""

    key: str
    rules: tuple[RateRule, ...]

    @classmethod
    def build(cls, key: str, rules: Sequence[RateRule]) -> "ActorRequest":
        return cls(key=key, rules=tuple(rules))

    @property
    def url(self) -> str:
        """Canonical URL: ``k`` then one ``r`` per rule."""

        params = [("k", self.key)] + [("r", rule.encode()) for rule in self.rules]
        return f"{ACTOR_BASE_URL}?{urlencode(params)}"

    @classmethod
    def from_query(cls, query: Mapping[str, Sequence[str]]) -> "ActorRequest":
        """Decode the ``k``/``r`` query parameters of an actor request.

        Raises:
            ValidationAppError: If ``k`` is missing or any ``r`` is malformed.
        """

        keys = query.get("k") or []
        if not keys or not keys[0]:
            raise ValidationAppError(
                code="missing_rate_limit_key",
                message="Actor request is missing the k parameter",
            )
        rules = parse_rules(query.get("r") or [])
        if not rules:
            raise ValidationAppError(
                code="invalid_rate_rule",
                message="Actor request carries no r parameters",
            )
        return cls.build(keys[0], rules)

    @classmethod
    def from_url(cls, url: str) -> "ActorRequest":
        return cls.from_query(parse_qs(urlsplit(url).query, keep_blank_values=True))


@dataclass(frozen=True)
class ActorResponse:
    """JSON response produced by a KeyActor."""

    body: dict[str, Any]
    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_decision(cls, decision: Decision, now: int) -> "ActorResponse":
        if isinstance(decision, Allowed):
            return cls(body={"status": STATUS_OK})

        max_age = decision.retry_at - now
        return cls(
            body={"status": STATUS_LIMITED, "retryAt": decision.retry_at},
            headers={
                "Cache-Control": (
                    f"public, max-age={max_age}, s-maxage={max_age}, must-revalidate"
                ),
            },
        )

    @property
    def cache_control(self) -> str | None:
        for name, value in self.headers.items():
            if name.lower() == "cache-control":
                return value
        return None

    @property
    def max_age(self) -> int | None:
        """Freshness lifetime in seconds from the Cache-Control directive."""

        directive = self.cache_control
        if directive is None:
            return None
        match = _MAX_AGE_RE.search(directive)
        return int(match.group(1)) if match else None

    def decision(self) -> Decision:
        """Decode the JSON body back into a Decision."""

        if self.body.get("status") == STATUS_LIMITED:
            return Limited(retry_at=int(self.body["retryAt"]))
        return Allowed()


@dataclass(frozen=True)
class Rejection:
    """Caller-facing outcome of a limited request (HTTP 429 + Retry-After)."""

    retry_after_seconds: int
    status_code: int = 429

    @property
    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after_seconds)}
