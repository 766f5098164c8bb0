"""Pydantic schemas for the rate limit HTTP endpoints."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field

from ratelimiter.domain.rules import RateRule


class RateRuleSchema(BaseModel):
    """A single ``(limit, interval)`` rule."""

    limit: int = Field(..., ge=1, description="Maximum admissions per window.")
    interval: int = Field(..., ge=1, description="Window length in seconds.")

    def to_rule(self) -> RateRule:
        return RateRule(limit=self.limit, interval=self.interval)


class RateLimitCheckRequest(BaseModel):
    """Body of ``POST /v1/rate-limit``."""

    key: str | None = Field(
        default=None,
        min_length=1,
        description="Key to limit on. Defaults to the caller's address.",
    )
    rules: List[RateRuleSchema] = Field(
        ...,
        min_length=1,
        description="Rules to enforce, in a stable order (the order is part of the cache key).",
    )
    cache_name: str | None = Field(
        default=None,
        description="Response cache namespace; defaults to LIMITER_CACHE_NAME. Other names must be listed in LIMITER_ALLOWED_CACHE_NAMES.",
    )


class RateLimitCheckResponse(BaseModel):
    """Returned when the request is admitted."""

    status: Literal["allowed"] = "allowed"


class ActorDecisionBody(BaseModel):
    """JSON body of the actor wire endpoint."""

    status: Literal["OK", "LIMITED"]
    retryAt: int | None = Field(
        default=None,
        description="Unix seconds after which a retry may succeed (LIMITED only).",
    )
