from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ratelimiter.core.rate_limit import (
    derive_rate_limit_key,
    get_coordinator,
    rate_limit_dependency,
    rejection_to_http,
)
from ratelimiter.schemas.limiter import RateLimitCheckRequest, RateLimitCheckResponse
from ratelimiter.services.coordinator import RateLimitCoordinator

router = APIRouter(tags=["Limiter"])


@router.post("/rate-limit", response_model=RateLimitCheckResponse)
async def check_rate_limit(
    body: RateLimitCheckRequest,
    request: Request,
    coordinator: RateLimitCoordinator = Depends(get_coordinator),
) -> RateLimitCheckResponse:
    """Consume one admission for a key against the given rules.

    When ``key`` is omitted the caller's address is used; if that is
    unavailable the request fails closed unless a fallback key is allowed.

    Returns:
        RateLimitCheckResponse: ``{"status": "allowed"}``.

    Raises:
        HTTPException: 429 with Retry-After when the key is limited.
        ValidationAppError: 400 when ``cache_name`` is not an allowed namespace.
    """
    key = derive_rate_limit_key(request, body.key)
    rejection = await coordinator.rate_limit(
        key,
        [rule.to_rule() for rule in body.rules],
        cache_name=body.cache_name,
    )
    if rejection is not None:
        raise rejection_to_http(rejection)
    return RateLimitCheckResponse()


@router.get("/ping", dependencies=[Depends(rate_limit_dependency())])
async def ping() -> dict:
    """Sample route guarded by the default rules (LIMITER_DEFAULT_RULES)."""

    return {"status": "pong"}
