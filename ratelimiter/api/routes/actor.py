"""Actor wire endpoint.

Exposes a KeyActor over HTTP using the ``k``/``r`` query contract, so a
remote coordinator can reach the process owning a key.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ratelimiter.core.rate_limit import get_coordinator
from ratelimiter.domain.decision import ActorRequest
from ratelimiter.schemas.limiter import ActorDecisionBody
from ratelimiter.services.coordinator import RateLimitCoordinator

router = APIRouter(tags=["Actor"])


@router.get("/internal/limiter", response_model=ActorDecisionBody)
async def actor_decide(
    request: Request,
    coordinator: RateLimitCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    """Run one sliding-window decision on the actor owning ``k``.

    Query parameters:
        k: Rate limit key.
        r: Repeated ``<limit>:<interval>`` rules, in caller order.

    Returns:
        ``{"status": "OK"}`` or ``{"status": "LIMITED", "retryAt": n}``;
        LIMITED responses carry a Cache-Control max-age of ``retryAt - now``.

    Raises:
        ValidationAppError: 400 when ``k`` is missing or a rule is malformed.
    """
    actor_request = ActorRequest.from_query(
        {
            "k": request.query_params.getlist("k"),
            "r": request.query_params.getlist("r"),
        }
    )
    actor = coordinator.registry.resolve(actor_request.key)
    response = await actor.handle(actor_request)
    return JSONResponse(
        status_code=response.status_code,
        content=response.body,
        headers=response.headers,
    )
