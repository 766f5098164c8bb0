from __future__ import annotations

from ratelimiter.api.routes.actor import router as actor_router
from ratelimiter.api.routes.health import router as health_router
from ratelimiter.api.routes.limiter import router as limiter_router

__all__ = ["actor_router", "health_router", "limiter_router"]
