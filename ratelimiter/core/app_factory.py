"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from ratelimiter.api.routes import actor_router, health_router, limiter_router
from ratelimiter.core.config import settings
from ratelimiter.core.exception_handlers import setup_exception_handlers
from ratelimiter.core.logging import configure_logging
from ratelimiter.core.middleware import request_id_middleware
from ratelimiter.core.openapi import apply_openapi_customizations
from ratelimiter.core.rate_limit import get_coordinator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # flush background cache writes before the loop goes away
    await get_coordinator().aclose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Sliding Window Rate Limiter",
        description=(
            "Per-key admission control with a sliding-window log. Each key is "
            "served by a single serialized actor; repeated LIMITED checks are "
            "answered from a shared response cache."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(limiter_router, prefix="/v1")
    app.include_router(actor_router)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
