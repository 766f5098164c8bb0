from __future__ import annotations

from fastapi import APIRouter

from ratelimiter.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check; never rate limited.

    Returns:
        dict: ``status`` plus whether limiting is enabled and which
            storage backend actors persist to.
    """

    return {
        "status": "ok",
        "limiter_enabled": settings.limiter.enabled,
        "storage_backend": settings.limiter.storage_backend,
    }
