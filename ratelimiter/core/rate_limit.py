"""Rate limiting dependency for FastAPI routes.

This module wires the coordinator into the HTTP layer.

Key derivation (each source gets its own prefix so keys never collide):
- ``key:<value>`` for a key supplied by the calling code or request body
- ``header:<value>`` from ``LIMITER_KEY_HEADER``, only when
  ``LIMITER_TRUST_KEY_HEADER`` is set (off by default, since clients control it)
- ``ip:<address>`` from the client network address
- ``default:<key>`` from ``LIMITER_DEFAULT_KEY`` when ``LIMITER_ALLOW_DEFAULT_KEY`` is set
- Otherwise fail closed with a 429
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Sequence

from fastapi import Depends, HTTPException, Request, status

from ratelimiter.actors.registry import ActorRegistry
from ratelimiter.adapters.cache.response_cache import CacheStorage
from ratelimiter.adapters.storage.factory import create_storage_factory
from ratelimiter.core.config import LimiterSettings, settings
from ratelimiter.core.errors import MissingIdentityAppError
from ratelimiter.domain.decision import Rejection
from ratelimiter.domain.rules import RateRule, parse_rules_csv
from ratelimiter.services.coordinator import RateLimitCoordinator

logger = logging.getLogger(__name__)


_coordinator: RateLimitCoordinator | None = None
_coordinator_config: tuple | None = None


def build_coordinator(
    limiter_settings: LimiterSettings | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> RateLimitCoordinator:
    """Assemble registry, storage and caches from limiter settings."""

    cfg = limiter_settings or settings.limiter
    registry = ActorRegistry(
        create_storage_factory(cfg),
        clock=clock,
        count_rejected=cfg.count_rejected,
        sweep_interval=cfg.actor_sweep_seconds,
    )
    caches = CacheStorage(max_entries=cfg.cache_max_entries, clock=clock)
    return RateLimitCoordinator(
        registry,
        caches,
        default_cache_name=cfg.cache_name,
        allowed_cache_names=get_allowed_cache_names(cfg),
        clock=clock,
    )


def get_coordinator() -> RateLimitCoordinator:
    """Return the process-wide coordinator.

    The instance is cached in-module to preserve per-key state across
    requests. If the storage or cache configuration changes (primarily in
    tests), the coordinator is rebuilt.
    """

    global _coordinator, _coordinator_config

    cfg = settings.limiter
    config = (
        cfg.storage_backend,
        cfg.storage_dir,
        cfg.cache_name,
        cfg.cache_max_entries,
        cfg.count_rejected,
        cfg.allowed_cache_names,
        cfg.actor_sweep_seconds,
    )

    if _coordinator is None or _coordinator_config != config:
        _coordinator = build_coordinator(cfg)
        _coordinator_config = config

    return _coordinator


def get_allowed_cache_names(limiter_settings: LimiterSettings | None = None) -> frozenset[str]:
    """Cache namespaces callers may select: ``cache_name`` plus ``allowed_cache_names``."""

    cfg = limiter_settings or settings.limiter
    extra = (name.strip() for name in cfg.allowed_cache_names.split(","))
    return frozenset({cfg.cache_name, *(name for name in extra if name)})


def get_default_rules() -> list[RateRule]:
    """Rules applied to protected routes, from ``LIMITER_DEFAULT_RULES``."""

    return parse_rules_csv(settings.limiter.default_rules)


def derive_rate_limit_key(request: Request, explicit_key: str | None = None) -> str:
    """Build the limiter key for the current request.

    Args:
        request: FastAPI request.
        explicit_key: Key supplied by the calling code or request body, if any.

    Returns:
        str: The prefixed key to limit on, e.g. ``ip:10.0.0.1``.

    Raises:
        MissingIdentityAppError: If no key can be derived and the fallback
            key is not allowed.
    """

    cfg = settings.limiter

    if explicit_key:
        return f"key:{explicit_key}"

    if cfg.trust_key_header:
        header_key = request.headers.get(cfg.key_header)
        if header_key:
            return f"header:{header_key}"

    if request.client and request.client.host:
        return f"ip:{request.client.host}"

    if cfg.allow_default_key:
        return f"default:{cfg.default_key}"

    logger.warning(
        "rate_limit.identity_missing",
        extra={"allow_default_key": False},
    )
    raise MissingIdentityAppError(
        code="rate_limit_identity_missing",
        message="Unable to identify the caller for rate limiting",
        details={"hint": "Send an explicit key or enable LIMITER_ALLOW_DEFAULT_KEY"},
    )


def rejection_to_http(rejection: Rejection) -> HTTPException:
    """Render a Rejection as HTTP 429 with Retry-After."""

    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Try again later.",
        headers=rejection.headers,
    )


def rate_limit_dependency(
    rules: Sequence[RateRule] | None = None,
    *,
    cache_name: str | None = None,
) -> Callable[..., Awaitable[None]]:
    """Create a FastAPI dependency enforcing ``rules`` on a route.

    Usage:
        @router.get("/ping", dependencies=[Depends(rate_limit_dependency())])

    Args:
        rules: Rules to enforce; defaults to ``LIMITER_DEFAULT_RULES``.
        cache_name: Response cache namespace override.
    """

    async def enforce_rate_limit(
        request: Request,
        coordinator: RateLimitCoordinator = Depends(get_coordinator),
    ) -> None:
        if not settings.limiter.enabled:
            return

        key = derive_rate_limit_key(request)
        effective_rules = list(rules) if rules is not None else get_default_rules()

        rejection = await coordinator.rate_limit(
            key,
            effective_rules,
            cache_name=cache_name,
        )
        if rejection is not None:
            raise rejection_to_http(rejection)

    return enforce_rate_limit
