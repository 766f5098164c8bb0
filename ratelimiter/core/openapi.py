"""OpenAPI metadata and customization utilities.

Adds tag descriptions and documents the optional rate limit key header as a
security scheme, keeping documentation concerns out of the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from ratelimiter.core.config import settings

_TAGS = [
    {
        "name": "Limiter",
        "description": "Rate limit checks and rate limited sample routes.",
    },
    {
        "name": "Actor",
        "description": "Per-key actor wire contract (k / r query parameters).",
    },
    {
        "name": "Health",
        "description": "Liveness checks.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with tags and the key header.

    - Declares the rate limit key header as an optional apiKey scheme, only
      when ``LIMITER_TRUST_KEY_HEADER`` is enabled
    - Applies it to ``/v1`` operations only
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        trust_key_header = settings.limiter.trust_key_header
        if trust_key_header:
            components = schema.setdefault("components", {})
            security_schemes = components.setdefault("securitySchemes", {})
            security_schemes.setdefault(
                "RateLimitKey",
                {
                    "type": "apiKey",
                    "in": "header",
                    "name": settings.limiter.key_header,
                    "description": "Optional rate limit key; defaults to the client address.",
                },
            )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if not trust_key_header or not path.startswith("/v1/"):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    # empty requirement keeps the header optional
                    method_obj["security"] = [{"RateLimitKey": []}, {}]

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
