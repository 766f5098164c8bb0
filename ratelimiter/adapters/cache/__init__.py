"""Response cache adapters.

Starts with an in-process cache; the coordinator only depends on
``match``/``put`` so a shared HTTP cache can replace it later.
"""

from ratelimiter.adapters.cache.response_cache import CacheStorage, ResponseCache

__all__ = ["CacheStorage", "ResponseCache"]
