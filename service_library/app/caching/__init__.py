"""
Library Gateway caching package.

Provides the TTL cache placed in front of the upstream client, its memory
and Redis stores, and the per-operation cache policy. Prefer short-lived
caches and explicit invalidation; never cache non-deterministic results.
"""

from .cache_policy import CachePolicy, CacheDecision, NON_DETERMINISTIC
from .ttl_cache import MemoryCacheStore, RedisCacheStore, TTLCache

__all__ = [
    "CachePolicy",
    "CacheDecision",
    "NON_DETERMINISTIC",
    "MemoryCacheStore",
    "RedisCacheStore",
    "TTLCache",
]
