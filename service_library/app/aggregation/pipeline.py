"""
Cache -> retry -> transport pipeline for a single request spec.
"""

from typing import Any, Dict, Optional

from ..adapters.upstream_client import UpstreamClient
from ..caching.ttl_cache import TTLCache
from ..domain.requests import Envelope, HttpMethod, RequestSpec


def _successful(payload: Dict[str, Any]) -> bool:
    return bool(payload.get("success"))


class RequestPipeline:
    """Runs one spec through the cache, then the retrying upstream client.

    Envelopes are cached in their dict form so every store backend can hold
    them. ``success: false`` envelopes are returned but never cached.
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        cache: TTLCache,
        *,
        default_ttl: float,
        max_attempts: Optional[int] = None,
    ):
        self.upstream = upstream
        self.cache = cache
        self.default_ttl = default_ttl
        self.max_attempts = max_attempts

    async def run(self, spec: RequestSpec) -> Envelope:
        # writes get a single attempt so a retry cannot apply them twice
        attempts = self.max_attempts if spec.method is HttpMethod.GET else 1
        if not spec.cacheable:
            return await self.upstream.execute_with_retry(spec, attempts)

        async def fetch() -> Dict[str, Any]:
            envelope = await self.upstream.execute_with_retry(spec, attempts)
            return envelope.to_dict()

        ttl = spec.cache_ttl if spec.cache_ttl is not None else self.default_ttl
        payload = await self.cache.get_or_fetch(
            spec.effective_cache_key,
            ttl,
            fetch,
            refresh=spec.refresh,
            cache_if=_successful,
        )
        return Envelope.from_payload(payload)

    __call__ = run
