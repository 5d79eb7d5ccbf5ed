"""
Per-operation cache lifetimes and key construction.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Optional
from urllib.parse import quote

from shared.config import GatewayConfig

# Operation kinds whose results change on every call must never be cached.
NON_DETERMINISTIC = frozenset({"random_books"})

DEFAULT_TTLS: Dict[str, float] = {
    "latest_books": 300,
    "forgotten_books": 600,
    "recently_visited": 120,
    "book_details": 3600,
    "related_books": 1800,
    "search": 600,
    "books_list": 600,
    "visit_history": 900,
    "reading_summary": 600,
    "latest_readings": 600,
    "reading_reviews": 600,
}

# Operation kinds whose results are valid until the next local midnight.
DATE_SCOPED = frozenset({"today_books", "books_for_date", "wotd", "qotd"})


def seconds_until_midnight(now: datetime) -> float:
    """Seconds from ``now`` to the next local midnight, at least one."""
    tomorrow = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=now.tzinfo)
    return max(1.0, (tomorrow - now).total_seconds())


@dataclass(frozen=True)
class CacheDecision:
    key: Optional[str]
    ttl: float

    @property
    def bypass(self) -> bool:
        return self.key is None


class CachePolicy:
    """Maps an operation kind and its arguments to a cache key and TTL."""

    def __init__(
        self,
        config: GatewayConfig,
        *,
        ttls: Optional[Dict[str, float]] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.default_ttl = config.default_cache_ttl
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self._now = now

    def today(self) -> date:
        return self._now().date()

    def ttl_for(self, operation: str) -> float:
        if operation in DATE_SCOPED:
            return seconds_until_midnight(self._now())
        return self.ttls.get(operation, self.default_ttl)

    def key_for(self, operation: str, *args) -> str:
        parts = [operation] + [quote(str(arg), safe="") for arg in args]
        if operation in DATE_SCOPED:
            parts.append(self.today().isoformat())
        return ":".join(parts)

    def decide(self, operation: str, *args) -> CacheDecision:
        if operation in NON_DETERMINISTIC:
            return CacheDecision(key=None, ttl=0.0)
        return CacheDecision(key=self.key_for(operation, *args), ttl=self.ttl_for(operation))
