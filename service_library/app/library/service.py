"""
Library gateway: the entry point used by the presentation layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

import httpx

from shared.config import GatewayConfig
from shared.errors import DecodeFailure, GatewayError
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector

from ..adapters.upstream_client import UpstreamClient
from ..aggregation.fan_out import AggregateResult, Aggregator
from ..aggregation.pipeline import RequestPipeline
from ..caching.cache_policy import CachePolicy
from ..caching.ttl_cache import MemoryCacheStore, RedisCacheStore, TTLCache
from ..domain.records import (
    Book,
    CollectionStats,
    Pagination,
    QuoteOfTheDay,
    ReadingReview,
    RecordKind,
    SearchResult,
    WordOfTheDay,
    decode,
    decode_envelope,
)
from ..domain.requests import Envelope, HttpMethod, RequestSpec, Scalar

SERVICE_NAME = "library-gateway"


@dataclass(frozen=True)
class HomepageData:
    """Everything the homepage renders; failed sections are None or empty."""

    stats: Optional[CollectionStats] = None
    latest_books: List[Book] = field(default_factory=list)
    random_books: List[Book] = field(default_factory=list)
    forgotten_books: List[Book] = field(default_factory=list)
    recently_visited_books: List[Book] = field(default_factory=list)
    word_of_the_day: Optional[WordOfTheDay] = None
    quote_of_the_day: Optional[QuoteOfTheDay] = None
    reading_summary: Optional[Any] = None
    latest_readings: List[Any] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


class LibraryGateway:
    """Typed, cached, retrying access to the book-collection API.

    Single operations never raise for upstream problems: they log and return
    ``None`` (or an empty list for list operations). Batches return an
    ``AggregateResult`` holding one outcome per submitted key.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        upstream: Optional[UpstreamClient] = None,
        cache: Optional[TTLCache] = None,
        policy: Optional[CachePolicy] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.metrics = metrics
        self.logger = get_logger("library.gateway")
        self.upstream = upstream or UpstreamClient(config, metrics=metrics)
        self.cache = cache or TTLCache(metrics=metrics)
        self.policy = policy or CachePolicy(config)
        self.pipeline = RequestPipeline(
            self.upstream,
            self.cache,
            default_ttl=config.default_cache_ttl,
            max_attempts=config.max_retry_attempts,
        )
        self.aggregator = Aggregator(
            self.pipeline.run,
            unit_timeout=config.unit_timeout,
            metrics=metrics,
        )

    @classmethod
    def from_config(
        cls,
        config: GatewayConfig,
        *,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "LibraryGateway":
        configure_logging(SERVICE_NAME, config.log_level)
        if metrics is None:
            metrics = get_metrics_collector(SERVICE_NAME)
            if config.metrics_port is not None:
                metrics.start_metrics_server(config.metrics_port)

        if config.cache_backend == "redis":
            store = RedisCacheStore(config.redis_url, namespace=config.cache_key_prefix)
        else:
            store = MemoryCacheStore()
        return cls(
            config,
            upstream=UpstreamClient(config, metrics=metrics, transport=transport),
            cache=TTLCache(store, metrics=metrics),
            metrics=metrics,
        )

    async def close(self) -> None:
        await self.cache.close()

    async def __aenter__(self) -> "LibraryGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Spec construction

    def build_spec(
        self,
        operation: str,
        path: str,
        *cache_args,
        key: Optional[str] = None,
        query: Optional[Mapping[str, Scalar]] = None,
        refresh: bool = False,
        method: HttpMethod = HttpMethod.GET,
        body: Any = None,
    ) -> RequestSpec:
        """Build a spec whose cache key and TTL follow the cache policy."""
        decision = self.policy.decide(operation, *cache_args)
        return RequestSpec(
            key=key or operation,
            path=path,
            method=method,
            query=dict(query or {}),
            body=body,
            cache_key=decision.key,
            cache_ttl=decision.ttl if not decision.bypass else None,
            cacheable=not decision.bypass,
            refresh=refresh,
        )

    # ------------------------------------------------------------------
    # Execution helpers

    async def _fetch(self, spec: RequestSpec) -> Optional[Envelope]:
        try:
            return await self.pipeline.run(spec)
        except GatewayError as exc:
            self.logger.error(
                "Upstream operation failed",
                operation=spec.key,
                endpoint=spec.path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

    def _decode(self, spec: RequestSpec, kind: RecordKind, envelope: Optional[Envelope]) -> Any:
        if envelope is None:
            return None
        try:
            return decode_envelope(kind, envelope)
        except DecodeFailure as exc:
            self.logger.error(
                "Could not decode upstream payload",
                operation=spec.key,
                endpoint=spec.path,
                kind=kind.value,
                error=str(exc),
            )
            return None

    async def _fetch_record(self, spec: RequestSpec, kind: RecordKind) -> Any:
        return self._decode(spec, kind, await self._fetch(spec))

    async def _fetch_books(self, spec: RequestSpec) -> List[Book]:
        return await self._fetch_record(spec, RecordKind.BOOK_LIST) or []

    async def _fetch_data(self, spec: RequestSpec) -> Any:
        envelope = await self._fetch(spec)
        return envelope.data if envelope is not None and envelope.has_data else None

    async def _fetch_page(self, spec: RequestSpec, kind: RecordKind) -> Optional[Tuple[list, Optional[Pagination]]]:
        envelope = await self._fetch(spec)
        items = self._decode(spec, kind, envelope)
        if items is None:
            return None
        pagination = None
        raw_pagination = envelope.extras.get("pagination")
        if raw_pagination is not None:
            try:
                pagination = decode(RecordKind.PAGINATION, raw_pagination)
            except DecodeFailure as exc:
                self.logger.warning("Ignoring malformed pagination", operation=spec.key, error=str(exc))
        return items, pagination

    # ------------------------------------------------------------------
    # Books

    async def get_collection_status(self, refresh: bool = False) -> Optional[CollectionStats]:
        spec = self.build_spec("collection_status", "/books/status", query={"refresh": refresh}, refresh=refresh)
        return await self._fetch_record(spec, RecordKind.COLLECTION_STATS)

    async def get_book_details(self, book_id: str, refresh: bool = False) -> Optional[Book]:
        spec = self.build_spec(
            "book_details", f"/books/{_segment(book_id)}", book_id,
            query={"refresh": refresh}, refresh=refresh,
        )
        return await self._fetch_record(spec, RecordKind.BOOK)

    async def get_latest_books(self, count: int = 5, refresh: bool = False) -> List[Book]:
        spec = self.build_spec(
            "latest_books", f"/books/latest/{count}", count,
            query={"refresh": refresh}, refresh=refresh,
        )
        return await self._fetch_books(spec)

    async def get_random_books(self, count: int = 5, refresh: bool = False) -> List[Book]:
        spec = self.build_spec("random_books", f"/books/random/{count}", count, query={"refresh": refresh})
        return await self._fetch_books(spec)

    async def get_forgotten_books(self, count: int = 5, refresh: bool = False) -> List[Book]:
        spec = self.build_spec(
            "forgotten_books", f"/books/forgotten/{count}", count,
            query={"refresh": refresh}, refresh=refresh,
        )
        return await self._fetch_books(spec)

    async def get_recently_visited_books(self, count: int = 5, refresh: bool = False) -> List[Book]:
        spec = self.build_spec(
            "recently_visited", "/books/last_visited", count,
            query={"count": count, "refresh": refresh}, refresh=refresh,
        )
        return await self._fetch_books(spec)

    async def get_todays_books(self, refresh: bool = False) -> List[Book]:
        spec = self.build_spec("today_books", "/books/today", query={"refresh": refresh}, refresh=refresh)
        return await self._fetch_books(spec)

    async def get_books_for_date(self, month: int, day: int, refresh: bool = False) -> List[Book]:
        spec = self.build_spec(
            "books_for_date", f"/books/today/{month}/{day}", month, day,
            query={"refresh": refresh}, refresh=refresh,
        )
        return await self._fetch_books(spec)

    async def search_books(self, search_type: str, value: str = "", page: int = 1) -> Optional[SearchResult]:
        path = f"/books/search/{_segment(search_type)}"
        if value:
            path += f"/{_segment(value)}"
        if page > 1:
            path += f"/{page}"
        spec = self.build_spec("search", path, search_type, value, page)
        return await self._fetch_record(spec, RecordKind.SEARCH_RESULT)

    async def get_books_list(
        self, list_type: str = "title", value: str = "-", page: int = 1
    ) -> Optional[Tuple[List[Book], Optional[Pagination]]]:
        path = f"/books/list/{_segment(list_type)}/{_segment(value)}/{page}"
        spec = self.build_spec("books_list", path, list_type, value, page)
        return await self._fetch_page(spec, RecordKind.BOOK_LIST)

    async def get_related_books(self, book_id: str, count: int = 5, refresh: bool = False) -> List[Book]:
        spec = self.build_spec(
            "related_books", f"/books/{_segment(book_id)}/related/{count}", book_id, count,
            query={"refresh": refresh}, refresh=refresh,
        )
        return await self._fetch_books(spec)

    async def add_tags_to_book(self, book_id: str, tags: List[str]) -> Optional[Envelope]:
        spec = RequestSpec(
            key="add_tags",
            path=f"/books/{_segment(book_id)}/tags",
            method=HttpMethod.POST,
            body={"tags": list(tags)},
        )
        envelope = await self._fetch(spec)
        if envelope is not None and envelope.success:
            await self.cache.invalidate(self.policy.key_for("book_details", book_id))
        return envelope

    async def get_visit_history(self, days: int = 30, refresh: bool = False) -> Optional[Any]:
        spec = self.build_spec(
            "visit_history", "/books/visit_history", days,
            query={"days": days, "refresh": refresh}, refresh=refresh,
        )
        return await self._fetch_data(spec)

    # ------------------------------------------------------------------
    # Misc and readings

    async def get_word_of_the_day(self, refresh: bool = False) -> Optional[WordOfTheDay]:
        spec = self.build_spec("wotd", "/misc/wotd", query={"refresh": refresh}, refresh=refresh)
        return await self._fetch_record(spec, RecordKind.WORD_OF_THE_DAY)

    async def get_quote_of_the_day(self, refresh: bool = False) -> Optional[QuoteOfTheDay]:
        spec = self.build_spec("qotd", "/misc/qotd", query={"refresh": refresh}, refresh=refresh)
        return await self._fetch_record(spec, RecordKind.QUOTE_OF_THE_DAY)

    async def get_reading_summary(self, refresh: bool = False) -> Optional[Any]:
        spec = self.build_spec("reading_summary", "/readings/summary", query={"refresh": refresh}, refresh=refresh)
        return await self._fetch_data(spec)

    async def get_latest_readings(self, count: int = 10, refresh: bool = False) -> List[Any]:
        spec = self.build_spec(
            "latest_readings", f"/readings/latest/{count}", count,
            query={"refresh": refresh}, refresh=refresh,
        )
        data = await self._fetch_data(spec)
        return data if isinstance(data, list) else []

    async def get_reading_reviews(
        self, page: int = 1, refresh: bool = False
    ) -> Optional[Tuple[List[ReadingReview], Optional[Pagination]]]:
        spec = self.build_spec(
            "reading_reviews", f"/readings/reviews/{page}", page,
            query={"refresh": refresh}, refresh=refresh,
        )
        return await self._fetch_page(spec, RecordKind.READING_REVIEW_LIST)

    # ------------------------------------------------------------------
    # Batches

    async def run_batch(
        self,
        specs: Mapping[str, RequestSpec],
        *,
        deadline: Optional[float] = None,
    ) -> AggregateResult:
        """Run every spec concurrently; one outcome per key, never raises per unit."""
        return await self.aggregator.fan_out(
            specs,
            deadline=deadline if deadline is not None else self.config.batch_deadline,
        )

    def homepage_requests(self, refresh: bool = False) -> Dict[str, RequestSpec]:
        flag = {"refresh": refresh}
        return {
            "stats": self.build_spec("collection_status", "/books/status", key="stats", query=flag, refresh=refresh),
            "latest": self.build_spec("latest_books", "/books/latest/1", 1, key="latest", refresh=refresh),
            "random": self.build_spec("random_books", "/books/random/4", 4, key="random"),
            "forgotten": self.build_spec("forgotten_books", "/books/forgotten/1", 1, key="forgotten", refresh=refresh),
            "recent": self.build_spec(
                "recently_visited", "/books/last_visited/1", 1, key="recent", refresh=refresh,
            ),
            "wotd": self.build_spec("wotd", "/misc/wotd", key="wotd", query=flag, refresh=refresh),
            "qotd": self.build_spec("qotd", "/misc/qotd", key="qotd", refresh=refresh),
            "reading_summary": self.build_spec(
                "reading_summary", "/readings/summary", key="reading_summary", refresh=refresh,
            ),
            "latest_readings": self.build_spec(
                "latest_readings", "/readings/latest/10", 10, key="latest_readings", refresh=refresh,
            ),
        }

    async def load_homepage(self, refresh: bool = False) -> HomepageData:
        specs = self.homepage_requests(refresh)
        result = await self.run_batch(specs)
        errors = {key: str(error) for key, error in result.failures().items()}

        def record(key: str, kind: RecordKind) -> Any:
            envelope = result.envelope(key)
            value = self._decode(specs[key], kind, envelope)
            if value is None and envelope is not None:
                errors.setdefault(key, envelope.message or "decode failure")
            return value

        def raw(key: str) -> Any:
            envelope = result.envelope(key)
            return envelope.data if envelope is not None and envelope.has_data else None

        latest_readings = raw("latest_readings")
        return HomepageData(
            stats=record("stats", RecordKind.COLLECTION_STATS),
            latest_books=record("latest", RecordKind.BOOK_LIST) or [],
            random_books=record("random", RecordKind.BOOK_LIST) or [],
            forgotten_books=record("forgotten", RecordKind.BOOK_LIST) or [],
            recently_visited_books=record("recent", RecordKind.BOOK_LIST) or [],
            word_of_the_day=record("wotd", RecordKind.WORD_OF_THE_DAY),
            quote_of_the_day=record("qotd", RecordKind.QUOTE_OF_THE_DAY),
            reading_summary=raw("reading_summary"),
            latest_readings=latest_readings if isinstance(latest_readings, list) else [],
            errors=errors,
        )


def _segment(value: Any) -> str:
    return quote(str(value), safe="")
