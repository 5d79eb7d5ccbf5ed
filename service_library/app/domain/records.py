"""
Typed domain records and the record mapper.

Each record kind is a tagged variant with an explicit list of required
identity fields. Everything else falls back to a declared default, because
the upstream schema grows additively.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple

from shared.errors import DecodeFailure

from .requests import Envelope


class RecordKind(str, Enum):
    BOOK = "book"
    BOOK_LIST = "book_list"
    COLLECTION_STATS = "collection_stats"
    WORD_OF_THE_DAY = "word_of_the_day"
    QUOTE_OF_THE_DAY = "quote_of_the_day"
    SEARCH_RESULT = "search_result"
    READING_REVIEW_LIST = "reading_review_list"
    PAGINATION = "pagination"


_MISSING = object()


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not integral")
        return int(value)
    return int(value)


def _as_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    return float(value)


def _as_str(value: Any) -> str:
    if isinstance(value, (dict, list)):
        raise ValueError("container is not a string")
    return str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str) and value.strip().lower() in ("1", "true", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("0", "false", "no", ""):
        return False
    raise ValueError(f"{value!r} is not a boolean")


def _as_list(value: Any) -> list:
    if not isinstance(value, list):
        raise ValueError("not a list")
    return list(value)


def _as_dict(value: Any) -> dict:
    if not isinstance(value, dict):
        raise ValueError("not an object")
    return dict(value)


def _required(payload: Dict[str, Any], name: str, coerce: Callable[[Any], Any], kind: RecordKind) -> Any:
    value = payload.get(name, _MISSING)
    if value is _MISSING or value is None or value == "":
        raise DecodeFailure(f"{kind.value} is missing required field '{name}'", kind=kind.value)
    try:
        return coerce(value)
    except (TypeError, ValueError) as exc:
        raise DecodeFailure(
            f"{kind.value} field '{name}' has invalid value {value!r}",
            kind=kind.value,
            details={"field": name, "error": str(exc)},
        ) from exc


def _optional(payload: Dict[str, Any], name: str, coerce: Callable[[Any], Any], default: Any) -> Any:
    value = payload.get(name)
    if value is None:
        return default
    try:
        return coerce(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Book:
    """A book in the collection."""

    REQUIRED: ClassVar[Tuple[str, ...]] = ("id", "bookid", "title")

    id: int
    bookid: str
    title: str
    author: str = ""
    translated: bool = False
    copyrighter: Optional[str] = None
    region: str = ""
    location: str = ""
    purchdate: str = ""
    price: float = 0.0
    pubdate: Optional[str] = None
    printdate: Optional[str] = None
    ver: Optional[str] = None
    deco: Optional[str] = None
    isbn: Optional[str] = None
    category: Optional[str] = None
    ol: Optional[str] = None
    kword: Optional[int] = None
    page: Optional[int] = None
    intro: Optional[str] = None
    instock: Optional[bool] = None
    publisher_name: Optional[str] = None
    place_name: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    reviews: List[Any] = field(default_factory=list)
    cover_uri: Optional[str] = None
    total_visits: Optional[int] = None
    last_visited: Optional[str] = None
    visit_country: Optional[str] = None
    days_since_visit: Optional[int] = None
    years_ago: Optional[int] = None

    @property
    def has_cover(self) -> bool:
        return bool(self.cover_uri)

    @classmethod
    def from_payload(cls, payload: Any) -> "Book":
        kind = RecordKind.BOOK
        data = _expect_object(payload, kind)
        return cls(
            id=_required(data, "id", _as_int, kind),
            bookid=_required(data, "bookid", _as_str, kind),
            title=_required(data, "title", _as_str, kind),
            author=_optional(data, "author", _as_str, ""),
            translated=_optional(data, "translated", _as_bool, False),
            copyrighter=_optional(data, "copyrighter", _as_str, None),
            region=_optional(data, "region", _as_str, ""),
            location=_optional(data, "location", _as_str, ""),
            purchdate=_optional(data, "purchdate", _as_str, ""),
            price=_optional(data, "price", _as_float, 0.0),
            pubdate=_optional(data, "pubdate", _as_str, None),
            printdate=_optional(data, "printdate", _as_str, None),
            ver=_optional(data, "ver", _as_str, None),
            deco=_optional(data, "deco", _as_str, None),
            isbn=_optional(data, "isbn", _as_str, None),
            category=_optional(data, "category", _as_str, None),
            ol=_optional(data, "ol", _as_str, None),
            kword=_optional(data, "kword", _as_int, None),
            page=_optional(data, "page", _as_int, None),
            intro=_optional(data, "intro", _as_str, None),
            instock=_optional(data, "instock", _as_bool, None),
            publisher_name=_optional(data, "publisher_name", _as_str, None),
            place_name=_optional(data, "place_name", _as_str, None),
            tags=[str(tag) for tag in _optional(data, "tags", _as_list, [])],
            reviews=_optional(data, "reviews", _as_list, []),
            cover_uri=_optional(data, "cover_uri", _as_str, None),
            total_visits=_optional(data, "total_visits", _as_int, None),
            last_visited=_optional(data, "last_visited", _as_str, None),
            visit_country=_optional(data, "visit_country", _as_str, None),
            days_since_visit=_optional(data, "days_since_visit", _as_int, None),
            years_ago=_optional(data, "years_ago", _as_int, None),
        )


@dataclass(frozen=True)
class CollectionStats:
    """Aggregate statistics for the whole collection."""

    REQUIRED: ClassVar[Tuple[str, ...]] = ()

    total_books: int = 0
    total_authors: int = 0
    total_publishers: int = 0
    total_countries: int = 0
    total_value: float = 0.0
    books_this_year: int = 0
    value_this_year: float = 0.0
    books_this_month: int = 0
    value_this_month: float = 0.0
    top_authors: List[Any] = field(default_factory=list)
    top_publishers: List[Any] = field(default_factory=list)
    top_countries: List[Any] = field(default_factory=list)
    recent_purchases: List[Any] = field(default_factory=list)
    last_updated: Optional[str] = None

    @property
    def is_growing(self) -> bool:
        return self.books_this_month > 0

    @classmethod
    def from_payload(cls, payload: Any) -> "CollectionStats":
        data = _expect_object(payload, RecordKind.COLLECTION_STATS)
        return cls(
            total_books=_optional(data, "total_books", _as_int, 0),
            total_authors=_optional(data, "total_authors", _as_int, 0),
            total_publishers=_optional(data, "total_publishers", _as_int, 0),
            total_countries=_optional(data, "total_countries", _as_int, 0),
            total_value=_optional(data, "total_value", _as_float, 0.0),
            books_this_year=_optional(data, "books_this_year", _as_int, 0),
            value_this_year=_optional(data, "value_this_year", _as_float, 0.0),
            books_this_month=_optional(data, "books_this_month", _as_int, 0),
            value_this_month=_optional(data, "value_this_month", _as_float, 0.0),
            top_authors=_optional(data, "top_authors", _as_list, []),
            top_publishers=_optional(data, "top_publishers", _as_list, []),
            top_countries=_optional(data, "top_countries", _as_list, []),
            recent_purchases=_optional(data, "recent_purchases", _as_list, []),
            last_updated=_optional(data, "last_updated", _as_str, None),
        )


@dataclass(frozen=True)
class WordOfTheDay:
    REQUIRED: ClassVar[Tuple[str, ...]] = ("word",)

    word: str
    id: int = 0
    meaning: str = ""
    sentence: str = ""
    type: str = ""

    @property
    def has_examples(self) -> bool:
        return bool(self.sentence)

    @classmethod
    def from_payload(cls, payload: Any) -> "WordOfTheDay":
        kind = RecordKind.WORD_OF_THE_DAY
        data = _expect_object(payload, kind)
        return cls(
            word=_required(data, "word", _as_str, kind),
            id=_optional(data, "id", _as_int, 0),
            meaning=_optional(data, "meaning", _as_str, ""),
            sentence=_optional(data, "sentence", _as_str, ""),
            type=_optional(data, "type", _as_str, ""),
        )


@dataclass(frozen=True)
class QuoteOfTheDay:
    REQUIRED: ClassVar[Tuple[str, ...]] = ("quote",)

    quote: str
    id: int = 0
    source: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "QuoteOfTheDay":
        kind = RecordKind.QUOTE_OF_THE_DAY
        data = _expect_object(payload, kind)
        return cls(
            quote=_required(data, "quote", _as_str, kind),
            id=_optional(data, "id", _as_int, 0),
            source=_optional(data, "source", _as_str, ""),
        )


@dataclass(frozen=True)
class Pagination:
    REQUIRED: ClassVar[Tuple[str, ...]] = ()

    current_page: int = 1
    total_pages: int = 1
    per_page: int = 20
    total_count: int = 0

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    @classmethod
    def from_payload(cls, payload: Any) -> "Pagination":
        data = _expect_object(payload, RecordKind.PAGINATION)
        return cls(
            current_page=_optional(data, "current_page", _as_int, 1),
            total_pages=_optional(data, "total_pages", _as_int, 1),
            per_page=_optional(data, "per_page", _as_int, 20),
            total_count=_optional(data, "total_count", _as_int, 0),
        )


@dataclass(frozen=True)
class SearchResult:
    REQUIRED: ClassVar[Tuple[str, ...]] = ()

    books: List[Book] = field(default_factory=list)
    total_count: int = 0
    current_page: int = 1
    per_page: int = 20
    total_pages: int = 1
    query: str = ""
    search_time: float = 0.0
    facets: Dict[str, Any] = field(default_factory=dict)
    suggestions: List[Any] = field(default_factory=list)

    @property
    def has_results(self) -> bool:
        return self.total_count > 0

    @property
    def pagination(self) -> Pagination:
        return Pagination(
            current_page=self.current_page,
            total_pages=self.total_pages,
            per_page=self.per_page,
            total_count=self.total_count,
        )

    @classmethod
    def from_payload(cls, payload: Any) -> "SearchResult":
        data = _expect_object(payload, RecordKind.SEARCH_RESULT)
        raw_books = data.get("books")
        books = decode_book_list(raw_books) if raw_books is not None else []
        return cls(
            books=books,
            total_count=_optional(data, "total_count", _as_int, 0),
            current_page=_optional(data, "current_page", _as_int, 1),
            per_page=_optional(data, "per_page", _as_int, 20),
            total_pages=_optional(data, "total_pages", _as_int, 1),
            query=_optional(data, "query", _as_str, ""),
            search_time=_optional(data, "search_time", _as_float, 0.0),
            facets=_optional(data, "facets", _as_dict, {}),
            suggestions=_optional(data, "suggestions", _as_list, []),
        )


@dataclass(frozen=True)
class ReadingReview:
    """A reading note attached to a book."""

    REQUIRED: ClassVar[Tuple[str, ...]] = ("title",)

    title: str
    bookid: str = ""
    book_title: str = ""
    datein: str = ""
    uri: str = ""
    feature: str = ""
    cover_uri: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ReadingReview":
        kind = RecordKind.READING_REVIEW_LIST
        data = _expect_object(payload, kind)
        return cls(
            title=_required(data, "title", _as_str, kind),
            bookid=_optional(data, "bookid", _as_str, ""),
            book_title=_optional(data, "book_title", _as_str, ""),
            datein=_optional(data, "datein", _as_str, ""),
            uri=_optional(data, "uri", _as_str, ""),
            feature=_optional(data, "feature", _as_str, ""),
            cover_uri=_optional(data, "cover_uri", _as_str, None),
        )


def _expect_object(payload: Any, kind: RecordKind) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise DecodeFailure(
            f"{kind.value} payload must be an object, got {type(payload).__name__}",
            kind=kind.value,
        )
    return payload


def _decode_list(payload: Any, kind: RecordKind, item: Callable[[Any], Any]) -> list:
    if not isinstance(payload, list):
        raise DecodeFailure(
            f"{kind.value} payload must be a list, got {type(payload).__name__}",
            kind=kind.value,
        )
    records = []
    for index, entry in enumerate(payload):
        try:
            records.append(item(entry))
        except DecodeFailure as exc:
            raise DecodeFailure(
                f"{kind.value}[{index}]: {exc.message}",
                kind=kind.value,
                details={**exc.details, "index": index, "item_kind": exc.kind, "kind": kind.value},
            ) from exc
    return records


def decode_book_list(payload: Any) -> List[Book]:
    return _decode_list(payload, RecordKind.BOOK_LIST, Book.from_payload)


def decode_reading_reviews(payload: Any) -> List[ReadingReview]:
    return _decode_list(payload, RecordKind.READING_REVIEW_LIST, ReadingReview.from_payload)


_DECODERS: Dict[RecordKind, Callable[[Any], Any]] = {
    RecordKind.BOOK: Book.from_payload,
    RecordKind.BOOK_LIST: decode_book_list,
    RecordKind.COLLECTION_STATS: CollectionStats.from_payload,
    RecordKind.WORD_OF_THE_DAY: WordOfTheDay.from_payload,
    RecordKind.QUOTE_OF_THE_DAY: QuoteOfTheDay.from_payload,
    RecordKind.SEARCH_RESULT: SearchResult.from_payload,
    RecordKind.READING_REVIEW_LIST: decode_reading_reviews,
    RecordKind.PAGINATION: Pagination.from_payload,
}


def decode(kind: RecordKind, payload: Any) -> Any:
    """Decode ``payload`` into the record for ``kind``; raises DecodeFailure."""
    try:
        decoder = _DECODERS[RecordKind(kind)]
    except (KeyError, ValueError) as exc:
        raise DecodeFailure(f"Unknown record kind {kind!r}", kind=str(kind)) from exc
    return decoder(payload)


def decode_envelope(kind: RecordKind, envelope: Envelope) -> Any:
    """Decode the ``data`` member of a successful envelope."""
    kind = RecordKind(kind)
    if not envelope.success:
        raise DecodeFailure(
            envelope.message or "Upstream reported failure",
            kind=kind.value,
            details={"success": False},
        )
    if envelope.data is None:
        raise DecodeFailure("Envelope has no data", kind=kind.value)
    return decode(kind, envelope.data)
