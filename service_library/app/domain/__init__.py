"""
Domain layer for the Library Gateway.

Request specifications, the upstream envelope, typed records and the pure
presentation helpers built on top of them.
"""

from .requests import Envelope, HttpMethod, RequestSpec
from .records import (
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

__all__ = [
    "Envelope",
    "HttpMethod",
    "RequestSpec",
    "Book",
    "CollectionStats",
    "Pagination",
    "QuoteOfTheDay",
    "ReadingReview",
    "RecordKind",
    "SearchResult",
    "WordOfTheDay",
    "decode",
    "decode_envelope",
]
