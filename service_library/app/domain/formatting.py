"""
Presentation helpers derived from decoded records.

These are pure functions of a record's raw fields; decoding never depends on
them.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from .records import Book, CollectionStats, Pagination, SearchResult

CURRENCY_SYMBOL = "¥"
HOME_REGION = "中国"


def format_currency(value: float, symbol: str = CURRENCY_SYMBOL) -> str:
    return f"{symbol}{value:,.2f}"


def format_cn_date(raw: str) -> str:
    """Render an ISO-ish date string as ``YYYY年MM月DD日``; unparsable input is returned as-is."""
    parsed = _parse_date(raw)
    if parsed is None:
        return raw
    return f"{parsed.year:04d}年{parsed.month:02d}月{parsed.day:02d}日"


def _parse_date(raw: str) -> Optional[date]:
    if not raw:
        return None
    text = raw.strip()
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def truncate(text: str, max_length: int = 100) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def book_summary(book: Book) -> str:
    parts = []
    if book.translated:
        parts.append("[译]")
    parts.append(book.title)
    if book.author:
        parts.append(f"- {book.author}")
    if book.region and book.region != HOME_REGION:
        parts.append(f"({book.region})")
    return " ".join(parts)


def book_price(book: Book) -> str:
    return format_currency(book.price)


def book_purchase_date(book: Book) -> str:
    return format_cn_date(book.purchdate)


def tags_string(book: Book) -> str:
    return ", ".join(book.tags)


def average_book_price(stats: CollectionStats) -> float:
    return stats.total_value / stats.total_books if stats.total_books > 0 else 0.0


def books_per_author(stats: CollectionStats) -> float:
    return stats.total_books / stats.total_authors if stats.total_authors > 0 else 0.0


def year_purchase_percentage(stats: CollectionStats) -> str:
    pct = (stats.books_this_year / stats.total_books) * 100 if stats.total_books > 0 else 0.0
    return f"{pct:.1f}%"


def result_range(result: SearchResult) -> str:
    if result.total_count == 0:
        return "0 results"
    start = (result.current_page - 1) * result.per_page + 1
    end = min(result.current_page * result.per_page, result.total_count)
    return f"{start}-{end} of {result.total_count}"


def search_time(result: SearchResult) -> str:
    return f"{result.search_time * 1000:,.2f}ms"


def pagination_info(pagination: Pagination) -> Dict[str, Any]:
    current = pagination.current_page
    return {
        "current": current,
        "total": pagination.total_pages,
        "has_previous": pagination.has_previous,
        "has_next": pagination.has_next,
        "previous": current - 1 if pagination.has_previous else None,
        "next": current + 1 if pagination.has_next else None,
        "range": f"Page {current} of {pagination.total_pages}",
    }
