"""
Unit tests for the record mapper and presentation helpers.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_library.app.domain import formatting
from service_library.app.domain.records import (
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
from service_library.app.domain.requests import Envelope
from shared.errors import DecodeFailure


BOOK = {
    "id": 42,
    "bookid": "00042",
    "title": "红楼梦",
    "author": "曹雪芹",
    "region": "中国",
    "purchdate": "2021-03-05",
    "price": "128.5",
    "tags": ["classic", "novel"],
}

SAMPLES = {
    RecordKind.BOOK: (BOOK, Book),
    RecordKind.WORD_OF_THE_DAY: ({"word": "ephemeral", "meaning": "short-lived"}, WordOfTheDay),
    RecordKind.QUOTE_OF_THE_DAY: ({"quote": "Know thyself", "source": "Delphi"}, QuoteOfTheDay),
}


class TestRequiredFields:
    """Missing identity fields fail decoding."""

    @pytest.mark.parametrize("kind,field_name", [
        (kind, name)
        for kind, (_, record) in SAMPLES.items()
        for name in record.REQUIRED
    ])
    def test_missing_required_field(self, kind, field_name):
        payload = dict(SAMPLES[kind][0])
        del payload[field_name]

        with pytest.raises(DecodeFailure) as exc_info:
            decode(kind, payload)

        assert field_name in exc_info.value.message
        assert exc_info.value.details["kind"] == kind.value

    @pytest.mark.parametrize("value", [None, ""])
    def test_null_or_empty_identity_rejected(self, value):
        with pytest.raises(DecodeFailure):
            decode(RecordKind.BOOK, {**BOOK, "title": value})

    def test_unconvertible_identity_rejected(self):
        with pytest.raises(DecodeFailure) as exc_info:
            decode(RecordKind.BOOK, {**BOOK, "id": "forty-two"})

        assert exc_info.value.details["field"] == "id"

    def test_review_requires_title(self):
        with pytest.raises(DecodeFailure):
            decode(RecordKind.READING_REVIEW_LIST, [{"bookid": "1"}])

    def test_non_object_payload(self):
        with pytest.raises(DecodeFailure):
            decode(RecordKind.BOOK, ["not", "an", "object"])


class TestOptionalFields:
    """Missing or malformed optional fields fall back to defaults."""

    def test_book_defaults(self):
        book = decode(RecordKind.BOOK, {"id": 1, "bookid": "1", "title": "T"})

        assert book.author == ""
        assert book.price == 0.0
        assert book.tags == []
        assert book.isbn is None
        assert book.has_cover is False

    def test_book_coerces_strings(self):
        book = decode(RecordKind.BOOK, BOOK)

        assert book.id == 42
        assert book.price == 128.5
        assert book.tags == ["classic", "novel"]

    def test_malformed_optional_uses_default(self):
        book = decode(RecordKind.BOOK, {**BOOK, "price": "n/a", "page": {"x": 1}, "translated": "maybe"})

        assert book.price == 0.0
        assert book.page is None
        assert book.translated is False

    def test_unknown_fields_ignored(self):
        book = decode(RecordKind.BOOK, {**BOOK, "shelf_colour": "red"})
        assert book.title == "红楼梦"

    def test_stats_all_defaults(self):
        stats = decode(RecordKind.COLLECTION_STATS, {})

        assert stats == CollectionStats()
        assert stats.is_growing is False

    def test_pagination(self):
        page = decode(RecordKind.PAGINATION, {"current_page": 2, "total_pages": 3})

        assert page.has_next and page.has_previous
        assert Pagination().has_next is False


class TestLists:
    def test_book_list(self):
        books = decode(RecordKind.BOOK_LIST, [BOOK, {**BOOK, "id": 43, "bookid": "00043"}])
        assert [b.id for b in books] == [42, 43]

    def test_bad_item_reports_index(self):
        with pytest.raises(DecodeFailure) as exc_info:
            decode(RecordKind.BOOK_LIST, [BOOK, {"id": 2}])

        assert exc_info.value.details["index"] == 1
        assert exc_info.value.details["kind"] == "book_list"
        assert exc_info.value.details["item_kind"] == "book"
        assert exc_info.value.kind == "book_list"

    def test_book_list_requires_list(self):
        with pytest.raises(DecodeFailure):
            decode(RecordKind.BOOK_LIST, {"books": []})

    def test_reading_reviews(self):
        reviews = decode(RecordKind.READING_REVIEW_LIST, [{"title": "On 红楼梦", "bookid": "00042"}])
        assert reviews == [ReadingReview(title="On 红楼梦", bookid="00042")]

    def test_search_result_books_decoded(self):
        result = decode(RecordKind.SEARCH_RESULT, {
            "books": [BOOK],
            "total_count": 45,
            "current_page": 3,
            "per_page": 20,
            "total_pages": 3,
            "query": "红楼",
        })

        assert isinstance(result.books[0], Book)
        assert result.has_results
        assert result.pagination == Pagination(current_page=3, total_pages=3, per_page=20, total_count=45)


class TestDecodeEnvelope:
    def test_successful_envelope(self):
        word = decode_envelope(RecordKind.WORD_OF_THE_DAY, Envelope(success=True, data={"word": "书"}))
        assert word.word == "书"

    def test_unsuccessful_envelope(self):
        with pytest.raises(DecodeFailure) as exc_info:
            decode_envelope(RecordKind.BOOK, Envelope(success=False, message="Book not found"))

        assert exc_info.value.message == "Book not found"

    def test_envelope_without_data(self):
        with pytest.raises(DecodeFailure):
            decode_envelope(RecordKind.BOOK, Envelope(success=True))

    def test_unknown_kind(self):
        with pytest.raises(DecodeFailure):
            decode("magazine", {})


class TestFormatting:
    """Presentation helpers."""

    def test_currency(self):
        assert formatting.format_currency(1234.5) == "¥1,234.50"

    def test_cn_date(self):
        assert formatting.format_cn_date("2021-03-05") == "2021年03月05日"
        assert formatting.format_cn_date("2021-03-05 10:11:12") == "2021年03月05日"
        assert formatting.format_cn_date("someday") == "someday"

    def test_truncate(self):
        assert formatting.truncate("abc", 5) == "abc"
        assert formatting.truncate("abcdef", 3) == "abc..."

    def test_book_summary(self):
        book = Book.from_payload({**BOOK, "translated": 1, "region": "英国", "author": "Austen"})
        assert formatting.book_summary(book) == "[译] 红楼梦 - Austen (英国)"

    def test_book_summary_home_region_omitted(self):
        assert formatting.book_summary(Book.from_payload(BOOK)) == "红楼梦 - 曹雪芹"

    def test_book_helpers(self):
        book = Book.from_payload(BOOK)

        assert formatting.book_price(book) == "¥128.50"
        assert formatting.book_purchase_date(book) == "2021年03月05日"
        assert formatting.tags_string(book) == "classic, novel"

    def test_stats_ratios(self):
        stats = CollectionStats(total_books=200, total_authors=50, total_value=5000.0, books_this_year=30)

        assert formatting.average_book_price(stats) == 25.0
        assert formatting.books_per_author(stats) == 4.0
        assert formatting.year_purchase_percentage(stats) == "15.0%"

    def test_stats_ratios_empty_collection(self):
        stats = CollectionStats()

        assert formatting.average_book_price(stats) == 0.0
        assert formatting.books_per_author(stats) == 0.0
        assert formatting.year_purchase_percentage(stats) == "0.0%"

    def test_result_range(self):
        result = SearchResult(total_count=45, current_page=3, per_page=20)

        assert formatting.result_range(result) == "41-45 of 45"
        assert formatting.result_range(SearchResult()) == "0 results"

    def test_search_time(self):
        assert formatting.search_time(SearchResult(search_time=0.01234)) == "12.34ms"

    def test_pagination_info(self):
        info = formatting.pagination_info(Pagination(current_page=1, total_pages=4))

        assert info["previous"] is None
        assert info["next"] == 2
        assert info["range"] == "Page 1 of 4"
