"""
Unit tests for shared filter validation across listing endpoints
"""

from datetime import datetime, timezone

import pytest

from models.database import PLATFORM_VALUES
from services.comment_filters import (
    RequestKind,
    parse_bool,
    parse_filters,
    parse_non_negative_int,
    parse_timestamp,
)
from utils.config import Config
from utils.exceptions import InvalidPlatformError, SecurityRejection, ValidationError


@pytest.fixture
def config():
    return Config(
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret="test-jwt-secret-with-at-least-32-characters",
        comments_encryption_key="ab" * 32,
        environment="test",
    )


class TestScalarParsers:

    @pytest.mark.parametrize("raw", ["-1", "1.5", "ten", "+3", " "])
    def test_non_negative_int_rejects_non_digits(self, raw):
        with pytest.raises(ValidationError):
            parse_non_negative_int("offset", raw)

    def test_non_negative_int_default(self):
        assert parse_non_negative_int("offset", None, 0) == 0
        assert parse_non_negative_int("offset", "15") == 15

    def test_bool_values(self):
        assert parse_bool("facets", "true") is True
        assert parse_bool("facets", "0") is False
        assert parse_bool("facets", None, default=True) is True
        with pytest.raises(ValidationError):
            parse_bool("facets", "maybe")

    def test_bare_date_bounds(self):
        assert parse_timestamp("date_from", "2024-01-01") == datetime(2024, 1, 1, tzinfo=timezone.utc)
        end = parse_timestamp("date_to", "2024-01-01", end_of_day=True)
        assert end.date() == datetime(2024, 1, 1).date()
        assert end.hour == 23 and end.minute == 59

    def test_aware_timestamp_is_normalized_to_utc(self):
        parsed = parse_timestamp("date_from", "2024-01-01T10:00:00+02:00")

        assert parsed == datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
        assert parsed.utcoffset().total_seconds() == 0

    def test_offsetless_timestamp_is_read_as_utc(self):
        """
        Business Critical: Filter bounds compare against aware UTC columns
        """
        parsed = parse_timestamp("date_from", "2024-01-01T10:00:00")

        assert parsed == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

    def test_zulu_suffix(self):
        assert parse_timestamp("date_from", "2024-01-01T10:00:00Z") == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


class TestParseFilters:

    def test_list_defaults(self, config):
        filters = parse_filters(RequestKind.LIST, {}, config)

        assert filters.limit == 20
        assert filters.offset == 0
        assert filters.sort == "created_at"
        assert filters.order == "desc"
        assert filters.query is None

    def test_search_defaults_to_relevance(self, config):
        filters = parse_filters(RequestKind.SEARCH, {"q": "great"}, config)

        assert filters.sort == "relevance"
        assert filters.search_type == "plain"

    def test_limit_too_high_message_differs_per_kind(self, config):
        with pytest.raises(ValidationError) as search_error:
            parse_filters(RequestKind.SEARCH, {"q": "test", "limit": "500"}, config)
        with pytest.raises(ValidationError) as list_error:
            parse_filters(RequestKind.LIST, {"limit": "500"}, config)

        assert search_error.value.message == "Search limit too high. Maximum allowed: 100"
        assert list_error.value.message == "Limit too high. Maximum allowed: 100"

    def test_zero_limit_is_rejected(self, config):
        with pytest.raises(ValidationError):
            parse_filters(RequestKind.LIST, {"limit": "0"}, config)

    def test_limit_checked_before_query(self, config):
        with pytest.raises(ValidationError) as exc_info:
            parse_filters(RequestKind.SEARCH, {"q": "ab", "limit": "500"}, config)

        assert "limit" in exc_info.value.message

    def test_invalid_path_platform(self, config):
        with pytest.raises(InvalidPlatformError) as exc_info:
            parse_filters(RequestKind.PLATFORM, {}, config, path_platform="myspace")

        assert exc_info.value.extra["valid_platforms"] == PLATFORM_VALUES

    def test_path_platform_is_case_insensitive(self, config):
        filters = parse_filters(RequestKind.PLATFORM, {}, config, path_platform="Instagram")

        assert filters.platforms == ["instagram"]
        assert filters.echo()["platform"] == "instagram"

    def test_search_platform_list(self, config):
        filters = parse_filters(RequestKind.SEARCH, {"q": "great", "platforms": "tiktok, youtube,tiktok"}, config)

        assert filters.platforms == ["tiktok", "youtube"]
        assert filters.echo()["platforms"] == ["tiktok", "youtube"]
        assert filters.echo()["platform"] is None

    def test_unknown_platform_in_list(self, config):
        with pytest.raises(ValidationError):
            parse_filters(RequestKind.SEARCH, {"q": "great", "platforms": "tiktok,orkut"}, config)

    def test_inverted_date_range(self, config):
        with pytest.raises(ValidationError):
            parse_filters(RequestKind.LIST, {"date_from": "2024-02-01", "date_to": "2024-01-01"}, config)

    def test_same_day_range_covers_whole_day(self, config):
        filters = parse_filters(RequestKind.LIST, {"date_from": "2024-02-01", "date_to": "2024-02-01"}, config)

        assert filters.date_from < filters.date_to
        assert filters.echo()["date_range"] == {"from": "2024-02-01", "to": "2024-02-01"}

    def test_listing_rejects_relevance_sort(self, config):
        with pytest.raises(ValidationError):
            parse_filters(RequestKind.LIST, {"sort": "relevance"}, config)

    @pytest.mark.parametrize("order", ["asc", "desc"])
    def test_relevance_sort_rejects_explicit_order(self, config, order):
        """
        Business Critical: A sort direction that would be ignored is refused, not silently dropped
        """
        with pytest.raises(ValidationError) as exc_info:
            parse_filters(RequestKind.SEARCH, {"q": "great", "order": order}, config)

        assert exc_info.value.details == {"field": "order"}

    def test_order_applies_to_other_search_sorts(self, config):
        filters = parse_filters(RequestKind.SEARCH, {"q": "great", "sort": "created_at", "order": "asc"}, config)

        assert (filters.sort, filters.order) == ("created_at", "asc")

    def test_malicious_listing_search(self, config):
        with pytest.raises(SecurityRejection):
            parse_filters(RequestKind.LIST, {"search": "x' OR 1=1"}, config)

    def test_search_extras(self, config):
        filters = parse_filters(
            RequestKind.SEARCH,
            {
                "q": "great",
                "author": "jane",
                "engagement_min": "10",
                "content_length_min": "5",
                "content_length_max": "50",
                "facets": "true",
                "semantic": "yes",
            },
            config,
        )

        assert filters.author == "jane"
        assert filters.engagement_min == 10
        assert (filters.content_length_min, filters.content_length_max) == (5, 50)
        assert filters.facets is True
        assert filters.search_type == "semantic"

    def test_inverted_content_length(self, config):
        with pytest.raises(ValidationError):
            parse_filters(
                RequestKind.SEARCH,
                {"q": "great", "content_length_min": "50", "content_length_max": "5"},
                config,
            )

    def test_platform_prefix_scopes_search(self, config):
        filters = parse_filters(RequestKind.SEARCH, {"q": "tiktok:dance"}, config)

        assert filters.platforms == ["tiktok"]
        assert filters.search_type == "platform-scoped"

    def test_explicit_platforms_win_over_prefix(self, config):
        filters = parse_filters(RequestKind.SEARCH, {"q": "tiktok:dance", "platform": "youtube"}, config)

        assert filters.platforms == ["youtube"]

    def test_queue_defaults(self, config):
        filters = parse_filters(RequestKind.QUEUE, {"priority": "HIGH", "status": "bogus"}, config)

        assert filters.limit == 50
        assert filters.priority == "high"
        assert (filters.sort, filters.order) == ("created_at", "asc")
        assert filters.status is None
        assert filters.echo() == {"platform": None, "status": None, "priority": "high"}

    def test_cache_key_parts_distinguish_pages(self, config):
        first = parse_filters(RequestKind.SEARCH, {"q": "great"}, config)
        second = parse_filters(RequestKind.SEARCH, {"q": "great", "offset": "20"}, config)

        assert first.cache_key_parts() != second.cache_key_parts()
