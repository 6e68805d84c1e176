"""
Unit tests for advanced query parsing and SQL predicate construction
"""

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from services.comment_filters import RequestKind, parse_filters
from services.query_builder import (
    aggregate_dimensions,
    build_conditions,
    candidates_statement,
    day_expression,
    grouped_count_statement,
    listing_statement,
    parse_query,
    priority_condition,
    text_condition,
    tokenize,
)
from utils.config import Config


@pytest.fixture
def config():
    return Config(
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret="test-jwt-secret-with-at-least-32-characters",
        comments_encryption_key="ab" * 32,
        environment="test",
    )


def _sql(statement, dialect) -> str:
    return str(statement.compile(dialect=dialect, compile_kwargs={"literal_binds": True}))


class TestParseQuery:

    @pytest.mark.parametrize("raw,expected", [
        ("great product", "plain"),
        ('"great product"', "phrase"),
        ("great AND product", "boolean"),
        ("great OR awesome", "boolean"),
        ("great -price", "boolean"),
        ("@brand", "mention"),
        ("#launch", "hashtag"),
        ("instagram:great", "platform-scoped"),
        ("instagram:great OR awesome", "platform-scoped"),
    ])
    def test_search_type(self, raw, expected):
        assert parse_query(raw).search_type == expected

    def test_or_joins_alternatives_in_one_group(self):
        parsed = parse_query("great OR awesome product")

        assert parsed.groups == [["great", "awesome"], ["product"]]

    def test_exclusions(self):
        parsed = parse_query("great NOT price -shipping")

        assert parsed.groups == [["great"]]
        assert parsed.excluded == ["price", "shipping"]

    def test_phrase_is_kept_whole(self):
        parsed = parse_query('"fast shipping" love')

        assert parsed.phrases == ["fast shipping"]
        assert parsed.groups == [["fast shipping"], ["love"]]
        assert parsed.terms == ["fast", "shipping", "love"]

    def test_unknown_prefix_is_plain_text(self):
        parsed = parse_query("note:great")

        assert parsed.platform is None
        assert parsed.groups == [["note:great"]]

    def test_websearch_rendering(self):
        parsed = parse_query('"fast shipping" OR quick -late')

        assert parsed.websearch() == '"fast shipping" or quick -late'

    def test_tokenize_keeps_mentions_and_hashtags(self):
        assert tokenize("Hey @Brand, #Launch day!") == ["hey", "@brand", "#launch", "day"]


class TestConditions:

    def test_sqlite_uses_substring_predicates(self):
        condition = text_condition(parse_query("great -price"), "sqlite")
        sql = _sql(condition, sqlite.dialect())

        assert "lower(comments.content) LIKE" in sql
        assert "NOT" in sql

    def test_postgresql_uses_full_text_index(self):
        condition = text_condition(parse_query("great OR awesome"), "postgresql")
        sql = _sql(condition, postgresql.dialect())

        assert "to_tsvector('english'::regconfig, comments.content)" in sql
        assert "websearch_to_tsquery" in sql

    def test_empty_query_has_no_condition(self):
        assert text_condition(parse_query("   "), "sqlite") is None

    def test_owner_scope_is_first(self, config):
        filters = parse_filters(RequestKind.LIST, {"status": "approved"}, config)
        conditions = build_conditions(filters, "user-1", "sqlite")

        assert len(conditions) == 3
        assert "comments.user_id" in str(conditions[0])
        assert "comments.deleted_at IS NULL" in str(conditions[1])

    def test_moderator_view_has_no_owner_scope(self, config):
        filters = parse_filters(RequestKind.QUEUE, {}, config)
        sql = " ".join(str(c) for c in build_conditions(filters, None, "sqlite"))

        assert "user_id" not in sql
        assert "comments.status IN" in sql

    def test_listing_paginates_after_ordering(self, config):
        filters = parse_filters(RequestKind.LIST, {"limit": "10", "offset": "30", "sort": "sentiment_score"}, config)
        sql = _sql(listing_statement(filters, "user-1", "sqlite"), sqlite.dialect())

        assert sql.index("ORDER BY") < sql.index("LIMIT")
        assert "comments.sentiment_score IS NULL" in sql
        assert "LIMIT 10 OFFSET 30" in sql

    def test_relevance_candidates_are_newest_first(self, config):
        filters = parse_filters(RequestKind.SEARCH, {"q": "great"}, config)
        sql = _sql(candidates_statement(filters, "user-1", "sqlite", 1000), sqlite.dialect())

        assert "comments.created_at DESC" in sql
        assert "LIMIT 1000" in sql

    def test_high_priority_includes_flagged(self):
        sql = _sql(priority_condition("high"), sqlite.dialect())

        assert "comments.status = 'flagged'" in sql

    @pytest.mark.parametrize("priority", ["medium", "low"])
    def test_lower_priorities_exclude_flagged(self, priority):
        """
        Business Critical: A flagged comment is labelled high, so it must not match medium or low
        """
        sql = _sql(priority_condition(priority), sqlite.dialect())

        assert "comments.status != 'flagged'" in sql


class TestAggregates:

    def test_grouped_counts_are_not_capped(self, config):
        """
        Business Critical: Facet and statistics counts cover the whole filtered set
        """
        filters = parse_filters(RequestKind.SEARCH, {"q": "great"}, config)
        dimensions = aggregate_dimensions("sqlite")

        sql = _sql(grouped_count_statement(filters, "user-1", "sqlite", dimensions["by_platform"]), sqlite.dialect())

        assert "GROUP BY" in sql
        assert "LIMIT" not in sql
        assert "comments.user_id = 'user-1'" in sql

    def test_priority_dimension_is_opt_in(self):
        assert "by_priority" not in aggregate_dimensions("sqlite")
        assert "by_priority" in aggregate_dimensions("sqlite", include_priority=True)

    def test_postgres_days_are_taken_in_utc(self):
        sql = _sql(day_expression("postgresql"), postgresql.dialect())

        assert "timezone('UTC', comments.created_at)" in sql
