"""
Unit tests for the comment store - deadlines, idempotent ingestion and exact aggregates
"""

import asyncio
from datetime import date, datetime

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import OperationalError

from services.comment_filters import RequestKind, parse_filters
from services.comment_store import CommentStore
from services.field_encryption import FieldEncryptionAdapter
from utils.config import Config
from utils.database import create_engine_and_session_factory, init_db
from utils.exceptions import DatabaseError, UpstreamTimeout

MASTER_KEY = "00112233445566778899aabbccddeeff" * 2


@pytest.fixture
def config():
    return Config(
        database_url="sqlite+aiosqlite:///:memory:",
        jwt_secret="test-jwt-secret-with-at-least-32-characters",
        comments_encryption_key=MASTER_KEY,
        environment="test",
    )


@pytest.fixture
def encryption():
    return FieldEncryptionAdapter(MASTER_KEY, iterations=1_000)


@pytest.fixture
async def session_factory(tmp_path):
    engine, factory = create_engine_and_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await init_db(engine)
    yield factory
    await engine.dispose()


def _stalled_session():
    async def never_returns(*args, **kwargs):
        await asyncio.sleep(5)

    session = MagicMock()
    session.bind.dialect.name = "sqlite"
    session.execute = AsyncMock(side_effect=never_returns)
    return session


class TestDeadlines:

    @pytest.mark.asyncio
    async def test_listing_deadline_has_its_own_message(self, config):
        """
        Business Critical: A slow store surfaces as a timeout, distinguishable from a failure
        """
        store = CommentStore(_stalled_session(), timeout_seconds=0.05)
        filters = parse_filters(RequestKind.LIST, {}, config)

        with pytest.raises(UpstreamTimeout) as exc_info:
            await store.list_page(filters, "user-1")

        assert exc_info.value.message == "Comments request timed out"

    @pytest.mark.asyncio
    async def test_search_deadline_has_its_own_message(self, config):
        store = CommentStore(_stalled_session(), timeout_seconds=0.05)
        filters = parse_filters(RequestKind.SEARCH, {"q": "great"}, config)

        with pytest.raises(UpstreamTimeout) as exc_info:
            await store.fetch_candidates(filters, "user-1", 100)

        assert exc_info.value.message == "Search request timed out"

    @pytest.mark.asyncio
    async def test_aggregate_deadline(self, config):
        store = CommentStore(_stalled_session(), timeout_seconds=0.05)
        filters = parse_filters(RequestKind.SEARCH, {"q": "great"}, config)

        with pytest.raises(UpstreamTimeout) as exc_info:
            await store.aggregate(filters, "user-1", timeout_message="Search request timed out")

        assert exc_info.value.message == "Search request timed out"

    @pytest.mark.asyncio
    async def test_driver_failure_is_a_database_error(self, config):
        session = MagicMock()
        session.bind.dialect.name = "sqlite"
        session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("connection lost")))
        store = CommentStore(session)

        with pytest.raises(DatabaseError) as exc_info:
            await store.list_page(parse_filters(RequestKind.LIST, {}, config), "user-1")

        assert exc_info.value.message == "Failed to fetch comments"


class TestIngest:

    @pytest.mark.asyncio
    async def test_second_ingest_returns_existing_row(self, session_factory, encryption):
        """
        Business Critical: One stored comment per (user, platform, platform_comment_id)
        """
        async with session_factory() as session:
            store = CommentStore(session)
            first, first_created = await store.ingest(encryption, "user-1", "instagram", "ig_1", "Hello")
            second, second_created = await store.ingest(encryption, "user-1", "instagram", "ig_1", "Edited text")

        assert (first_created, second_created) == (True, False)
        assert second.id == first.id
        assert second.content == "Hello"

    @pytest.mark.asyncio
    async def test_same_platform_id_for_another_user_is_separate(self, session_factory, encryption):
        async with session_factory() as session:
            store = CommentStore(session)
            first, _ = await store.ingest(encryption, "user-1", "instagram", "ig_1", "Hello")
            other, created = await store.ingest(encryption, "user-2", "instagram", "ig_1", "Hello")

        assert created is True
        assert other.id != first.id

    @pytest.mark.asyncio
    async def test_lost_insert_race_returns_winner(self, session_factory, encryption):
        """
        Business Critical: When a concurrent ingest commits the same tuple first,
        the loser reports the winner's row instead of failing
        """
        async with session_factory() as session:
            winner, _ = await CommentStore(session).ingest(encryption, "user-1", "tiktok", "tt_9", "First")

        async with session_factory() as session:
            real_execute = session.execute
            missed = MagicMock()
            missed.scalar_one_or_none.return_value = None
            calls = {"count": 0}

            # The pre-insert lookup runs before the winner is visible
            async def lookup_then_delegate(*args, **kwargs):
                calls["count"] += 1
                if calls["count"] == 1:
                    return missed
                return await real_execute(*args, **kwargs)

            session.execute = lookup_then_delegate
            loser, created = await CommentStore(session).ingest(encryption, "user-1", "tiktok", "tt_9", "Second")

        assert created is False
        assert loser.id == winner.id
        assert calls["count"] == 2

    @pytest.mark.asyncio
    async def test_platform_user_id_is_stored_encrypted(self, session_factory, encryption):
        async with session_factory() as session:
            comment, _ = await CommentStore(session).ingest(
                encryption, "user-1", "instagram", "ig_2", "Hi", platform_user_id="ig_user_42"
            )

        assert comment.platform_user_id != "ig_user_42"
        assert encryption.decrypt(comment.platform_user_id, "user-1:instagram") == "ig_user_42"


class TestAggregate:

    @pytest.mark.asyncio
    async def test_counts_match_every_row(self, session_factory, encryption, config):
        async with session_factory() as session:
            store = CommentStore(session)
            rows = [
                ("a", "instagram", "pending", 0.6, datetime(2024, 2, 1, 9)),
                ("b", "instagram", "approved", -0.7, datetime(2024, 2, 1, 23, 59)),
                ("c", "tiktok", "flagged", None, datetime(2024, 2, 3, 0, 1)),
                ("d", "tiktok", "pending", 0.0, datetime(2024, 2, 3, 12)),
            ]
            for platform_comment_id, platform, status, score, created_at in rows:
                await store.ingest(
                    encryption, "user-1", platform, platform_comment_id, f"Great {platform_comment_id}",
                    status=status, sentiment_score=score, created_at=created_at,
                )
            await store.ingest(encryption, "user-2", "instagram", "z", "Great elsewhere")

            filters = parse_filters(RequestKind.SEARCH, {"q": "great"}, config)
            counts = await store.aggregate(filters, "user-1", include_priority=True)

        assert counts.total == 4
        assert counts.by_platform == {"instagram": 2, "tiktok": 2}
        assert counts.by_status == {"pending": 2, "approved": 1, "flagged": 1}
        assert counts.by_sentiment == {"positive": 1, "negative": 1, "neutral": 1, "unknown": 1}
        assert counts.by_day == {date(2024, 2, 1): 2, date(2024, 2, 3): 2}
        assert counts.by_priority == {"low": 1, "high": 2, "medium": 1}
        assert counts.average_sentiment == pytest.approx(-0.1 / 3)

    @pytest.mark.asyncio
    async def test_empty_set(self, session_factory, config):
        async with session_factory() as session:
            counts = await CommentStore(session).aggregate(parse_filters(RequestKind.LIST, {}, config), "user-1")

        assert counts.total == 0
        assert counts.by_platform == {}
        assert counts.average_sentiment is None
