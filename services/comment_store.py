"""
Data-store access for comments with deadlines on every read
"""

import asyncio
from datetime import date, datetime
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Tuple, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.database import Comment, CommentStatus, as_utc, utcnow
from services import query_builder
from services.field_encryption import FieldEncryptionAdapter, encryption_context
from services.statistics import FilteredCounts
from utils.exceptions import DatabaseError, UpstreamTimeout
from utils.structured_logging import get_structured_logger

logger = get_structured_logger(__name__)

T = TypeVar("T")

LISTING_TIMEOUT_MESSAGE = "Comments request timed out"
SEARCH_TIMEOUT_MESSAGE = "Search request timed out"


def _as_day(value: Any) -> date:
    # PostgreSQL returns a date, SQLite an ISO string
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class CommentStore:
    """
    Thin async repository over the comments table

    Reads are bounded by a deadline and surface UpstreamTimeout when it
    expires. Cancellation from the transport propagates unchanged so an
    abandoned read never lingers.

    Args:
        session: Request-scoped database session
        timeout_seconds: Deadline for each read
    """

    def __init__(self, session: AsyncSession, timeout_seconds: float = 5.0):
        self.session = session
        self.timeout_seconds = timeout_seconds

    @property
    def dialect_name(self) -> str:
        return self.session.bind.dialect.name

    async def _run(self, operation: Awaitable[T], timeout_message: str) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Store read exceeded deadline", timeout=self.timeout_seconds)
            raise UpstreamTimeout(timeout_message)
        except SQLAlchemyError as e:
            logger.error("Store read failed", error=str(e))
            raise DatabaseError("Failed to fetch comments")

    async def _scalars(self, statement) -> List[Any]:
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def list_page(
        self,
        filters,
        owner_id: Optional[str],
        timeout_message: str = LISTING_TIMEOUT_MESSAGE
    ) -> Tuple[List[Comment], int]:
        """
        One ordered page plus the total matching count

        Args:
            filters: Validated CommentFilters
            owner_id: Restrict to this user, None for moderator-wide views
            timeout_message: Error text when the deadline expires

        Returns:
            (page rows, total)
        """
        dialect = self.dialect_name

        async def read():
            total = (await self.session.execute(query_builder.count_statement(filters, owner_id, dialect))).scalar_one()
            rows = await self._scalars(query_builder.listing_statement(filters, owner_id, dialect))
            return rows, int(total)

        return await self._run(read(), timeout_message)

    async def fetch_candidates(
        self,
        filters,
        owner_id: Optional[str],
        cap: int,
        timeout_message: str = SEARCH_TIMEOUT_MESSAGE
    ) -> List[Comment]:
        statement = query_builder.candidates_statement(filters, owner_id, self.dialect_name, cap)
        return await self._run(self._scalars(statement), timeout_message)

    async def aggregate(
        self,
        filters,
        owner_id: Optional[str],
        include_priority: bool = False,
        timeout_message: str = LISTING_TIMEOUT_MESSAGE
    ) -> FilteredCounts:
        """
        Exact counts over every row matching filters, computed in the database

        Args:
            filters: Validated CommentFilters
            owner_id: Restrict to this user, None for moderator-wide views
            include_priority: Also count moderation queue priorities
            timeout_message: Error text when the deadline expires

        Returns:
            FilteredCounts for the whole filtered set, independent of any cap
        """
        dialect = self.dialect_name

        async def read():
            total = (await self.session.execute(query_builder.count_statement(filters, owner_id, dialect))).scalar_one()
            average = (
                await self.session.execute(query_builder.average_sentiment_statement(filters, owner_id, dialect))
            ).scalar_one()
            grouped: Dict[str, Dict[Any, int]] = {}
            for name, expression in query_builder.aggregate_dimensions(dialect, include_priority).items():
                statement = query_builder.grouped_count_statement(filters, owner_id, dialect, expression)
                result = await self.session.execute(statement)
                grouped[name] = {bucket: int(count) for bucket, count in result.all() if bucket is not None}
            grouped["by_day"] = {_as_day(day): count for day, count in grouped["by_day"].items()}
            return FilteredCounts(
                total=int(total),
                average_sentiment=float(average) if average is not None else None,
                **grouped,
            )

        return await self._run(read(), timeout_message)

    async def get(self, comment_id: UUID) -> Optional[Comment]:
        statement = (
            select(Comment)
            .where(Comment.id == comment_id, Comment.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
        rows = await self._run(self._scalars(statement), LISTING_TIMEOUT_MESSAGE)
        return rows[0] if rows else None

    async def get_many(self, comment_ids: Iterable[UUID]) -> Dict[UUID, Comment]:
        ids = list(comment_ids)
        if not ids:
            return {}
        statement = select(Comment).where(Comment.id.in_(ids), Comment.deleted_at.is_(None))
        rows = await self._run(self._scalars(statement), LISTING_TIMEOUT_MESSAGE)
        return {row.id: row for row in rows}

    async def current_status(self, comment_id: UUID) -> Optional[str]:
        result = await self._run(
            self.session.execute(
                select(Comment.status).where(Comment.id == comment_id, Comment.deleted_at.is_(None))
            ),
            LISTING_TIMEOUT_MESSAGE,
        )
        return result.scalar_one_or_none()

    async def vocabulary_sample(self, owner_id: str, limit: int = 200) -> List[str]:
        """Recent comment texts of one user, the word source for suggestions"""
        statement = (
            select(Comment.content)
            .where(Comment.user_id == owner_id, Comment.deleted_at.is_(None))
            .order_by(Comment.created_at.desc())
            .limit(limit)
        )
        return await self._run(self._scalars(statement), SEARCH_TIMEOUT_MESSAGE)

    async def transition(
        self,
        comment_id: UUID,
        expected_status: str,
        target_status: str,
        actor_id: str,
        reason: Optional[str] = None
    ) -> bool:
        """
        Compare-and-set a status change in its own transaction

        The UPDATE only matches while the row still holds expected_status, so
        a concurrent change makes this return False instead of overwriting it.

        Returns:
            True when exactly this call changed the row
        """
        now = utcnow()
        statement = (
            update(Comment)
            .where(Comment.id == comment_id, Comment.status == expected_status, Comment.deleted_at.is_(None))
            .values(
                status=target_status,
                updated_at=now,
                moderated_by=actor_id,
                moderated_at=now,
                moderation_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        return await self._write(statement) == 1

    async def find_recent_duplicate(self, user_id: str, content_hash: str, since: datetime) -> Optional[Comment]:
        """Visible comment of this user with the same content fingerprint created at or after since"""
        statement = (
            select(Comment)
            .where(
                Comment.user_id == user_id,
                Comment.content_hash == content_hash,
                Comment.created_at >= since,
                Comment.deleted_at.is_(None),
            )
            .limit(1)
        )
        rows = await self._run(self._scalars(statement), LISTING_TIMEOUT_MESSAGE)
        return rows[0] if rows else None

    async def _write(self, statement) -> int:
        try:
            result = await self.session.execute(statement)
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        return result.rowcount

    async def update_fields(self, comment_id: UUID, values: Dict[str, Any]) -> bool:
        """
        Write plain attribute changes to a visible comment

        Status is not accepted here; it only moves through transition().

        Returns:
            True when the row exists and was updated
        """
        if "status" in values:
            raise ValueError("status changes go through transition()")
        statement = (
            update(Comment)
            .where(Comment.id == comment_id, Comment.deleted_at.is_(None))
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return await self._write(statement) == 1

    async def soft_delete(self, comment_id: UUID) -> Optional[datetime]:
        """Stamp deleted_at; returns the stamp, or None when nothing visible matched"""
        now = utcnow()
        statement = (
            update(Comment)
            .where(Comment.id == comment_id, Comment.deleted_at.is_(None))
            .values(deleted_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return now if await self._write(statement) == 1 else None

    async def ingest(
        self,
        encryption: FieldEncryptionAdapter,
        user_id: str,
        platform: str,
        platform_comment_id: str,
        content: str,
        platform_post_id: Optional[str] = None,
        platform_user_id: Optional[str] = None,
        author_username: Optional[str] = None,
        sentiment_score: Optional[float] = None,
        engagement_metrics: Optional[Dict[str, Any]] = None,
        status: str = CommentStatus.PENDING.value,
        created_at=None,
        moderation_flags: Optional[List[str]] = None,
        created_at_platform: Optional[datetime] = None,
    ) -> Tuple[Comment, bool]:
        """
        Idempotent upsert keyed by (user, platform, platform_comment_id)

        Returns:
            (stored comment, created) where created is False for a re-ingest
        """
        lookup = select(Comment).where(
            Comment.user_id == user_id,
            Comment.platform == platform,
            Comment.platform_comment_id == platform_comment_id,
        )
        existing = (await self.session.execute(lookup)).scalar_one_or_none()
        if existing is not None:
            return existing, False

        context = encryption_context(user_id, platform)
        comment = Comment(
            user_id=user_id,
            platform=platform,
            platform_comment_id=platform_comment_id,
            platform_post_id=platform_post_id,
            platform_user_id=encryption.encrypt(platform_user_id, context) if platform_user_id else None,
            author_username=author_username,
            content=content,
            content_hash=encryption.hash_content(content, user_id),
            status=status,
            sentiment_score=sentiment_score,
            engagement_metrics=engagement_metrics,
            moderation_flags=moderation_flags,
            created_at_platform=as_utc(created_at_platform),
        )
        if created_at is not None:
            comment.created_at = as_utc(created_at)
            comment.updated_at = comment.created_at

        self.session.add(comment)
        try:
            await self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent ingest of the same tuple
            await self.session.rollback()
            existing = (await self.session.execute(lookup)).scalar_one()
            return existing, False
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        return comment, True
