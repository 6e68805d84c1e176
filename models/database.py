"""
SQLModel database models for the comment service
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import DDL, JSON, Column, DateTime, Text, TypeDecorator, UniqueConstraint, event
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime; naive values are taken to already be UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp column that always binds and returns UTC

    SQLite keeps no offset, so values read back from it get UTC attached.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


class Platform(str, Enum):
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    FACEBOOK = "facebook"
    TWITTER = "twitter"
    YOUTUBE = "youtube"
    LINKEDIN = "linkedin"
    THREADS = "threads"


class CommentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"
    SPAM = "spam"


PLATFORM_VALUES = [p.value for p in Platform]
STATUS_VALUES = [s.value for s in CommentStatus]


class Comment(SQLModel, table=True):
    __tablename__ = "comments"
    __table_args__ = (
        UniqueConstraint("user_id", "platform", "platform_comment_id", name="uq_comments_user_platform_comment"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(index=True, max_length=64)
    platform: str = Field(index=True, max_length=20)
    platform_comment_id: str = Field(max_length=255)
    platform_post_id: Optional[str] = Field(default=None, max_length=255)
    # AES-GCM ciphertext bound to "user_id:platform"
    platform_user_id: Optional[str] = Field(default=None, sa_column=Column(Text))
    author_username: Optional[str] = Field(default=None, max_length=255)
    content: str = Field(sa_column=Column(Text, nullable=False))
    content_hash: str = Field(index=True, max_length=64)
    status: str = Field(default=CommentStatus.PENDING.value, index=True, max_length=20)
    sentiment_score: Optional[float] = Field(default=None)
    engagement_metrics: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    moderation_flags: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    moderation_reason: Optional[str] = Field(default=None, max_length=500)
    moderated_by: Optional[str] = Field(default=None, max_length=64)
    moderated_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime()))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False, index=True))
    created_at_platform: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime()))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime(), nullable=False))
    # Soft delete; set rows are hidden from every read path
    deleted_at: Optional[datetime] = Field(default=None, sa_column=Column(UTCDateTime(), index=True))


# GIN index backing websearch_to_tsquery lookups; other dialects fall back to ILIKE
event.listen(
    Comment.__table__,
    "after_create",
    DDL(
        "CREATE INDEX IF NOT EXISTS ix_comments_content_fts "
        "ON comments USING gin (to_tsvector('english', content))"
    ).execute_if(dialect="postgresql"),
)
