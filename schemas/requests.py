"""
Request schemas for the comment endpoints
"""

from datetime import datetime
from numbers import Number
from typing import Any, Dict, Iterable, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from models.database import CommentStatus, Platform
from services.moderation import ModerationAction
from services.sanitizer import is_malicious

POSTED_ENGAGEMENT_KEYS = ("likes", "replies", "shares", "views")
MAX_MODERATION_FLAGS = 10
MAX_SYNC_BATCH = 100


def _check_engagement(metrics: Optional[Dict[str, Any]], allowed_keys: Optional[Iterable[str]] = None):
    if metrics is None:
        return None
    if allowed_keys is not None:
        unknown = sorted(set(metrics) - set(allowed_keys))
        if unknown:
            raise ValueError(f"Unsupported engagement metrics: {', '.join(unknown)}")
    for key, value in metrics.items():
        if isinstance(value, bool) or not isinstance(value, Number) or value < 0:
            raise ValueError(f"Engagement metric {key} must be a non-negative number")
    return metrics


def _check_flags(flags: Optional[List[str]]):
    if flags is None:
        return None
    cleaned = [flag.strip() for flag in flags]
    if any(not flag or len(flag) > 50 for flag in cleaned):
        raise ValueError("Moderation flags must be 1-50 characters")
    if any(is_malicious(flag) for flag in cleaned):
        raise ValueError("Moderation flags contain disallowed content")
    return cleaned


class ModerationRequest(BaseModel):
    """Bulk moderation request"""
    comment_ids: List[str] = Field(..., min_length=1, max_length=100, description="Comment IDs to moderate")
    action: ModerationAction = Field(..., description="approve, reject, flag, mark_spam or reopen")
    reason: Optional[str] = Field(None, max_length=500, description="Moderation note stored with each change")

    @field_validator('comment_ids')
    @classmethod
    def validate_comment_ids(cls, v):
        cleaned = [item.strip() for item in v]
        if any(not item for item in cleaned):
            raise ValueError("Comment IDs cannot be empty")
        return cleaned

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v):
        if v is None:
            return None
        v = v.strip()
        if is_malicious(v):
            raise ValueError("Reason contains disallowed content")
        return v or None


class SyncedComment(BaseModel):
    """One comment as collected from a platform"""
    platform_comment_id: str = Field(..., min_length=1, max_length=100)
    platform_post_id: str = Field(..., min_length=1, max_length=100)
    platform_user_id: str = Field(..., min_length=1, max_length=100)
    author_username: Optional[str] = Field(None, max_length=100)
    content: str = Field(..., min_length=1, max_length=10000)
    sentiment_score: Optional[float] = Field(None, ge=-1, le=1)
    engagement_metrics: Dict[str, Any] = Field(default_factory=dict)
    moderation_flags: List[str] = Field(default_factory=list, max_length=MAX_MODERATION_FLAGS)
    created_at_platform: Optional[datetime] = None

    @field_validator('platform_comment_id', 'platform_post_id', 'platform_user_id')
    @classmethod
    def validate_platform_ids(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Platform identifiers cannot be blank")
        return v

    @field_validator('author_username')
    @classmethod
    def validate_author_username(cls, v):
        if v is None:
            return None
        v = v.strip()
        if is_malicious(v):
            raise ValueError("Author username contains disallowed content")
        return v or None

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Content cannot be empty")
        if is_malicious(v):
            raise ValueError("Content contains suspicious patterns")
        return v

    @field_validator('engagement_metrics')
    @classmethod
    def validate_engagement_metrics(cls, v):
        # Collectors pass platform-specific counters through
        return _check_engagement(v)

    @field_validator('moderation_flags')
    @classmethod
    def validate_moderation_flags(cls, v):
        return _check_flags(v)


class CreateCommentRequest(SyncedComment):
    """Create a single comment"""
    platform: Platform

    @field_validator('engagement_metrics')
    @classmethod
    def validate_engagement_metrics(cls, v):
        return _check_engagement(v, POSTED_ENGAGEMENT_KEYS)


class UpdateCommentRequest(BaseModel):
    """Partial update; only the fields present are changed"""
    status: Optional[CommentStatus] = None
    sentiment_score: Optional[float] = Field(None, ge=-1, le=1)
    engagement_metrics: Optional[Dict[str, Any]] = None
    moderation_flags: Optional[List[str]] = Field(None, max_length=MAX_MODERATION_FLAGS)

    @field_validator('engagement_metrics')
    @classmethod
    def validate_engagement_metrics(cls, v):
        return _check_engagement(v, POSTED_ENGAGEMENT_KEYS)

    @field_validator('moderation_flags')
    @classmethod
    def validate_moderation_flags(cls, v):
        return _check_flags(v)

    @model_validator(mode='after')
    def require_a_change(self):
        if not self.model_fields_set:
            raise ValueError("No fields to update")
        return self


class PlatformSyncRequest(BaseModel):
    """Comments pushed by a platform collector"""
    comments: List[SyncedComment] = Field(..., min_length=1, max_length=MAX_SYNC_BATCH)
