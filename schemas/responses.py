"""
Response schemas for the comment endpoints
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class CommentOut(BaseModel):
    """Comment as returned to clients, sensitive identifiers masked"""
    id: str
    platform: str
    platform_comment_id: str
    platform_post_id: Optional[str] = None
    platform_user_id: Optional[str] = Field(None, description="Masked, always ends in ***")
    author_username: Optional[str] = None
    content: str
    status: str
    sentiment_score: Optional[float] = None
    sentiment: str = Field(..., description="positive, neutral, negative or unknown")
    engagement_metrics: Dict[str, Any] = Field(default_factory=dict)
    moderation_flags: List[str] = Field(default_factory=list)
    moderation_reason: Optional[str] = None
    moderated_at: Optional[datetime] = None
    created_at_platform: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    relevance_score: Optional[float] = Field(None, ge=0, le=1)
    semantic_similarity: Optional[float] = Field(None, ge=0, le=1)


class ModerationFailure(BaseModel):
    id: str
    reason: str


class ModerationSummary(BaseModel):
    total_requested: int
    successfully_updated: int
    unchanged: int
    failed: int
    action: str
    reason: Optional[str] = None


class ModerationResponse(BaseModel):
    """Bulk moderation response"""
    success: bool
    summary: ModerationSummary
    failures: List[ModerationFailure]
    results: Dict[str, str] = Field(..., description="id -> updated, unchanged or failed")
