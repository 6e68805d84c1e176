"""
Pytest configuration and shared fixtures for comment service tests
"""

import time
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx
import jwt
import pytest
from unittest.mock import AsyncMock, MagicMock

from models.database import Comment
from services.comment_store import CommentStore
from utils.config import get_config

TEST_JWT_SECRET = "test-jwt-secret-with-at-least-32-characters"
TEST_ENCRYPTION_KEY = "00112233445566778899aabbccddeeff" * 2
TEST_USER_ID = "user-1"


@pytest.fixture
def test_env(tmp_path, monkeypatch):
    """Environment for a fresh application bound to a temporary SQLite file"""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'comments.db'}")
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("COMMENTS_ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("SEMANTIC_SCORER_URL", raising=False)
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.setenv("RATE_LIMIT_READ", "10000")
    monkeypatch.setenv("RATE_LIMIT_WRITE", "10000")
    monkeypatch.setenv("RATE_LIMIT_SEARCH", "10000")
    monkeypatch.setenv("RATE_LIMIT_BULK", "10000")
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
async def app(test_env):
    """Application with its lifespan running"""
    from main import app as application

    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


def make_token(user_id: str = TEST_USER_ID, role: Optional[str] = None, expires_in: int = 3600) -> str:
    """Sign a token shaped like the identity provider's session tokens"""
    now = int(time.time())
    payload: Dict[str, Any] = {
        "sub": user_id,
        "aud": "authenticated",
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
    }
    if role:
        payload["app_metadata"] = {"role": role}
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers():
    """Factory for Authorization headers"""
    def _headers(user_id: str = TEST_USER_ID, role: Optional[str] = None) -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, role)}"}
    return _headers


@pytest.fixture
def seed(app):
    """Ingest a comment through the store, the way the sync pipeline does"""
    async def _seed(
        content: str = "This is a test comment",
        user_id: str = TEST_USER_ID,
        platform: str = "instagram",
        **fields: Any
    ) -> Comment:
        platform_comment_id = fields.pop("platform_comment_id", None) or f"pc_{uuid4().hex[:12]}"
        async with app.state.session_factory() as session:
            store = CommentStore(session)
            comment, _ = await store.ingest(
                app.state.encryption,
                user_id,
                platform,
                platform_comment_id,
                content,
                **fields
            )
            return comment
    return _seed


@pytest.fixture
def make_comment():
    """In-memory Comment rows for pure component tests"""
    def _make(
        content: str = "This is a test comment",
        platform: str = "instagram",
        status: str = "pending",
        sentiment_score: Optional[float] = None,
        created_at: Optional[datetime] = None,
        engagement_metrics: Optional[Dict[str, Any]] = None,
        user_id: str = TEST_USER_ID,
    ) -> Comment:
        comment = Comment(
            user_id=user_id,
            platform=platform,
            platform_comment_id=f"pc_{uuid4().hex[:12]}",
            content=content,
            content_hash="0" * 64,
            status=status,
            sentiment_score=sentiment_score,
            engagement_metrics=engagement_metrics,
        )
        if created_at is not None:
            comment.created_at = created_at
        return comment
    return _make


@pytest.fixture
def mock_store():
    """CommentStore double for moderation tests"""
    store = MagicMock(spec=CommentStore)
    store.get_many = AsyncMock(return_value={})
    store.transition = AsyncMock(return_value=True)
    store.current_status = AsyncMock(return_value=None)
    return store
