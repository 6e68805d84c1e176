"""
API rate limiting middleware for the comment endpoints
"""

from typing import List, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from services.rate_limiter import BULK_BUCKET, READ_BUCKET, SEARCH_BUCKET, WRITE_BUCKET, RateLimitResult
from utils.auth import unverified_subject
from utils.config import get_config
from utils.exceptions import RateLimitError
from utils.monitoring import track_rate_limit_rejection
from utils.response_envelope import error_json_response
from utils.structured_logging import log_security_event

COMMENTS_PREFIX = "/api/v1/comments"
WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def client_ip(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


def bucket_for(method: str, path: str) -> Optional[str]:
    """Rate-limit bucket for a request, None when the path is not limited"""
    if not path.startswith(COMMENTS_PREFIX):
        return None
    if method.upper() in WRITE_METHODS:
        if method.upper() == "POST" and path.startswith(f"{COMMENTS_PREFIX}/platforms/"):
            return BULK_BUCKET
        return WRITE_BUCKET
    if path.startswith(f"{COMMENTS_PREFIX}/search"):
        return SEARCH_BUCKET
    return READ_BUCKET


def identities_for(request: Request, mode: str) -> List[str]:
    ip_identity = f"ip:{client_ip(request)}"
    if mode == "ip":
        return [ip_identity]

    subject = None
    auth_header = request.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        subject = unverified_subject(auth_header[7:].strip())
    if not subject:
        return [ip_identity]
    if mode == "user":
        return [f"user:{subject}"]
    return [f"user:{subject}", ip_identity]


class RateLimitingMiddleware(BaseHTTPMiddleware):
    """Per-bucket request budgets checked before authentication"""

    async def dispatch(self, request: Request, call_next):
        """
        Process request with rate limiting

        Args:
            request: HTTP request
            call_next: Next middleware in chain

        Returns:
            HTTP response
        """
        config = get_config()
        bucket = bucket_for(request.method, request.url.path)
        limiter = getattr(request.app.state, "rate_limiter", None)
        if not config.rate_limit_enabled or bucket is None or limiter is None:
            return await call_next(request)

        # With identity mode "both" the tightest of the two budgets is reported
        outcome: Optional[RateLimitResult] = None
        for identity in identities_for(request, config.rate_limit_identity):
            result = await limiter.check(identity, bucket)
            if outcome is None or not result.success or (outcome.success and result.remaining < outcome.remaining):
                outcome = result
            if not result.success:
                break

        if not outcome.success:
            track_rate_limit_rejection(bucket)
            log_security_event(
                "RATE_LIMIT_EXCEEDED",
                severity="MEDIUM",
                endpoint=request.url.path,
                method=request.method,
                bucket=bucket,
                limit=outcome.limit,
                remaining=outcome.remaining,
            )
            return error_json_response(RateLimitError(
                "Rate limit exceeded",
                details={"bucket": bucket},
                extra={
                    "retryAfter": outcome.retry_after,
                    "limit": outcome.limit,
                    "remaining": outcome.remaining,
                    "resetTime": outcome.reset_time,
                },
                headers=outcome.headers(),
            ))

        response = await call_next(request)
        for header, value in outcome.headers().items():
            response.headers[header] = value
        return response
