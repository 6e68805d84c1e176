"""
Centralized exception handling and custom exceptions
"""

from typing import Any, Dict, List, Optional
from fastapi import status

from utils.error_codes import ErrorCode, ERROR_MESSAGES


class CommentServiceError(Exception):
    """Base exception for the comment service"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: ErrorCode = ErrorCode.SYSTEM_INTERNAL_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.message = message or ERROR_MESSAGES[self.code]
        self.details = details or {}
        # Top-level fields merged into the error envelope
        self.extra = extra or {}
        self.headers = headers or {}
        super().__init__(self.message)


class ValidationError(CommentServiceError):
    """Malformed, missing or out-of-range input"""
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.VALIDATION_INVALID_INPUT


class InvalidPlatformError(ValidationError):
    """Platform value outside the supported enum"""
    code = ErrorCode.VALIDATION_INVALID_PLATFORM

    def __init__(self, platform: str, valid_platforms: List[str]):
        super().__init__(
            "Invalid platform",
            details={"platform": platform},
            extra={"valid_platforms": valid_platforms}
        )


class SecurityRejection(CommentServiceError):
    """Input flagged as a probable injection or XSS attempt"""
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.SECURITY_MALICIOUS_INPUT

    def __init__(self, sanitized_query: str, field: str = "q"):
        super().__init__(
            "Invalid search query detected",
            details={"field": field},
            extra={"sanitized_query": sanitized_query}
        )


class AuthenticationError(CommentServiceError):
    """Missing, invalid or expired bearer token"""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = ErrorCode.AUTH_TOKEN_INVALID


class AuthorizationError(CommentServiceError):
    """Authenticated but not permitted"""
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS


class NotFoundError(CommentServiceError):
    """Requested resource does not exist or is not visible to the caller"""
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.RESOURCE_NOT_FOUND


class ConflictError(CommentServiceError):
    """Write would duplicate an existing comment"""
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.RESOURCE_CONFLICT


class RateLimitError(CommentServiceError):
    """Request budget exceeded for a rate-limit bucket"""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = ErrorCode.RATE_LIMIT_EXCEEDED


class UpstreamTimeout(CommentServiceError):
    """Data store or external scorer exceeded its deadline"""
    code = ErrorCode.UPSTREAM_TIMEOUT


class DecryptionError(CommentServiceError):
    """Every encrypted field in a response failed to decrypt"""
    code = ErrorCode.SYSTEM_DECRYPTION_ERROR


class ExternalServiceError(CommentServiceError):
    """External service integration error"""
    status_code = status.HTTP_502_BAD_GATEWAY
    code = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE


class DatabaseError(CommentServiceError):
    """Database operation error"""
    code = ErrorCode.SYSTEM_DATABASE_ERROR
