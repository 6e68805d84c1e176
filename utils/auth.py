"""
Authentication utilities for Supabase-issued bearer tokens
"""

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from utils.config import Config, get_config
from utils.error_codes import ErrorCode
from utils.exceptions import AuthenticationError
from utils.structured_logging import get_structured_logger, log_security_event, user_id_var

logger = get_structured_logger(__name__)

security = HTTPBearer(auto_error=False)

MODERATOR_ROLES = frozenset({"moderator", "admin"})


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity resolved from a verified bearer token"""
    user_id: str
    role: str = "user"

    @property
    def is_moderator(self) -> bool:
        return self.role in MODERATOR_ROLES


class TokenMissing(AuthenticationError):
    code = ErrorCode.AUTH_TOKEN_MISSING


class TokenExpired(AuthenticationError):
    code = ErrorCode.AUTH_TOKEN_EXPIRED


def _role_from_claims(payload: dict) -> str:
    app_metadata = payload.get("app_metadata") or {}
    role = app_metadata.get("role") if isinstance(app_metadata, dict) else None
    if role:
        return str(role)
    role = payload.get("role")
    # "authenticated" is the provider's default session role, not an app role
    if role and role != "authenticated":
        return str(role)
    return "user"


def verify_token(token: str, config: Config) -> dict:
    """
    Verify a Supabase JWT

    Args:
        token: Raw bearer token
        config: Application configuration holding the signing secret

    Returns:
        Decoded claims
    """
    options = {"require": ["sub", "exp"]}
    try:
        return jwt.decode(
            token,
            config.jwt_secret,
            algorithms=[config.jwt_algorithm],
            audience=config.jwt_audience,
            issuer=config.jwt_issuer,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidTokenError:
        raise AuthenticationError()


def unverified_subject(token: str) -> Optional[str]:
    """Read the subject claim without verification, for rate-limit keying only"""
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    sub = payload.get("sub")
    return str(sub) if sub else None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedUser:
    """Get current authenticated user"""
    if credentials is None or not credentials.credentials:
        log_security_event(
            "UNAUTHORIZED_ACCESS",
            severity="LOW",
            endpoint=request.url.path,
            reason="missing_token",
        )
        raise TokenMissing()

    try:
        payload = verify_token(credentials.credentials, get_config())
    except AuthenticationError as e:
        log_security_event(
            "UNAUTHORIZED_ACCESS",
            severity="MEDIUM",
            endpoint=request.url.path,
            reason=e.code.value,
            ip_address=request.client.host if request.client else None,
        )
        raise

    user = AuthenticatedUser(user_id=str(payload["sub"]), role=_role_from_claims(payload))
    user_id_var.set(user.user_id)
    request.state.user = user
    return user
