"""
Global response envelope formatting
"""

from typing import Any, Optional, Dict
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from utils.exceptions import CommentServiceError


def format_success_response(data: Any = None, **fields: Any) -> Dict[str, Any]:
    """
    Build the success envelope shared by every endpoint

    Args:
        data: Primary payload, omitted when None
        **fields: Endpoint-specific top-level fields (pagination, filters, ...)
    """
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update({key: value for key, value in fields.items() if value is not None})
    return body


def format_error_response(
    message: str,
    details: Optional[Dict[str, Any]] = None,
    **extra: Any
) -> Dict[str, Any]:
    """Build the error envelope {success: false, error, details?, ...extra}"""
    body: Dict[str, Any] = {"success": False, "error": message}
    if details:
        body["details"] = details
    body.update(extra)
    return body


def error_json_response(exc: CommentServiceError) -> JSONResponse:
    """Render a service exception into its JSON error envelope"""
    details = dict(exc.details)
    details.setdefault("code", exc.code.value)
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(format_error_response(exc.message, details, **exc.extra)),
        headers=exc.headers or None
    )


def internal_error_response(exc: Exception, debug: bool = False) -> JSONResponse:
    """Generic 500 envelope that only reveals the exception text in development"""
    details = {"code": "SYSTEM_INTERNAL_ERROR"}
    if debug:
        details["exception"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(
        status_code=500,
        content=format_error_response("Internal server error", details)
    )
