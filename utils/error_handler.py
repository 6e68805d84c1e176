"""
Global error handler middleware
"""

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from utils.config import get_config
from utils.exceptions import CommentServiceError, ValidationError
from utils.response_envelope import error_json_response, internal_error_response
from utils.structured_logging import get_structured_logger
from utils.monitoring import track_request_metrics

logger = get_structured_logger(__name__)


class GlobalExceptionHandler(BaseHTTPMiddleware):
    """Global exception handling middleware with Sentry integration"""

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except CommentServiceError as e:
            return error_json_response(e)
        except Exception as e:
            return await self._handle_exception(request, e)

    async def _handle_exception(self, request: Request, exc: Exception) -> JSONResponse:
        """Handle and log exceptions with Sentry integration"""
        request_id = getattr(request.state, "request_id", "unknown")

        with sentry_sdk.new_scope() as scope:
            scope.set_tag("request_id", request_id)
            scope.set_context("request", {
                "method": request.method,
                "path": request.url.path,
            })
            sentry_sdk.capture_exception(exc)

        logger.error(
            f"Unhandled exception in {request.method} {request.url.path}",
            request_id=request_id,
            exception_type=type(exc).__name__,
            ip_address=request.client.host if request.client else None
        )

        track_request_metrics(
            method=request.method,
            endpoint=request.url.path,
            status_code=500,
            duration=0
        )

        return internal_error_response(exc, debug=get_config().environment == "development")


async def service_error_handler(request: Request, exc: CommentServiceError) -> JSONResponse:
    """Render taxonomy errors raised inside route handlers and dependencies"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request failed",
        endpoint=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        error=exc.message,
        code=exc.code.value
    )
    return error_json_response(exc)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Map FastAPI body/path validation failures onto the 400 envelope"""
    problems = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return error_json_response(ValidationError("Invalid parameter", details={"errors": problems}))


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error envelope handlers to the application"""
    app.add_exception_handler(CommentServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
