"""
Request context and access logging middleware
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from utils.monitoring import track_request_metrics
from utils.structured_logging import get_structured_logger, request_id_var, user_id_var

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request id, log the request and record latency metrics"""

    def __init__(self, app):
        super().__init__(app)
        self.logger = get_structured_logger("api")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Honour an upstream id so traces line up across services
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request_id = request_id[:64]
        request.state.request_id = request_id
        request_token = request_id_var.set(request_id)
        user_token = user_id_var.set(None)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            duration = time.perf_counter() - start_time

            # Route template keeps metric label cardinality bounded
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)
            track_request_metrics(request.method, endpoint, response.status_code, duration)

            user = getattr(request.state, "user", None)
            self.logger.info(
                "Request completed",
                method=request.method,
                endpoint=endpoint,
                status_code=response.status_code,
                response_time_ms=int(duration * 1000),
                user_id=user.user_id if user else None,
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_var.reset(request_token)
            user_id_var.reset(user_token)
