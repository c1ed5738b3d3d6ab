"""FastAPI middleware for observability.

Assigns a request ID to every HTTP request, logs request start and outcome,
and echoes the ID back in the ``X-Request-ID`` response header.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .request_id import bind_request_id
from .logging_config import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to generate and inject request IDs."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = bind_request_id(request.headers.get(REQUEST_ID_HEADER))

        extra = {"method": request.method, "path": request.url.path}
        org_header = request.headers.get("X-Org-ID")
        if org_header:
            extra["org_id"] = org_header

        start_time = time.perf_counter()
        logger.info(f"{request.method} {request.url.path}", extra=extra)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed after {duration_ms:.2f}ms: {e}",
                extra=extra,
                exc_info=True,
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Request completed: {response.status_code} in {duration_ms:.2f}ms",
            extra=extra,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
