"""
Request Logging Middleware

Logs task deliveries and their outcome for observability.
"""

import time
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.config import logger

QUEUE_NAME_HEADER = "X-CloudTasks-QueueName"
RETRY_COUNT_HEADER = "X-CloudTasks-TaskRetryCount"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs request/response information for observability.

    Logs:
    - Request method and path
    - Queue name and retry count for queued task deliveries
    - Response status code and duration
    - Request ID for correlation
    """

    def __init__(self, app: ASGIApp, exclude_paths: Optional[set] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or {"/health", "/healthz", "/ready"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        start_time = time.monotonic()
        request_id = getattr(request.state, "request_id", "unknown")
        queue = request.headers.get(QUEUE_NAME_HEADER, "-")
        retry_count = request.headers.get(RETRY_COUNT_HEADER, "0")

        logger.info(
            "Request: %s %s | queue=%s | retry=%s | request_id=%s",
            request.method,
            request.url.path,
            queue,
            retry_count,
            request_id,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request failed: %s %s | error=%s | duration=%.2fms | request_id=%s",
                request.method,
                request.url.path,
                exc,
                (time.monotonic() - start_time) * 1000,
                request_id,
            )
            raise

        logger.info(
            "Response: %s %s | status=%d | duration=%.2fms | request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - start_time) * 1000,
            request_id,
        )
        return response
