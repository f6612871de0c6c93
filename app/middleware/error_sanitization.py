"""
Error Sanitization Middleware

Keeps exception text out of 5xx responses in production. The queue only
needs the status code to decide on a retry.
"""

from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.config import logger


def _internal_error(request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "request_id": request_id},
    )


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    In production, replaces every 5xx body with a generic message and
    turns unhandled exceptions into a 500. Full errors are logged server-side.
    """

    def __init__(self, app: ASGIApp, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = getattr(request.state, "request_id", "unknown")
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled exception in request %s: %s", request_id, exc)
            if self.debug:
                raise
            return _internal_error(request_id)

        if response.status_code >= 500 and not self.debug:
            return _internal_error(request_id)
        return response
