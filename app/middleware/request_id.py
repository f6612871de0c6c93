"""
Request ID Middleware

Injects a unique request ID into each request for tracing.
"""

import re
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"
TASK_NAME_HEADER = "X-CloudTasks-TaskName"

_VALID_ID = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


def get_request_id(request: Request) -> str:
    """Get request ID from headers (queue task name first), or generate one."""
    for header in (TASK_NAME_HEADER, REQUEST_ID_HEADER):
        value = request.headers.get(header)
        if value and _VALID_ID.match(value):
            return value
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Injects a unique request ID into each request for tracing.

    - Uses the queue task name or an existing X-Request-ID header if valid
    - Generates new ID otherwise
    - Adds ID to response headers
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = get_request_id(request)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        return response
