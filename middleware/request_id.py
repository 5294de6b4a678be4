"""
Request ID middleware for request correlation.

Every request gets an identifier, taken from the X-Request-ID header when
the caller sends one. It is echoed back in the response, put on
``request.state`` for the error handlers, and kept in a context variable so
log entries written while the request is handled, including the session
store's, can be tied to it.
"""

import uuid
from contextvars import ContextVar
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns each request an ID and exposes it to handlers, logs and the client."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            request_id_var.reset(token)


def current_request_id() -> str:
    """Return the ID of the request being handled, or "" outside a request."""
    return request_id_var.get()
