"""
Middleware components for the session store application.
"""

from middleware.request_id import (
    REQUEST_ID_HEADER,
    RequestIDMiddleware,
    current_request_id,
    request_id_var,
)

__all__ = [
    "REQUEST_ID_HEADER",
    "RequestIDMiddleware",
    "current_request_id",
    "request_id_var",
]
