"""
Session store errors: codes, exception types and the FastAPI handlers
that turn them into JSON responses.
"""

from errors.codes import ErrorCode
from errors.exceptions import (
    AppException,
    ProvisioningError,
    SessionDecodeError,
    SessionEncodeError,
)
from errors.handlers import (
    ErrorResponse,
    handle_app_exception,
    handle_backend_exception,
    handle_unexpected_exception,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "AppException",
    "ProvisioningError",
    "SessionDecodeError",
    "SessionEncodeError",
    "ErrorResponse",
    "handle_app_exception",
    "handle_backend_exception",
    "handle_unexpected_exception",
    "register_exception_handlers",
]
