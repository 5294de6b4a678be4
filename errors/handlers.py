"""
FastAPI exception handlers for session errors.

Every error leaves the application as an ErrorResponse JSON body tagged
with the request ID. Three kinds of failure reach this layer:

- AppException subclasses (bad cookies, oversized sessions, provisioning)
  carry their own code and status.
- botocore errors surface unchanged from the session store and are
  answered with 503 SESSION_STORE_UNAVAILABLE, telling clients to retry.
- Anything else becomes a generic 500 whose body reveals nothing about
  the failure; the traceback only goes to the log.
"""

import logging
import traceback
import uuid
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors.codes import ErrorCode
from errors.exceptions import AppException, session_store_unavailable

logger = logging.getLogger(__name__)

_GENERIC_MESSAGE = "An unexpected error occurred. Please try again later."


class ErrorResponse(BaseModel):
    """Body of every error response."""
    error_code: str
    message: str
    details: Optional[dict[str, Any]] = None
    request_id: str


def get_request_id(request: Request) -> str:
    """
    Return the ID RequestIDMiddleware assigned to ``request``.

    Requests that bypassed the middleware get a fresh UUID, stored on the
    request so later handlers report the same one.
    """
    if hasattr(request.state, "request_id"):
        return request.state.request_id

    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    return request_id


def _error_response(
    request_id: str,
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
) -> JSONResponse:
    body = ErrorResponse(
        error_code=error_code,
        message=message,
        details=details,
        request_id=request_id,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    """
    Answer an AppException with its own status, code, message and details.

    Server-side failures are logged as errors, client mistakes as warnings.
    """
    request_id = get_request_id(request)
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING

    logger.log(
        level,
        "%s: %s",
        exc.error_code.value,
        exc.message,
        extra={
            "error_code": exc.error_code.value,
            "status_code": exc.status_code,
            "details": exc.details,
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return _error_response(
        request_id, exc.status_code, exc.error_code.value, exc.message, exc.details
    )


async def handle_backend_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Answer a DynamoDB failure with 503 SESSION_STORE_UNAVAILABLE.

    The details name the exception type and, for a ClientError, the
    DynamoDB error code and operation. The backend's own message is only
    logged.
    """
    details: dict[str, Any] = {"exception_type": type(exc).__name__}
    if isinstance(exc, ClientError):
        details["code"] = exc.response.get("Error", {}).get("Code", "Unknown")
        details["operation"] = exc.operation_name

    logger.error(
        "Session store request failed: %s",
        str(exc),
        extra={"request_id": get_request_id(request), **details},
    )

    return await handle_app_exception(request, session_store_unavailable(details=details))


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """Answer any other exception with a generic 500 and log its traceback."""
    request_id = get_request_id(request)

    logger.error(
        "Unhandled %s while serving %s %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        extra={
            "error_code": ErrorCode.INTERNAL_ERROR.value,
            "request_id": request_id,
            "exception_message": str(exc),
            "stack_trace": traceback.format_exc(),
        },
        exc_info=True,
    )

    return _error_response(request_id, 500, ErrorCode.INTERNAL_ERROR.value, _GENERIC_MESSAGE)


def register_exception_handlers(app) -> None:
    """Install the session error handlers on a FastAPI application."""
    app.add_exception_handler(AppException, handle_app_exception)
    app.add_exception_handler(ClientError, handle_backend_exception)
    app.add_exception_handler(BotoCoreError, handle_backend_exception)
    app.add_exception_handler(Exception, handle_unexpected_exception)

    logger.debug("Session exception handlers registered")
