"""
Exception classes for the session store.

AppException carries an ErrorCode, a message, an HTTP status and optional
details. The codec raises SessionDecodeError and SessionEncodeError, the
provisioner raises ProvisioningError. DynamoDB failures are not wrapped:
botocore errors propagate to the caller unchanged.
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code


class AppException(Exception):
    """
    An error with a stable code that the exception handlers can render.

    ``status_code`` falls back to the code's default status. ``details``
    holds structured context, such as the per-codec reasons a cookie was
    rejected:

        raise AppException(
            ErrorCode.SESSION_COOKIE_INVALID,
            "the value is not valid",
            details={"errors": ["the value is not valid", "the value is expired"]},
        )
    """

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details
        if status_code is None:
            status_code = get_default_status_code(error_code)
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """The code and message, plus the details when there are any."""
        payload: dict[str, Any] = {"error_code": self.error_code.value, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def __repr__(self) -> str:
        return "%s(error_code=%r, message=%r, status_code=%d, details=%r)" % (
            type(self).__name__,
            self.error_code.value,
            self.message,
            self.status_code,
            self.details,
        )


class SessionDecodeError(AppException):
    """
    A session cookie or stored payload could not be decoded.

    Raised for bad signatures, expired timestamps, failed decryption,
    over-length tokens and malformed payloads. The session store recovers
    from this error locally by handing out a fresh session.
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(ErrorCode.SESSION_COOKIE_INVALID, message, details=details)


class SessionEncodeError(AppException):
    """Session values could not be encoded, usually because they are too long."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(ErrorCode.SESSION_TOO_LARGE, message, details=details)


class ProvisioningError(AppException):
    """The session table could not be created, verified or configured."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(ErrorCode.SESSION_PROVISIONING_FAILED, message, details=details)


def session_store_unavailable(
    message: str = "Session store unavailable",
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """The 503 answered when a DynamoDB request fails."""
    return AppException(ErrorCode.SESSION_STORE_UNAVAILABLE, message, details=details)
