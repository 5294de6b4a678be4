"""
Error codes raised by the session store and the HTTP status of each.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Stable identifiers for session store failures.

    The value doubles as the ``error_code`` field of error responses, so
    renaming a member is a breaking change for clients.
    """

    # The client presented a cookie that failed to authenticate, expired,
    # or could not be parsed.
    SESSION_COOKIE_INVALID = "SESSION_COOKIE_INVALID"

    # Encoded values exceeded the codec's max length.
    SESSION_TOO_LARGE = "SESSION_TOO_LARGE"

    # A DynamoDB request failed.
    SESSION_STORE_UNAVAILABLE = "SESSION_STORE_UNAVAILABLE"

    # The session table could not be created or have TTL enabled.
    SESSION_PROVISIONING_FAILED = "SESSION_PROVISIONING_FAILED"

    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.SESSION_COOKIE_INVALID: 400,
    ErrorCode.SESSION_TOO_LARGE: 500,
    ErrorCode.SESSION_STORE_UNAVAILABLE: 503,
    ErrorCode.SESSION_PROVISIONING_FAILED: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """Status for ``error_code``; 500 for anything unmapped."""
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
