"""
Resilience patterns for the session store.

Only bounded, startup-time waiting lives here; request-path DynamoDB calls
are never retried.
"""

from resilience.retry import (
    RetryConfig,
    RetryExhaustedException,
    calculate_delay,
    retry_async,
)

__all__ = [
    "RetryConfig",
    "RetryExhaustedException",
    "calculate_delay",
    "retry_async",
]
