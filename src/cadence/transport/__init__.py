"""Request-level resilience for network calls."""

from cadence.transport.timeout import (
    ConnectionTimeoutHandler,
    RequestFunction,
    create_api_timeout_handler,
    create_critical_timeout_handler,
    create_upload_timeout_handler,
)

__all__ = [
    "ConnectionTimeoutHandler",
    "RequestFunction",
    "create_api_timeout_handler",
    "create_critical_timeout_handler",
    "create_upload_timeout_handler",
]
