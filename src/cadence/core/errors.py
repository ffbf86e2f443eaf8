"""Exception hierarchy for the Cadence connection layer.

All Cadence exceptions inherit from CadenceError, so callers can catch
broadly (CadenceError) or branch on the failure kind (e.g. apply a
timeout-specific backoff on ConnectionTimeoutError).

Only two surfaces raise to callers: ConnectionTimeoutHandler.request_with_timeout
and StaleConnectionCleaner.cleanup_session. Monitoring and analytics surfaces
log and degrade instead.
"""

from __future__ import annotations


class CadenceError(Exception):
    """Base exception for all Cadence errors."""


class ConnectionTimeoutError(CadenceError):
    """Raised when a request is cancelled because its timeout elapsed.

    Attributes:
        timeout_ms: The timeout that fired, in milliseconds.
        attempt: Which attempt (1-indexed) timed out.
    """

    def __init__(self, timeout_ms: float, attempt: int) -> None:
        super().__init__(f"Request timeout after {timeout_ms:g}ms (attempt {attempt})")
        self.timeout_ms = timeout_ms
        self.attempt = attempt


class RetryableError(CadenceError):
    """Raised after the retry budget is exhausted.

    Wraps the final underlying error, which is also chained as ``__cause__``.

    Attributes:
        attempt: The attempt number that failed last.
        max_retries: The configured retry budget.
        original_error: The last underlying exception.
    """

    def __init__(
        self,
        attempt: int,
        max_retries: int,
        original_error: BaseException,
    ) -> None:
        super().__init__(
            f"Request failed after {attempt} attempts: {original_error}"
        )
        self.attempt = attempt
        self.max_retries = max_retries
        self.original_error = original_error


class SessionCleanupError(CadenceError):
    """Raised when a stale session could not be reclaimed.

    Attributes:
        session_id: The session that failed cleanup.
        attempt: Cleanup attempt number for this session (1-indexed).
    """

    def __init__(self, session_id: str, attempt: int, reason: str) -> None:
        super().__init__(f"Failed to cleanup session {session_id}: {reason}")
        self.session_id = session_id
        self.attempt = attempt


__all__ = [
    "CadenceError",
    "ConnectionTimeoutError",
    "RetryableError",
    "SessionCleanupError",
]
