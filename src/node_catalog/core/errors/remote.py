"""Remote source error classes.

Raised by remote node sources (``node_catalog.core.sources``) and by the sync
coordinator when a remote call exceeds its time budget.
"""

from typing import Optional


class RemoteSourceError(Exception):
    """Base exception for remote source errors.

    Attributes:
        source: Name of the source that raised the error
        message: Human-readable error description
        retryable: Whether the error is potentially transient
        original_error: The underlying exception if available
    """

    def __init__(
        self,
        source: str,
        message: str,
        retryable: bool = False,
        original_error: Optional[Exception] = None,
    ):
        self.source = source
        self.message = message
        self.retryable = retryable
        self.original_error = original_error
        super().__init__(f"[{source}] {message}")


class RemoteUnavailableError(RemoteSourceError):
    """Raised on network failures and 5xx responses. Always retryable."""

    def __init__(
        self,
        source: str,
        message: str = "Remote source unavailable",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            source=source,
            message=message,
            retryable=True,
            original_error=original_error,
        )


class RemoteTimeoutError(RemoteUnavailableError):
    """Raised when a remote call exceeds its time budget.

    Attributes:
        timeout_seconds: The timeout duration that was exceeded.
        operation: Name of the operation that timed out.
    """

    def __init__(
        self,
        source: str,
        timeout_seconds: Optional[float] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.operation = operation
        message = "Request timed out"
        if operation:
            message = f"{operation} timed out"
        if timeout_seconds is not None:
            message += f" after {timeout_seconds}s"
        super().__init__(source=source, message=message, original_error=original_error)


class RemoteAuthenticationError(RemoteSourceError):
    """Raised when the remote rejects our credentials.

    This error is NOT retryable - the token needs to be fixed first.
    """

    def __init__(
        self,
        source: str,
        message: str = "Authentication failed",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            source=source,
            message=message,
            retryable=False,
            original_error=original_error,
        )


class RemoteRateLimitError(RemoteSourceError):
    """Raised when the remote's rate limit is exceeded.

    The retry_after field indicates how long to wait before retrying
    (if provided by the API).
    """

    def __init__(
        self,
        source: str,
        retry_after: Optional[float] = None,
        original_error: Optional[Exception] = None,
    ):
        self.retry_after = retry_after
        message = "Rate limit exceeded"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(
            source=source,
            message=message,
            retryable=True,
            original_error=original_error,
        )
