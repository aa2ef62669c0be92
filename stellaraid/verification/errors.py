"""Errors raised while verifying transactions on-chain."""

from __future__ import annotations

from datetime import timedelta


def _format_duration(duration: timedelta) -> str:
    seconds = duration.total_seconds()
    if seconds >= 1 or seconds == 0:
        return f"{seconds:g}s"
    return f"{seconds * 1000:g}ms"


class VerificationError(Exception):
    """Base class of all verification failures."""

    code = "verification_error"
    retryable = False

    def is_retryable(self) -> bool:
        """Whether the failure is transient and worth retrying."""
        return self.retryable

    def error_code(self) -> str:
        """Short machine-readable error code."""
        return self.code

    def suggested_retry_duration(self) -> timedelta | None:
        """Suggested wait before retrying, if any."""
        return None


class TransactionNotFound(VerificationError):
    code = "not_found"

    def __init__(self, transaction_hash: str) -> None:
        self.transaction_hash = transaction_hash
        super().__init__(f"Transaction not found on-chain: {transaction_hash}")


class NetworkError(VerificationError):
    code = "network_error"
    retryable = True

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Network error: {message}")

    def suggested_retry_duration(self) -> timedelta | None:
        return timedelta(milliseconds=500)


class VerificationTimeout(VerificationError):
    code = "timeout"
    retryable = True

    def __init__(self, duration: timedelta) -> None:
        self.duration = duration
        super().__init__(
            f"Verification request timed out after {_format_duration(duration)}"
        )

    def suggested_retry_duration(self) -> timedelta | None:
        return timedelta(seconds=2)


class RateLimited(VerificationError):
    code = "rate_limited"
    retryable = True

    def __init__(self, retry_after: timedelta) -> None:
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded. Retry after {_format_duration(retry_after)}"
        )

    def suggested_retry_duration(self) -> timedelta | None:
        return self.retry_after


class InvalidResponse(VerificationError):
    code = "invalid_response"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid Horizon response: {message}")


class ServerError(VerificationError):
    code = "server_error"
    retryable = True

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"Horizon server error (HTTP {status}): {message}")

    def suggested_retry_duration(self) -> timedelta | None:
        return timedelta(seconds=3)


class InvalidHash(VerificationError):
    code = "invalid_hash"

    def __init__(self, transaction_hash: str) -> None:
        self.transaction_hash = transaction_hash
        super().__init__(f"Invalid transaction hash format: '{transaction_hash}'")


class InternalError(VerificationError):
    code = "internal_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Internal error: {message}")