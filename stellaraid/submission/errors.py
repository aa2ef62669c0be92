"""Errors raised while submitting transactions to Horizon."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

_OPERATION_DESCRIPTIONS = {
    "op_success": "Operation successful",
    "op_malformed": "Operation malformed",
    "op_underfunded": "Not enough funds for operation",
    "op_low_reserve": "Would create an account below the minimum reserve",
    "op_line_full": "Trust line would exceed limit",
    "op_no_issuer": "Asset issuer does not exist",
    "op_no_trust": "Trust line not found",
    "op_not_authorized": "Not authorized to hold asset",
    "op_src_no_trust": "Source trust line not found",
    "op_src_not_authorized": "Source not authorized",
    "op_no_destination": "Destination account not found",
    "op_already_exists": "Account already exists",
    "op_invalid_limit": "Invalid limit for trust line",
    "op_bad_auth": "Invalid authorization",
}

_REJECTIONS = {
    "tx_bad_auth": "Transaction has invalid or missing signatures",
    "tx_bad_auth_extra": "Transaction has extra signatures",
    "tx_no_source_account": "Source account does not exist",
    "tx_too_early": "Transaction time bounds are too early",
    "tx_too_late": "Transaction time bounds have expired",
    "tx_missing_operation": "Transaction has no operations",
    "tx_bad_min_seq_age_or_gap": "Invalid minimum sequence age or gap",
}


def _format_duration(duration: timedelta) -> str:
    micros = duration // timedelta(microseconds=1)
    if micros >= 1_000_000:
        return f"{micros / 1_000_000:g}s"
    if micros >= 1_000:
        return f"{micros / 1_000:g}ms"
    if micros > 0:
        return f"{micros}µs"
    return "0ns"


def describe_operation_result(code: str) -> str:
    """Human-readable description of an operation result code."""
    return _OPERATION_DESCRIPTIONS.get(code, f"Unknown operation result: {code}")


@dataclass(frozen=True)
class OperationFailure:
    """Failure details of one operation inside a transaction."""

    index: int
    result_code: str
    description: str

    def __str__(self) -> str:
        return f"Op[{self.index}]: {self.result_code} - {self.description}"


class SubmissionError(Exception):
    """Base class of all submission failures."""

    code = "submission_error"
    retryable = False

    def is_retryable(self) -> bool:
        """Whether the failure is transient and worth retrying."""
        return self.retryable

    def is_duplicate(self) -> bool:
        """Whether the transaction had already been submitted."""
        return isinstance(self, DuplicateTransaction)

    def is_sequence_error(self) -> bool:
        """Whether the failure is a sequence-number mismatch."""
        return isinstance(self, InvalidSequence)

    def is_balance_error(self) -> bool:
        """Whether the source account lacks funds; retrying will not help."""
        return isinstance(self, InsufficientBalance)

    def is_fee_error(self) -> bool:
        """Whether the fee was too low."""
        return isinstance(self, FeeTooLow)

    def error_code(self) -> str:
        """Code used to categorise the failure."""
        return self.code

    def user_message(self) -> str:
        """Message suitable for showing to an end user."""
        return str(self)

    def suggested_retry_duration(self) -> timedelta | None:
        """Suggested wait before retrying, if any."""
        return None

    @classmethod
    def from_horizon_response(cls, status: int, response_body: str) -> SubmissionError:
        """Build the matching error from a Horizon error response."""
        try:
            document: Any = json.loads(response_body)
        except ValueError:
            document = None

        if isinstance(document, dict):
            extras = document.get("extras")
            if isinstance(extras, dict):
                if "result_codes" in extras:
                    result_codes = extras["result_codes"]
                    if not isinstance(result_codes, dict):
                        result_codes = {}
                    transaction_code = result_codes.get("transaction")
                    if not isinstance(transaction_code, str):
                        transaction_code = ""
                    operations = result_codes.get("operations")
                    operation_codes = (
                        [op for op in operations if isinstance(op, str)]
                        if isinstance(operations, list)
                        else []
                    )
                    return _from_result_code(transaction_code, operation_codes)

                if "envelope_xdr" in extras and extras["envelope_xdr"] in (None, ""):
                    return InvalidEnvelope("Invalid transaction envelope")

            if document.get("title") == "Transaction Failed":
                detail = document.get("detail")
                return TransactionFailed(
                    "tx_failed",
                    detail if isinstance(detail, str) else "Transaction failed",
                )

        if status == 400:
            return TransactionRejected(response_body, "tx_malformed")
        if status == 404:
            return UnknownError("Transaction or endpoint not found (HTTP 404)")
        if status == 429:
            return RateLimited(timedelta(seconds=60))
        if 500 <= status <= 599:
            return ServerError(status, response_body)
        return UnknownError(f"HTTP {status}: {response_body}")


def _from_result_code(code: str, operation_codes: list[str]) -> SubmissionError:
    if code == "tx_insufficient_balance":
        return InsufficientBalance("Source account has insufficient balance")
    if code == "tx_bad_seq":
        return InvalidSequence("Sequence number does not match source account")
    if code == "tx_insufficient_fee":
        return FeeTooLow(0, 0)
    if code in _REJECTIONS:
        return TransactionRejected(_REJECTIONS[code], code)
    if code == "tx_malformed":
        return InvalidEnvelope("Transaction envelope is malformed")
    failures = [
        OperationFailure(index, op_code, describe_operation_result(op_code))
        for index, op_code in enumerate(operation_codes)
    ]
    return TransactionFailed(code, f"Transaction failed: {code}", failures)


class NetworkError(SubmissionError):
    code = "network_error"

    def __init__(self, message: str, retryable: bool = True) -> None:
        self.message = message
        self.retryable = retryable
        super().__init__(f"Network error: {message}")

    def suggested_retry_duration(self) -> timedelta | None:
        return timedelta(milliseconds=500)


class SubmissionTimeout(SubmissionError):
    code = "tx_timeout"
    retryable = True

    def __init__(self, duration: timedelta, attempts: int) -> None:
        self.duration = duration
        self.attempts = attempts
        super().__init__(f"Submission timeout after {_format_duration(duration)}")

    def user_message(self) -> str:
        return "Transaction submission timed out. Please check your transaction status."

    def suggested_retry_duration(self) -> timedelta | None:
        return timedelta(seconds=1)


class InsufficientBalance(SubmissionError):
    code = "tx_insufficient_balance"

    def __init__(
        self,
        message: str,
        account: str = "",
        required: str | None = None,
        available: str | None = None,
    ) -> None:
        self.message = message
        self.account = account
        self.required = required
        self.available = available
        super().__init__(f"Insufficient balance: {message}")

    def user_message(self) -> str:
        return f"Insufficient balance: {self.message}"


class InvalidSequence(SubmissionError):
    code = "tx_bad_seq"
    retryable = True

    def __init__(
        self,
        message: str,
        current_sequence: int | None = None,
        expected_sequence: int | None = None,
    ) -> None:
        self.message = message
        self.current_sequence = current_sequence
        self.expected_sequence = expected_sequence
        super().__init__(f"Invalid sequence number: {message}")

    def user_message(self) -> str:
        return f"Sequence number mismatch: {self.message}. Please try again."

    def suggested_retry_duration(self) -> timedelta | None:
        return timedelta(milliseconds=100)


class TransactionFailed(SubmissionError):
    def __init__(
        self,
        result_code: str,
        message: str,
        operation_results: list[OperationFailure] | None = None,
    ) -> None:
        self.result_code = result_code
        self.message = message
        self.operation_results = list(operation_results or [])
        super().__init__(f"Transaction failed: {result_code} - {message}")

    def error_code(self) -> str:
        return self.result_code


class TransactionRejected(SubmissionError):
    def __init__(self, message: str, reason_code: str) -> None:
        self.message = message
        self.reason_code = reason_code
        super().__init__(f"Transaction rejected: {message}")

    def error_code(self) -> str:
        return self.reason_code


class DuplicateTransaction(SubmissionError):
    code = "tx_duplicate"

    def __init__(self, message: str, transaction_hash: str) -> None:
        self.message = message
        self.transaction_hash = transaction_hash
        super().__init__(f"Duplicate transaction: {message}")

    def user_message(self) -> str:
        return "This transaction has already been submitted."


class InvalidEnvelope(SubmissionError):
    code = "tx_invalid_envelope"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid transaction envelope: {message}")


class ServerError(SubmissionError):
    code = "server_error"
    retryable = True

    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"Horizon server error ({status}): {message}")

    def suggested_retry_duration(self) -> timedelta | None:
        return timedelta(seconds=2)


class RateLimited(SubmissionError):
    code = "rate_limited"
    retryable = True

    def __init__(self, retry_after: timedelta) -> None:
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded. Retry after {_format_duration(retry_after)}"
        )

    def suggested_retry_duration(self) -> timedelta | None:
        return self.retry_after


class TransactionTooLarge(SubmissionError):
    code = "tx_too_large"

    def __init__(self, size: int, max_size: int) -> None:
        self.size = size
        self.max_size = max_size
        super().__init__(f"Transaction too large: {size} bytes (max {max_size})")


class FeeTooLow(SubmissionError):
    code = "tx_fee_too_low"

    def __init__(self, fee: int, min_fee: int) -> None:
        self.fee = fee
        self.min_fee = min_fee
        super().__init__(f"Fee too low: {fee} stroops (minimum {min_fee})")

    def user_message(self) -> str:
        return (
            f"Fee too low: {self.fee} stroops. "
            f"Minimum required: {self.min_fee} stroops."
        )


class OperationNotSupported(SubmissionError):
    code = "op_not_supported"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Operation not supported: {message}")


class InternalError(SubmissionError):
    code = "internal_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Internal error: {message}")


class Cancelled(SubmissionError):
    code = "cancelled"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Submission cancelled: {reason}")


class MaxRetriesExceeded(SubmissionError):
    code = "max_retries_exceeded"

    def __init__(self, attempts: int, last_error: str) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Max retry attempts ({attempts}) exceeded: {last_error}")


class UnknownError(SubmissionError):
    code = "unknown"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Unknown error: {message}")


class InvalidResponse(SubmissionError):
    code = "invalid_response"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid response: {message}")