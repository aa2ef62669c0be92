"""Request, response and configuration types for transaction submission."""

from __future__ import annotations

import dataclasses
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_request_id() -> str:
    return str(uuid.uuid4())


class SubmissionStatus(str, enum.Enum):
    """Status of a transaction submission."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    DUPLICATE = "duplicate"
    RETRYING = "retrying"

    def __str__(self) -> str:
        return self.value


@dataclass
class SubmissionRequest:
    """A signed transaction envelope waiting to be submitted."""

    signed_xdr: str = ""
    request_id: str = field(default_factory=_new_request_id)
    timeout: timedelta = timedelta(seconds=60)
    enable_retries: bool = True
    max_retries: int = 3
    memo: str | None = None
    created_at: datetime = field(default_factory=_now)

    def with_timeout(self, timeout: timedelta) -> SubmissionRequest:
        """Return a copy with a different timeout."""
        return dataclasses.replace(self, timeout=timeout)

    def with_retries(self, max_retries: int) -> SubmissionRequest:
        """Return a copy allowing ``max_retries`` retries (0 disables them)."""
        return dataclasses.replace(
            self, enable_retries=max_retries > 0, max_retries=max_retries
        )

    def without_retries(self) -> SubmissionRequest:
        """Return a copy with retries disabled."""
        return dataclasses.replace(self, enable_retries=False, max_retries=0)

    def with_memo(self, memo: str) -> SubmissionRequest:
        """Return a copy carrying a tracking memo."""
        return dataclasses.replace(self, memo=memo)

    def with_request_id(self, request_id: str) -> SubmissionRequest:
        """Return a copy with a custom request id."""
        return dataclasses.replace(self, request_id=request_id)

    def is_timed_out(self) -> bool:
        """True once more than ``timeout`` has passed since creation.

        A creation time in the future counts as timed out.
        """
        delta = _now() - self.created_at
        if delta < timedelta(0):
            return True
        return delta > self.timeout

    def elapsed(self) -> timedelta:
        """Time since the request was created, never negative."""
        delta = _now() - self.created_at
        return max(delta, timedelta(0))


@dataclass
class OperationResult:
    """Result of one operation inside a submitted transaction."""

    index: int
    successful: bool
    result_code: str
    result_description: str | None = None


@dataclass
class TransactionResult:
    """Detailed transaction result as reported by Horizon."""

    hash: str
    ledger: int
    successful: bool
    result_code: str
    result_code_description: str | None = None
    operation_results: list[OperationResult] = field(default_factory=list)
    envelope_xdr: str | None = None
    result_xdr: str | None = None
    meta_xdr: str | None = None


@dataclass
class SubmissionResponse:
    """Outcome of a transaction submission."""

    request_id: str
    status: SubmissionStatus
    transaction_hash: str | None = None
    ledger_sequence: int | None = None
    completed_at: datetime | None = None
    attempts: int = 1
    error_message: str | None = None
    error_code: str | None = None
    result: TransactionResult | None = None

    @classmethod
    def success(
        cls, request_id: str, transaction_hash: str, ledger_sequence: int
    ) -> SubmissionResponse:
        return cls(
            request_id=request_id,
            status=SubmissionStatus.SUCCESS,
            transaction_hash=transaction_hash,
            ledger_sequence=ledger_sequence,
            completed_at=_now(),
        )

    @classmethod
    def failed(
        cls, request_id: str, error_message: str, error_code: str | None = None
    ) -> SubmissionResponse:
        return cls(
            request_id=request_id,
            status=SubmissionStatus.FAILED,
            completed_at=_now(),
            error_message=error_message,
            error_code=error_code,
        )

    @classmethod
    def timeout(cls, request_id: str, attempts: int) -> SubmissionResponse:
        return cls(
            request_id=request_id,
            status=SubmissionStatus.TIMEOUT,
            completed_at=_now(),
            attempts=attempts,
            error_message="Submission timed out",
            error_code="tx_timeout",
        )

    @classmethod
    def duplicate(cls, request_id: str, transaction_hash: str) -> SubmissionResponse:
        return cls(
            request_id=request_id,
            status=SubmissionStatus.DUPLICATE,
            transaction_hash=transaction_hash,
            completed_at=_now(),
            error_message="Transaction already submitted",
            error_code="tx_duplicate",
        )

    def is_success(self) -> bool:
        return self.status is SubmissionStatus.SUCCESS

    def is_failed(self) -> bool:
        return self.status in (SubmissionStatus.FAILED, SubmissionStatus.TIMEOUT)


MAINNET_HORIZON_URL = "https://horizon.stellar.org"
TESTNET_HORIZON_URL = "https://horizon-testnet.stellar.org"
LOCAL_HORIZON_URL = "http://localhost:8000"


@dataclass
class SubmissionConfig:
    """Settings for the submission service."""

    horizon_url: str = MAINNET_HORIZON_URL
    timeout: timedelta = timedelta(seconds=60)
    max_retries: int = 3
    retry_backoff: timedelta = timedelta(milliseconds=500)
    max_retry_backoff: timedelta = timedelta(seconds=10)
    enable_duplicate_detection: bool = True
    log_path: Path | None = None

    @classmethod
    def testnet(cls) -> SubmissionConfig:
        return cls(horizon_url=TESTNET_HORIZON_URL)

    @classmethod
    def mainnet(cls) -> SubmissionConfig:
        return cls(horizon_url=MAINNET_HORIZON_URL)

    @classmethod
    def local(cls) -> SubmissionConfig:
        return cls(
            horizon_url=LOCAL_HORIZON_URL,
            timeout=timedelta(seconds=10),
            max_retries=1,
        )

    def with_horizon_url(self, url: str) -> SubmissionConfig:
        return dataclasses.replace(self, horizon_url=url)

    def with_timeout(self, timeout: timedelta) -> SubmissionConfig:
        return dataclasses.replace(self, timeout=timeout)

    def with_retries(self, max_retries: int) -> SubmissionConfig:
        return dataclasses.replace(self, max_retries=max_retries)

    def with_log_path(self, path: str | Path) -> SubmissionConfig:
        return dataclasses.replace(self, log_path=Path(path))