"""Logging and duplicate tracking for transaction submission attempts."""

from __future__ import annotations

import copy
import dataclasses
import itertools
import json
import re
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import SubmissionRequest, SubmissionResponse, SubmissionStatus

DEFAULT_LOG_PATH = ".transaction_submissions.jsonl"

_FRACTION = re.compile(r"\.(\d+)")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_timestamp(text: str) -> datetime:
    normalized = text.strip()
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    # Sub-microsecond precision is not representable; keep six digits.
    normalized = _FRACTION.sub(
        lambda match: "." + match.group(1)[:6].ljust(6, "0"), normalized, count=1
    )
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _optional(document: dict[str, Any], key: str, kind: type) -> Any:
    value = document.get(key)
    if value is None:
        return None
    if not isinstance(value, kind) or isinstance(value, bool) and kind is int:
        raise ValueError(f"field {key!r} has the wrong type")
    return value


def _required(document: dict[str, Any], key: str, kind: type) -> Any:
    if key not in document:
        raise ValueError(f"missing field {key!r}")
    value = _optional(document, key, kind)
    if value is None:
        raise ValueError(f"field {key!r} must not be null")
    return value


_FIELDS = (
    "log_id",
    "request_id",
    "transaction_hash",
    "status",
    "timestamp",
    "attempts",
    "error_code",
    "error_message",
    "ledger_sequence",
    "duration_ms",
)


@dataclass
class SubmissionLog:
    """One log entry describing a submission attempt."""

    request_id: str
    log_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    transaction_hash: str | None = None
    status: str = "pending"
    timestamp: datetime = field(default_factory=_now)
    attempts: int = 0
    error_code: str | None = None
    error_message: str | None = None
    ledger_sequence: int | None = None
    duration_ms: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: SubmissionRequest) -> SubmissionLog:
        """Start a pending entry for a request."""
        return cls(request_id=request.request_id)

    def update_from_response(
        self, response: SubmissionResponse, duration_ms: int
    ) -> None:
        """Copy the outcome of a response into this entry."""
        self.status = str(response.status)
        self.transaction_hash = response.transaction_hash
        self.ledger_sequence = response.ledger_sequence
        self.error_code = response.error_code
        self.error_message = response.error_message
        self.attempts = response.attempts
        self.duration_ms = duration_ms

    def mark_started(self) -> None:
        self.status = "in_progress"
        self.timestamp = _now()

    def mark_retrying(self, attempt: int) -> None:
        self.status = "retrying"
        self.attempts = attempt

    def with_metadata(self, key: str, value: Any) -> SubmissionLog:
        """Return a copy carrying an extra metadata item."""
        return dataclasses.replace(self, metadata={**self.metadata, key: value})

    def _document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "log_id": self.log_id,
            "request_id": self.request_id,
            "transaction_hash": self.transaction_hash,
            "status": self.status,
            "timestamp": _format_timestamp(self.timestamp),
            "attempts": self.attempts,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "ledger_sequence": self.ledger_sequence,
            "duration_ms": self.duration_ms,
        }
        for key, value in self.metadata.items():
            document.setdefault(key, value)
        return document

    def to_json(self) -> str:
        """Compact JSON with metadata flattened into the top level."""
        return json.dumps(self._document(), separators=(",", ":"), ensure_ascii=False)

    def to_json_pretty(self) -> str:
        return json.dumps(self._document(), indent=2, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> SubmissionLog:
        """Parse an entry written by :meth:`to_json`; raises ``ValueError``."""
        document = json.loads(text)
        if not isinstance(document, dict):
            raise ValueError("log entry must be a JSON object")
        return cls(
            log_id=_required(document, "log_id", str),
            request_id=_required(document, "request_id", str),
            transaction_hash=_optional(document, "transaction_hash", str),
            status=_required(document, "status", str),
            timestamp=_parse_timestamp(_required(document, "timestamp", str)),
            attempts=_required(document, "attempts", int),
            error_code=_optional(document, "error_code", str),
            error_message=_optional(document, "error_message", str),
            ledger_sequence=_optional(document, "ledger_sequence", int),
            duration_ms=_required(document, "duration_ms", int),
            metadata={k: v for k, v in document.items() if k not in _FIELDS},
        )


@dataclass(frozen=True)
class LogStats:
    """Counts and average duration over the logs kept in memory."""

    total: int
    successful: int
    failed: int
    pending: int
    duplicates: int
    avg_duration_ms: int

    def __str__(self) -> str:
        return (
            f"Total: {self.total}, Successful: {self.successful}, "
            f"Failed: {self.failed}, Pending: {self.pending}, "
            f"Duplicates: {self.duplicates}, Avg Duration: {self.avg_duration_ms}ms"
        )


class SubmissionLogger:
    """Keeps recent submission logs in memory and appends them to a JSONL file."""

    def __init__(
        self, log_path: str | Path | None = DEFAULT_LOG_PATH, max_recent_logs: int = 1000
    ) -> None:
        self.log_path = Path(log_path) if log_path else None
        self.max_recent_logs = max_recent_logs
        self._recent: deque[SubmissionLog] = deque(maxlen=max_recent_logs)
        self._lock = threading.Lock()

    @classmethod
    def default_path(cls) -> SubmissionLogger:
        return cls(DEFAULT_LOG_PATH)

    @classmethod
    def memory_only(cls) -> SubmissionLogger:
        """A logger that never touches the file system."""
        return cls(None, max_recent_logs=10000)

    def log_attempt(self, log: SubmissionLog) -> None:
        """Record an entry; raises ``OSError`` if the file cannot be written."""
        with self._lock:
            self._recent.append(copy.deepcopy(log))
        if self.log_path is not None:
            with self.log_path.open("a", encoding="utf-8") as handle:
                handle.write(log.to_json() + "\n")

    def _matching(self, predicate) -> list[SubmissionLog]:
        with self._lock:
            return [copy.deepcopy(log) for log in self._recent if predicate(log)]

    def recent_logs(self) -> list[SubmissionLog]:
        return self._matching(lambda log: True)

    def logs_for_request(self, request_id: str) -> list[SubmissionLog]:
        return self._matching(lambda log: log.request_id == request_id)

    def logs_for_transaction(self, transaction_hash: str) -> list[SubmissionLog]:
        return self._matching(lambda log: log.transaction_hash == transaction_hash)

    def is_duplicate(self, transaction_hash: str) -> bool:
        """True if the hash was logged as successful or pending."""
        with self._lock:
            return any(
                log.transaction_hash == transaction_hash
                and log.status in ("success", "pending")
                for log in self._recent
            )

    def latest_for_transaction(self, transaction_hash: str) -> SubmissionLog | None:
        matches = self.logs_for_transaction(transaction_hash)
        return matches[-1] if matches else None

    def load_from_file(self) -> list[SubmissionLog]:
        """Read every parseable entry from the log file."""
        if self.log_path is None or not self.log_path.exists():
            return []
        logs = []
        with self.log_path.open(encoding="utf-8") as handle:
            for line in handle:
                try:
                    logs.append(SubmissionLog.from_json(line))
                except ValueError:
                    continue
        return logs

    def clear(self) -> None:
        """Forget the in-memory logs and delete the log file."""
        with self._lock:
            self._recent.clear()
        if self.log_path is not None and self.log_path.exists():
            self.log_path.unlink()

    def stats(self) -> LogStats:
        with self._lock:
            statuses = [log.status for log in self._recent]
            total = len(statuses)
            durations = sum(log.duration_ms for log in self._recent)
        return LogStats(
            total=total,
            successful=statuses.count("success"),
            failed=statuses.count("failed"),
            pending=statuses.count("pending"),
            duplicates=statuses.count("duplicate"),
            avg_duration_ms=durations // total if total else 0,
        )

    def rotate_if_needed(self, max_size_bytes: int) -> Path | None:
        """Rename the log file aside when it exceeds ``max_size_bytes``.

        Returns the new path of the rotated file, or None if nothing moved.
        """
        if self.log_path is None or not self.log_path.exists():
            return None
        if self.log_path.stat().st_size <= max_size_bytes:
            return None
        stamp = _now().strftime("%Y%m%d_%H%M%S")
        stem = self.log_path.stem if self.log_path.suffix else self.log_path.name
        rotated = self.log_path.with_name(f"{stem}.jsonl.{stamp}")
        self.log_path.rename(rotated)
        return rotated


@dataclass
class _TrackedSubmission:
    status: SubmissionStatus
    tracked_at: datetime
    order: int
    request_id: str


class SubmissionTracker:
    """In-memory map of transaction hashes to their submission status."""

    def __init__(self, max_entries: int = 10000) -> None:
        self.max_entries = max_entries
        self._submissions: dict[str, _TrackedSubmission] = {}
        self._order = itertools.count()
        self._lock = threading.Lock()

    def track(self, transaction_hash: str, request_id: str) -> None:
        """Start tracking a hash as pending, evicting the oldest entry if full."""
        with self._lock:
            if self._submissions and len(self._submissions) >= self.max_entries:
                oldest = min(
                    self._submissions, key=lambda key: self._submissions[key].order
                )
                del self._submissions[oldest]
            self._submissions[transaction_hash] = _TrackedSubmission(
                status=SubmissionStatus.PENDING,
                tracked_at=_now(),
                order=next(self._order),
                request_id=request_id,
            )

    def update_status(
        self, transaction_hash: str, status: SubmissionStatus
    ) -> str | None:
        """Set the status of a tracked hash; returns its request id, if tracked."""
        with self._lock:
            entry = self._submissions.get(transaction_hash)
            if entry is None:
                return None
            entry.status = status
            return entry.request_id

    def is_tracked(self, transaction_hash: str) -> bool:
        with self._lock:
            return transaction_hash in self._submissions

    def status(self, transaction_hash: str) -> SubmissionStatus | None:
        with self._lock:
            entry = self._submissions.get(transaction_hash)
            return entry.status if entry else None

    def is_successful(self, transaction_hash: str) -> bool:
        return self.status(transaction_hash) is SubmissionStatus.SUCCESS

    def remove(self, transaction_hash: str) -> None:
        with self._lock:
            self._submissions.pop(transaction_hash, None)

    def clear(self) -> None:
        with self._lock:
            self._submissions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._submissions)