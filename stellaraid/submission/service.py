"""Submits signed transactions to Horizon, with retries, logging and tracking."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from datetime import timedelta
from pathlib import Path
from typing import Any

import httpx

from .errors import (
    InvalidResponse,
    MaxRetriesExceeded,
    NetworkError,
    RateLimited,
    ServerError,
    SubmissionError,
    SubmissionTimeout,
    TransactionFailed,
)
from .logs import LogStats, SubmissionLog, SubmissionLogger, SubmissionTracker
from .models import (
    SubmissionConfig,
    SubmissionRequest,
    SubmissionResponse,
    SubmissionStatus,
)

_log = logging.getLogger(__name__)

_BACKOFF_MULTIPLIER = 2.0


class TransactionSubmissionService:
    """Posts signed transaction envelopes to Horizon's ``/transactions`` endpoint."""

    def __init__(self, config: SubmissionConfig | None = None) -> None:
        self.config = config if config is not None else SubmissionConfig()
        if self.config.log_path is not None:
            self._logger = SubmissionLogger(self.config.log_path)
        else:
            self._logger = SubmissionLogger.memory_only()
        self._tracker = SubmissionTracker()
        # One initial attempt plus the configured retries.
        self._max_attempts = self.config.max_retries + 1

    @classmethod
    def testnet(cls) -> TransactionSubmissionService:
        return cls(SubmissionConfig.testnet())

    @classmethod
    def mainnet(cls) -> TransactionSubmissionService:
        return cls(SubmissionConfig.mainnet())

    async def submit(self, request: SubmissionRequest) -> SubmissionResponse:
        """Submit a transaction; failures are reported in the response, not raised."""
        started = time.monotonic()
        request_id = request.request_id
        _log.info("[%s] Starting transaction submission", request_id)

        log = SubmissionLog.from_request(request)
        log.mark_started()
        self._record(log, "Failed to log submission attempt")

        if request.is_timed_out():
            response = SubmissionResponse.timeout(request_id, 0)
            self._finalize(log, response, time.monotonic() - started)
            return response

        try:
            response = await self._submit_with_retries(request, log)
        except SubmissionError as error:
            response = SubmissionResponse.failed(
                request_id, str(error), error.error_code()
            )

        self._finalize(log, response, time.monotonic() - started)
        return response

    def should_retry(self, error: SubmissionError, attempt: int) -> bool:
        """Decide whether another attempt is worthwhile after ``attempt`` failed."""
        if attempt >= self._max_attempts:
            return False
        if error.is_balance_error():
            return False
        if error.is_sequence_error():
            return True
        return error.is_retryable()

    def is_duplicate(self, transaction_hash: str) -> bool:
        """True if the hash is tracked or logged as successful or pending."""
        return self._tracker.is_tracked(transaction_hash) or self._logger.is_duplicate(
            transaction_hash
        )

    def stats(self) -> LogStats:
        return self._logger.stats()

    def recent_submissions(self) -> list[SubmissionLog]:
        return self._logger.recent_logs()

    def clear(self) -> None:
        """Forget all logs and tracked submissions."""
        self._logger.clear()
        self._tracker.clear()

    def _record(self, log: SubmissionLog, failure_message: str) -> None:
        try:
            self._logger.log_attempt(log)
        except OSError as error:
            _log.warning("[%s] %s: %s", log.request_id, failure_message, error)

    def _backoff_seconds(self, attempt: int) -> float:
        initial = self.config.retry_backoff.total_seconds()
        ceiling = self.config.max_retry_backoff.total_seconds()
        delay = min(initial * _BACKOFF_MULTIPLIER ** (attempt - 1), ceiling)
        return delay * random.uniform(0.5, 1.0)

    async def _submit_with_retries(
        self, request: SubmissionRequest, log: SubmissionLog
    ) -> SubmissionResponse:
        last_error: SubmissionError | None = None

        for attempt in range(1, self._max_attempts + 1):
            _log.debug(
                "[%s] Submission attempt %d/%d",
                request.request_id,
                attempt,
                self._max_attempts,
            )
            log.mark_retrying(attempt)
            self._record(log, "Failed to log retry attempt")

            try:
                response = await self._submit_single(request, attempt)
            except SubmissionError as error:
                _log.warning(
                    "[%s] Submission attempt %d failed: %s",
                    request.request_id,
                    attempt,
                    error,
                )
                if not self.should_retry(error, attempt):
                    raise
                last_error = error
                if attempt < self._max_attempts:
                    delay = self._backoff_seconds(attempt)
                    _log.info(
                        "[%s] Retrying after %.3fs...", request.request_id, delay
                    )
                    await asyncio.sleep(delay)
            else:
                _log.info(
                    "[%s] Transaction submitted successfully on attempt %d",
                    request.request_id,
                    attempt,
                )
                return response

        raise MaxRetriesExceeded(
            self._max_attempts,
            str(last_error) if last_error is not None else "Unknown error",
        )

    async def _submit_single(
        self, request: SubmissionRequest, attempt: int
    ) -> SubmissionResponse:
        if request.is_timed_out():
            raise SubmissionTimeout(request.elapsed(), attempt)

        url = f"{self.config.horizon_url}/transactions"
        timeout_seconds = self.config.timeout.total_seconds()
        _log.debug("[%s] POST %s (attempt %d)", request.request_id, url, attempt)

        try:
            async with httpx.AsyncClient(timeout=timeout_seconds) as client:
                response = await asyncio.wait_for(
                    client.post(url, json={"tx": request.signed_xdr}),
                    timeout=timeout_seconds,
                )
        except asyncio.TimeoutError:
            raise SubmissionTimeout(self.config.timeout, attempt) from None
        except httpx.HTTPError as error:
            raise self._request_error(error) from error

        status = response.status_code
        body = response.text
        _log.debug(
            "[%s] Response status: %d, body: %s", request.request_id, status, body
        )

        if status == 200:
            return self._handle_success(request.request_id, body)
        if status == 400:
            raise SubmissionError.from_horizon_response(400, body)
        if status == 429:
            raise RateLimited(timedelta(seconds=60))
        if status == 404:
            raise ServerError(404, "Horizon endpoint not found")
        if 500 <= status <= 599:
            raise ServerError(status, body)
        raise ServerError(status, f"Unexpected status: {body}")

    def _handle_success(self, request_id: str, body: str) -> SubmissionResponse:
        try:
            document: Any = json.loads(body)
        except ValueError as error:
            raise InvalidResponse(f"Failed to parse success response: {error}") from None

        if not isinstance(document, dict):
            document = {}
        transaction_hash = document.get("hash")
        if not isinstance(transaction_hash, str):
            raise InvalidResponse("Missing transaction hash in response")

        ledger = document.get("ledger")
        ledger_sequence = (
            ledger
            if isinstance(ledger, int) and not isinstance(ledger, bool) and ledger >= 0
            else None
        )

        if document.get("successful") is not True:
            raise TransactionFailed(
                "tx_failed",
                "Transaction was included in ledger but marked as failed",
            )

        self._tracker.track(transaction_hash, request_id)
        self._tracker.update_status(transaction_hash, SubmissionStatus.SUCCESS)
        _log.info(
            "[%s] Transaction %s confirmed in ledger %s",
            request_id,
            transaction_hash,
            ledger_sequence,
        )
        return SubmissionResponse.success(
            request_id, transaction_hash, ledger_sequence or 0
        )

    def _request_error(self, error: httpx.HTTPError) -> SubmissionError:
        if isinstance(error, httpx.TimeoutException):
            return SubmissionTimeout(self.config.timeout, 1)
        if isinstance(error, httpx.ConnectError):
            return NetworkError(f"Connection failed: {error}")
        if isinstance(error, httpx.RequestError):
            return NetworkError(f"Request error: {error}")
        return NetworkError(str(error))

    def _finalize(
        self, log: SubmissionLog, response: SubmissionResponse, seconds: float
    ) -> None:
        duration_ms = int(seconds * 1000)
        log.update_from_response(response, duration_ms)
        self._record(log, "Failed to finalize submission log")

        if response.status is SubmissionStatus.SUCCESS:
            _log.info(
                "[%s] Submission completed successfully in %dms (hash: %s)",
                response.request_id,
                duration_ms,
                response.transaction_hash,
            )
        elif response.status is SubmissionStatus.DUPLICATE:
            _log.info(
                "[%s] Duplicate transaction detected (hash: %s)",
                response.request_id,
                response.transaction_hash,
            )
        else:
            _log.error(
                "[%s] Submission failed after %dms: %s",
                response.request_id,
                duration_ms,
                response.error_message,
            )


class SubmissionServiceBuilder:
    """Fluent construction of a :class:`TransactionSubmissionService`."""

    def __init__(self) -> None:
        self._config = SubmissionConfig()

    def horizon_url(self, url: str) -> SubmissionServiceBuilder:
        self._config = self._config.with_horizon_url(url)
        return self

    def timeout(self, timeout: timedelta) -> SubmissionServiceBuilder:
        self._config = self._config.with_timeout(timeout)
        return self

    def max_retries(self, max_retries: int) -> SubmissionServiceBuilder:
        self._config = self._config.with_retries(max_retries)
        return self

    def log_path(self, path: str | Path) -> SubmissionServiceBuilder:
        self._config = self._config.with_log_path(path)
        return self

    def build(self) -> TransactionSubmissionService:
        return TransactionSubmissionService(self._config)