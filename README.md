# stellaraid

Tools for getting a signed Stellar transaction onto the network through a
Horizon server.

`stellaraid.submission` posts a signed transaction envelope (base64 XDR) to
Horizon's `/transactions` endpoint, retries transient failures with backoff,
sorts Horizon's failures into specific error types, tracks successful
submissions and keeps a log of every attempt.

`stellaraid.verification.errors` holds a set of error types for on-chain
verification (see "What the package does not do" below).

Python 3.10 or newer is required. The only runtime dependency is `httpx`.

## Submitting a transaction

```python
import asyncio

from stellaraid.submission.models import SubmissionRequest
from stellaraid.submission.service import TransactionSubmissionService


async def main() -> None:
    service = TransactionSubmissionService.testnet()
    request = (
        SubmissionRequest("AAAAAgAAAAB...signed envelope...")
        .with_retries(5)
        .with_memo("donation to project 42")
    )
    response = await service.submit(request)

    if response.is_success():
        print("hash:", response.transaction_hash, "ledger:", response.ledger_sequence)
    else:
        print("failed:", response.error_code, response.error_message)


asyncio.run(main())
```

`submit` does not raise for network or Horizon failures: the outcome is always
a `SubmissionResponse` whose `status` is a `SubmissionStatus` (`pending`,
`success`, `failed`, `timeout`, `duplicate`, `retrying`). A request that has
already outlived its own `timeout` is answered with a `timeout` response
without contacting Horizon.

The service makes one attempt plus `SubmissionConfig.max_retries` retries
(3 by default). Balance errors are never retried; sequence-number errors, rate
limiting, server errors, timeouts and retryable network errors are. Between
attempts it waits `retry_backoff` doubled for each attempt, capped at
`max_retry_backoff`, with random jitter.

`SubmissionConfig` has `testnet()`, `mainnet()` and `local()` presets and
`with_horizon_url`, `with_timeout`, `with_retries` and `with_log_path`, each
returning a new config. A service can also be put together with the builder:

```python
from datetime import timedelta

from stellaraid.submission.service import SubmissionServiceBuilder

service = (
    SubmissionServiceBuilder()
    .horizon_url("http://localhost:8000")
    .timeout(timedelta(seconds=15))
    .max_retries(2)
    .log_path("submissions.jsonl")
    .build()
)
```

### Logs and duplicates

With a log path set, every attempt is appended to that file as one JSON object
per line; without one, logs are kept in memory only. Use `service.stats()`,
`service.recent_submissions()` and `service.is_duplicate(transaction_hash)` to
inspect past submissions, and `service.clear()` to forget them (this also
deletes the log file). `is_duplicate` is a query only: `submit` does not
consult it before posting.

`SubmissionLogger` and `SubmissionTracker` in `stellaraid.submission.logs` can
be used on their own. A logger can read its file back with `load_from_file()`
and move it aside with `rotate_if_needed(max_size_bytes)`; `SubmissionLog`
entries round-trip through `to_json()` and `SubmissionLog.from_json()`.

### Horizon errors

`SubmissionError.from_horizon_response(status, body)` turns an HTTP status and
a Horizon error body into a specific subclass such as `InsufficientBalance`,
`InvalidSequence`, `FeeTooLow`, `TransactionRejected`, `InvalidEnvelope`,
`RateLimited`, `ServerError` or `TransactionFailed` (which carries per-operation
`OperationFailure` entries). Every error offers `error_code()`,
`user_message()`, `is_retryable()` and `suggested_retry_duration()`.

## What the package does not do

The package does not look transactions up on Horizon after submission, and
has no request, response or service types for verifying that a transaction
executed on-chain. `stellaraid.verification.errors` defines only the error
classes such a check would raise (`VerificationError` and its subclasses
`TransactionNotFound`, `NetworkError`, `VerificationTimeout`, `RateLimited`,
`InvalidResponse`, `ServerError`, `InvalidHash`, `InternalError`), each with
`error_code()`, `is_retryable()` and `suggested_retry_duration()`.

It does not build or sign transactions either; `submit` expects an envelope
that is already signed. There is no command-line program.