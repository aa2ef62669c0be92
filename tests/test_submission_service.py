import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import respx

from stellaraid.submission.errors import (
    InsufficientBalance,
    InvalidSequence,
    NetworkError,
)
from stellaraid.submission.models import (
    SubmissionConfig,
    SubmissionRequest,
    SubmissionStatus,
)
from stellaraid.submission.service import (
    SubmissionServiceBuilder,
    TransactionSubmissionService,
)

HORIZON = "https://horizon.example.com"


def _service(max_retries=3):
    config = SubmissionConfig(
        horizon_url=HORIZON,
        max_retries=max_retries,
        retry_backoff=timedelta(0),
        max_retry_backoff=timedelta(0),
    )
    return TransactionSubmissionService(config)


def _bad_request(code):
    return httpx.Response(
        400,
        json={
            "title": "Transaction Failed",
            "status": 400,
            "extras": {"result_codes": {"transaction": code}},
        },
    )


def test_service_creation_uses_mainnet_defaults():
    service = TransactionSubmissionService()
    assert service.config.horizon_url == "https://horizon.stellar.org"
    assert service.config.max_retries == 3


def test_service_config_testnet():
    service = TransactionSubmissionService.testnet()
    assert "testnet" in service.config.horizon_url


def test_service_config_mainnet():
    service = TransactionSubmissionService.mainnet()
    assert "testnet" not in service.config.horizon_url


def test_submission_request_builder():
    request = (
        SubmissionRequest("test_xdr")
        .with_timeout(timedelta(seconds=30))
        .with_retries(5)
        .with_memo("test donation")
    )
    assert request.timeout == timedelta(seconds=30)
    assert request.max_retries == 5
    assert request.memo == "test donation"


def test_should_retry_logic():
    service = TransactionSubmissionService.testnet()
    assert service.should_retry(NetworkError("connection failed", True), 1)
    assert not service.should_retry(
        InsufficientBalance("no funds", "G..."), 1
    )
    assert service.should_retry(InvalidSequence("bad seq"), 1)


def test_should_not_retry_at_max_attempts():
    service = _service(max_retries=2)
    assert not service.should_retry(NetworkError("connection failed"), 3)
    assert service.should_retry(NetworkError("connection failed"), 2)


def test_should_not_retry_non_retryable_network_error():
    service = _service()
    assert not service.should_retry(NetworkError("fatal", retryable=False), 1)


def test_service_builder():
    service = (
        SubmissionServiceBuilder()
        .horizon_url("https://custom.horizon.example.com")
        .timeout(timedelta(seconds=45))
        .max_retries(5)
        .build()
    )
    assert service.config.horizon_url == "https://custom.horizon.example.com"
    assert service.config.timeout == timedelta(seconds=45)
    assert service.config.max_retries == 5


def test_service_builder_log_path(tmp_path):
    path = tmp_path / "subs.jsonl"
    service = SubmissionServiceBuilder().log_path(path).build()
    assert service.config.log_path == path


@pytest.mark.asyncio
async def test_submit_success():
    service = _service()
    with respx.mock(base_url=HORIZON) as router:
        route = router.post("/transactions").mock(
            return_value=httpx.Response(
                200, json={"hash": "abc", "ledger": 123, "successful": True}
            )
        )
        response = await service.submit(SubmissionRequest("signed"))
    assert response.is_success()
    assert response.transaction_hash == "abc"
    assert response.ledger_sequence == 123
    assert route.call_count == 1
    assert service.is_duplicate("abc")
    assert not service.is_duplicate("other")
    assert service.stats().successful == 1
    assert service.recent_submissions()[-1].status == "success"


@pytest.mark.asyncio
async def test_submit_sends_xdr_in_body():
    service = _service()
    with respx.mock(base_url=HORIZON) as router:
        route = router.post("/transactions").mock(
            return_value=httpx.Response(
                200, json={"hash": "abc", "ledger": 1, "successful": True}
            )
        )
        response = await service.submit(SubmissionRequest("AAAA"))
    assert response.transaction_hash == "abc"
    assert json.loads(route.calls.last.request.content) == {"tx": "AAAA"}


@pytest.mark.asyncio
async def test_insufficient_balance_is_not_retried():
    service = _service()
    with respx.mock(base_url=HORIZON) as router:
        route = router.post("/transactions").mock(
            return_value=_bad_request("tx_insufficient_balance")
        )
        response = await service.submit(SubmissionRequest("signed"))
    assert response.status is SubmissionStatus.FAILED
    assert response.error_code == "tx_insufficient_balance"
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_server_errors_are_retried_until_exhausted():
    service = _service(max_retries=2)
    with respx.mock(base_url=HORIZON) as router:
        route = router.post("/transactions").mock(
            return_value=httpx.Response(503, text="unavailable")
        )
        response = await service.submit(SubmissionRequest("signed"))
    assert response.is_failed()
    assert response.error_code == "server_error"
    assert route.call_count == 3


@pytest.mark.asyncio
async def test_bad_sequence_then_success():
    service = _service()
    with respx.mock(base_url=HORIZON) as router:
        route = router.post("/transactions").mock(
            side_effect=[
                _bad_request("tx_bad_seq"),
                httpx.Response(
                    200, json={"hash": "def", "ledger": 7, "successful": True}
                ),
            ]
        )
        response = await service.submit(SubmissionRequest("signed"))
    assert response.is_success()
    assert response.transaction_hash == "def"
    assert route.call_count == 2


@pytest.mark.asyncio
async def test_unsuccessful_transaction_reports_tx_failed():
    service = _service()
    with respx.mock(base_url=HORIZON) as router:
        router.post("/transactions").mock(
            return_value=httpx.Response(
                200, json={"hash": "abc", "ledger": 5, "successful": False}
            )
        )
        response = await service.submit(SubmissionRequest("signed"))
    assert response.status is SubmissionStatus.FAILED
    assert response.error_code == "tx_failed"
    assert not service.is_duplicate("abc")


@pytest.mark.asyncio
async def test_missing_hash_is_invalid_response():
    service = _service()
    with respx.mock(base_url=HORIZON) as router:
        route = router.post("/transactions").mock(
            return_value=httpx.Response(200, json={"successful": True})
        )
        response = await service.submit(SubmissionRequest("signed"))
    assert response.error_code == "invalid_response"
    assert "Missing transaction hash" in response.error_message
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_connect_error_is_network_error():
    service = _service(max_retries=0)
    with respx.mock(base_url=HORIZON) as router:
        router.post("/transactions").mock(side_effect=httpx.ConnectError("boom"))
        response = await service.submit(SubmissionRequest("signed"))
    assert response.error_code == "network_error"
    assert "Connection failed" in response.error_message


@pytest.mark.asyncio
async def test_rate_limited_response():
    service = _service(max_retries=0)
    with respx.mock(base_url=HORIZON) as router:
        router.post("/transactions").mock(return_value=httpx.Response(429))
        response = await service.submit(SubmissionRequest("signed"))
    assert response.error_code == "rate_limited"


@pytest.mark.asyncio
async def test_not_found_endpoint_is_server_error():
    service = _service(max_retries=0)
    with respx.mock(base_url=HORIZON) as router:
        router.post("/transactions").mock(return_value=httpx.Response(404))
        response = await service.submit(SubmissionRequest("signed"))
    assert response.error_code == "server_error"
    assert "Horizon endpoint not found" in response.error_message


@pytest.mark.asyncio
async def test_timed_out_request_is_not_sent():
    service = _service()
    request = SubmissionRequest(
        "signed",
        timeout=timedelta(seconds=1),
        created_at=datetime.now(timezone.utc) - timedelta(seconds=10),
    )
    with respx.mock(base_url=HORIZON, assert_all_called=False) as router:
        route = router.post("/transactions").mock(return_value=httpx.Response(200))
        response = await service.submit(request)
    assert response.status is SubmissionStatus.TIMEOUT
    assert response.attempts == 0
    assert response.error_code == "tx_timeout"
    assert route.call_count == 0


@pytest.mark.asyncio
async def test_clear_forgets_everything():
    service = _service()
    with respx.mock(base_url=HORIZON) as router:
        router.post("/transactions").mock(
            return_value=httpx.Response(
                200, json={"hash": "abc", "ledger": 1, "successful": True}
            )
        )
        await service.submit(SubmissionRequest("signed"))
    service.clear()
    assert service.stats().total == 0
    assert service.recent_submissions() == []
    assert not service.is_duplicate("abc")


@pytest.mark.asyncio
async def test_log_path_receives_entries(tmp_path):
    path = tmp_path / "subs.jsonl"
    config = SubmissionConfig(horizon_url=HORIZON, log_path=path)
    service = TransactionSubmissionService(config)
    with respx.mock(base_url=HORIZON) as router:
        router.post("/transactions").mock(
            return_value=httpx.Response(
                200, json={"hash": "abc", "ledger": 9, "successful": True}
            )
        )
        await service.submit(SubmissionRequest("signed"))
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 3
    assert '"status":"success"' in lines[-1]