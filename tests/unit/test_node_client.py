"""Unit tests for NodeSubmitClient using httpx.MockTransport."""
import httpx
import pytest

from src.mk_chain.infrastructure.node_client import NodeSubmitClient
from src.mk_common.errors import SubmissionRejectedError, TransientSubmissionError

BASE_URL = "https://node.example/api/v0"


def _client(handler) -> NodeSubmitClient:
    return NodeSubmitClient(BASE_URL, "proj-123", transport=httpx.MockTransport(handler))


async def test_accepted_returns_hash() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json="a" * 64)

    client = _client(handler)
    tx_hash = await client.submit(b"\x84signed")
    await client.aclose()

    assert tx_hash == "a" * 64
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/api/v0/tx/submit"
    assert request.headers["project_id"] == "proj-123"
    assert request.headers["content-type"] == "application/cbor"
    assert request.content == b"\x84signed"


async def test_bad_request_is_rejected() -> None:
    client = _client(lambda r: httpx.Response(400, text="BadInputsUTxO"))

    with pytest.raises(SubmissionRejectedError) as exc_info:
        await client.submit(b"tx")
    assert "BadInputsUTxO" in exc_info.value.message
    assert exc_info.value.code == 3002


@pytest.mark.parametrize("status", [408, 425, 429, 500, 502, 503, 504])
async def test_retryable_status_is_transient(status: int) -> None:
    client = _client(lambda r: httpx.Response(status, text="busy"))

    with pytest.raises(TransientSubmissionError):
        await client.submit(b"tx")


@pytest.mark.parametrize("status", [401, 403, 404, 418])
async def test_other_client_errors_are_rejected(status: int) -> None:
    client = _client(lambda r: httpx.Response(status))

    with pytest.raises(SubmissionRejectedError):
        await client.submit(b"tx")


async def test_connection_error_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransientSubmissionError):
        await _client(handler).submit(b"tx")


async def test_timeout_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(TransientSubmissionError) as exc_info:
        await _client(handler).submit(b"tx")
    assert "timeout" in exc_info.value.message


async def test_unexpected_success_body_is_rejected() -> None:
    client = _client(lambda r: httpx.Response(200, json={"ok": True}))

    with pytest.raises(SubmissionRejectedError):
        await client.submit(b"tx")


async def test_long_error_body_is_truncated() -> None:
    client = _client(lambda r: httpx.Response(400, text="x" * 2000))

    with pytest.raises(SubmissionRejectedError) as exc_info:
        await client.submit(b"tx")
    assert "truncated" in exc_info.value.message
    assert len(exc_info.value.message) < 700
