"""Submission client for a Blockfrost-compatible ``/tx/submit`` endpoint.

Classifies failures: the node refusing the transaction is terminal, transport
problems and provider overload are transient. Retrying is the caller's job.
"""
import logging

import httpx

from src.mk_common.errors import SubmissionRejectedError, TransientSubmissionError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})


def _cap_text(s: str, *, max_chars: int = 500) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


class NodeSubmitClient:
    def __init__(
        self,
        base_url: str,
        project_id: str | None = None,
        *,
        timeout_seconds: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/cbor"}
        if project_id:
            headers["project_id"] = project_id
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def submit(self, signed_tx: bytes) -> str:
        """POST the signed CBOR; returns the transaction hash the node reports."""
        try:
            resp = await self._client.post("/tx/submit", content=signed_tx)
        except httpx.TimeoutException as exc:
            raise TransientSubmissionError(f"timeout: {exc}") from exc
        except httpx.RequestError as exc:
            # DNS errors, connection refused, TLS, etc.
            raise TransientSubmissionError(f"{type(exc).__name__}: {exc}") from exc

        if 200 <= resp.status_code < 300:
            tx_hash = resp.json()
            if not isinstance(tx_hash, str) or not tx_hash:
                raise SubmissionRejectedError(f"unexpected submit response: {_cap_text(resp.text)}")
            logger.info("node accepted transaction %s", tx_hash)
            return tx_hash

        body = _cap_text(resp.text)
        if resp.status_code in _RETRYABLE_STATUS:
            raise TransientSubmissionError(f"HTTP {resp.status_code}: {body}")
        raise SubmissionRejectedError(f"HTTP {resp.status_code}: {body}")
