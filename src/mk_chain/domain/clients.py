"""Client Protocols — the opaque chain capabilities the core depends on."""
from typing import Protocol

from src.mk_chain.domain.models import ObservedTransaction, OracleRate, TransactionIntent, TxStatus


class ChainIndexerProtocol(Protocol):
    async def transactions_at(
        self, address: str, limit: int = 50
    ) -> list[ObservedTransaction]: ...

    async def status(self, tx_hash: str) -> TxStatus: ...

    async def oracle_rate(self, currency: str) -> OracleRate | None: ...


class TransactionBuilderProtocol(Protocol):
    """Wallet side: turns an intent into signed transaction CBOR (selection + signing)."""

    async def build(self, intent: TransactionIntent) -> bytes: ...


class NodeClientProtocol(Protocol):
    async def submit(self, signed_tx: bytes) -> str: ...
