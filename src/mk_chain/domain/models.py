"""Chain-side value objects — what the indexer reports and what gets submitted."""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from src.mk_chain.domain.datum import MarketDatum


@dataclass(frozen=True)
class ObservedTransaction:
    tx_hash: str
    block_no: int | None = None


@dataclass(frozen=True)
class TxStatus:
    """Indexer view of one transaction. found=False means not (or no longer) on chain."""

    found: bool
    confirmations: int = 0
    block_no: int | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def not_found(cls) -> "TxStatus":
        return cls(found=False)


@dataclass(frozen=True)
class OracleRate:
    currency: str
    rate: Decimal
    as_of: datetime | None = None


@dataclass(frozen=True)
class TransactionIntent:
    """A validated datum plus the native-unit amount the transaction must carry."""

    datum: MarketDatum
    payment_amount: Decimal | None = None
    requested_currency: str | None = None
    exchange_rate: OracleRate | None = None

    @property
    def action(self) -> str:
        return self.datum.action
