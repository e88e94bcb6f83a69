"""TransactionSubmitter — datum construction, price conversion and submission with retry.

Flow for one action:
  1. Buy/subscribe in a foreign currency: read the oracle rate (fail closed).
  2. Validate params into the versioned datum for the action.
  3. Hand the intent to the wallet builder, submit the signed transaction.
Transient submission failures are retried by policy; node rejections are not.
"""
import logging
from decimal import Decimal
from typing import Any

from src.mk_chain.domain.clients import (
    ChainIndexerProtocol,
    NodeClientProtocol,
    TransactionBuilderProtocol,
)
from src.mk_chain.domain.datum import build_datum, datum_to_payload
from src.mk_chain.domain.models import OracleRate, TransactionIntent
from src.mk_common.amounts import convert_with_rate, quantize_native, to_decimal
from src.mk_common.enums import PURCHASE_ACTIONS, MarketAction
from src.mk_common.errors import (
    IndexerUnavailableError,
    NoExchangeRateError,
    TransientSubmissionError,
)
from src.mk_common.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

_PURCHASE_ACTION_VALUES = frozenset(a.value for a in PURCHASE_ACTIONS)


class TransactionSubmitter:
    def __init__(
        self,
        builder: TransactionBuilderProtocol,
        node: NodeClientProtocol,
        indexer: ChainIndexerProtocol,
        retry_policy: RetryPolicy | None = None,
        native_currency: str = "ADA",
        rate_scaling_factor: int = 1_000_000,
    ) -> None:
        self._builder = builder
        self._node = node
        self._indexer = indexer
        self._retry = retry_policy or RetryPolicy()
        self._native_currency = native_currency.upper()
        self._scaling_factor = rate_scaling_factor

    async def _lookup_rate(self, currency: str) -> OracleRate:
        rate = await retry_async(
            lambda: self._indexer.oracle_rate(currency),
            self._retry,
            retry_on=(IndexerUnavailableError,),
            description=f"oracle lookup {currency}",
        )
        if rate is None:
            raise NoExchangeRateError(currency)
        return rate

    async def prepare(self, action: str, params: dict[str, Any]) -> TransactionIntent:
        """Validate params and resolve the on-chain payment amount. Nothing is submitted."""
        datum_params = dict(params)
        currency = str(datum_params.pop("currency", self._native_currency)).upper()
        payment_amount: Decimal | None = None
        oracle: OracleRate | None = None

        if action in _PURCHASE_ACTION_VALUES and "price" in datum_params:
            requested = to_decimal(datum_params["price"])
            if currency == self._native_currency:
                payment_amount = requested
            else:
                oracle = await self._lookup_rate(currency)
                payment_amount = quantize_native(
                    convert_with_rate(requested, oracle.rate, self._scaling_factor)
                )
                logger.info(
                    "converted %s %s at rate %s -> %s %s",
                    requested, currency, oracle.rate, payment_amount, self._native_currency,
                )
            datum_params["price"] = payment_amount
        elif action == MarketAction.LIST.value and "price" in datum_params:
            payment_amount = to_decimal(datum_params["price"])

        datum = build_datum(action, datum_params)
        return TransactionIntent(
            datum=datum,
            payment_amount=payment_amount,
            requested_currency=currency,
            exchange_rate=oracle,
        )

    async def submit_intent(self, intent: TransactionIntent) -> str:
        """Build and submit; raises SubmissionError once retries are exhausted."""

        async def attempt() -> str:
            signed = await self._builder.build(intent)
            return await self._node.submit(signed)

        tx_hash = await retry_async(
            attempt,
            self._retry,
            retry_on=(TransientSubmissionError,),
            description=f"submit {intent.action}",
        )
        logger.info(
            "submitted %s for listing %s: %s (datum %s)",
            intent.action,
            intent.datum.listing_id,
            tx_hash,
            datum_to_payload(intent.datum),
        )
        return tx_hash

    async def submit(self, action: str, params: dict[str, Any]) -> str:
        intent = await self.prepare(action, params)
        return await self.submit_intent(intent)
