"""Unit tests for TransactionSubmitter: conversion, datum validation, retry classification."""
from decimal import Decimal

import pytest

from src.mk_chain.application.submitter import TransactionSubmitter
from src.mk_chain.domain.models import OracleRate
from src.mk_common.errors import (
    DatumValidationError,
    IndexerUnavailableError,
    NoExchangeRateError,
    SubmissionRejectedError,
    TransientSubmissionError,
    UnknownActionError,
)
from src.mk_common.retry import RetryPolicy
from tests.unit.fakes import LISTING_ID, FakeBuilder, FakeIndexer, ScriptedNode

_METADATA = {"type": "agent", "name": "Summarizer"}


def _buy_params(**overrides) -> dict:
    params = {
        "listing_id": LISTING_ID,
        "seller": "addr_test1seller",
        "buyer": "addr_test1buyer",
        "price": "100",
        "metadata": _METADATA,
    }
    params.update(overrides)
    return params


def _submitter(node=None, indexer=None, builder=None, max_retries: int = 3):
    return TransactionSubmitter(
        builder or FakeBuilder(),
        node or ScriptedNode("txhash"),
        indexer or FakeIndexer(),
        retry_policy=RetryPolicy(max_retries=max_retries, delay=0),
        native_currency="ADA",
        rate_scaling_factor=1_000_000,
    )


class TestPrepare:
    async def test_native_purchase_uses_price_directly(self) -> None:
        indexer = FakeIndexer()

        intent = await _submitter(indexer=indexer).prepare("buy", _buy_params())

        assert intent.payment_amount == Decimal("100")
        assert intent.exchange_rate is None
        assert intent.requested_currency == "ADA"
        assert indexer.rate_calls == 0

    async def test_foreign_currency_converted_with_oracle_rate(self) -> None:
        indexer = FakeIndexer()
        indexer.rates["USD"] = OracleRate(currency="USD", rate=Decimal("0.5"))

        intent = await _submitter(indexer=indexer).prepare("buy", _buy_params(currency="usd"))

        assert intent.payment_amount == Decimal("0.00005")
        assert intent.datum.price == Decimal("0.00005")
        assert intent.exchange_rate.rate == Decimal("0.5")
        assert intent.requested_currency == "USD"

    async def test_converted_amount_rounded_up_to_lovelace(self) -> None:
        indexer = FakeIndexer()
        indexer.rates["USD"] = OracleRate(currency="USD", rate=Decimal(1) / Decimal(3))

        intent = await _submitter(indexer=indexer).prepare("buy", _buy_params(currency="USD"))

        assert intent.payment_amount == Decimal("0.000034")
        assert intent.datum.price == intent.payment_amount
        assert intent.payment_amount.as_tuple().exponent == -6

    async def test_missing_rate_fails_closed(self) -> None:
        node = ScriptedNode("txhash")

        with pytest.raises(NoExchangeRateError) as exc_info:
            await _submitter(node=node).submit("buy", _buy_params(currency="USD"))

        assert exc_info.value.code == 2002
        assert node.calls == 0

    async def test_rate_lookup_retried_on_indexer_outage(self) -> None:
        class FlakyIndexer(FakeIndexer):
            async def oracle_rate(self, currency):
                self.rate_calls += 1
                if self.rate_calls == 1:
                    raise IndexerUnavailableError("timeout")
                return OracleRate(currency="USD", rate=Decimal("2"))

        indexer = FlakyIndexer()

        intent = await _submitter(indexer=indexer).prepare(
            "subscribe",
            _buy_params(currency="USD", subscription={"duration_days": 30}),
        )

        assert indexer.rate_calls == 2
        assert intent.payment_amount == Decimal("0.0002")

    async def test_list_payment_is_listing_price(self) -> None:
        params = _buy_params()
        del params["buyer"]

        intent = await _submitter().prepare("list", params)

        assert intent.action == "list"
        assert intent.payment_amount == Decimal("100")

    async def test_cancel_has_no_payment(self) -> None:
        params = _buy_params()
        del params["buyer"]

        intent = await _submitter().prepare("cancel", params)

        assert intent.payment_amount is None

    async def test_invalid_params(self) -> None:
        params = _buy_params()
        del params["buyer"]

        with pytest.raises(DatumValidationError):
            await _submitter().prepare("buy", params)

    async def test_unknown_action(self) -> None:
        with pytest.raises(UnknownActionError):
            await _submitter().prepare("transfer", _buy_params())


class TestSubmit:
    async def test_returns_node_hash(self) -> None:
        builder = FakeBuilder()

        tx_hash = await _submitter(node=ScriptedNode("f" * 64), builder=builder).submit(
            "buy", _buy_params()
        )

        assert tx_hash == "f" * 64
        assert len(builder.intents) == 1

    async def test_transient_errors_retried_until_success(self) -> None:
        node = ScriptedNode(
            TransientSubmissionError("HTTP 503"),
            TransientSubmissionError("timeout"),
            "txhash",
        )

        assert await _submitter(node=node).submit("buy", _buy_params()) == "txhash"
        assert node.calls == 3

    async def test_transient_errors_exhaust_retries(self) -> None:
        node = ScriptedNode(TransientSubmissionError("HTTP 503"))

        with pytest.raises(TransientSubmissionError):
            await _submitter(node=node, max_retries=2).submit("buy", _buy_params())
        assert node.calls == 3

    async def test_rejection_not_retried(self) -> None:
        node = ScriptedNode(SubmissionRejectedError("HTTP 400: BadInputsUTxO"), "txhash")

        with pytest.raises(SubmissionRejectedError):
            await _submitter(node=node).submit("buy", _buy_params())
        assert node.calls == 1
