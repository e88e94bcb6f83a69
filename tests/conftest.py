"""Shared test fixtures."""
from decimal import Decimal

import pytest

from src.mk_reconcile.application.settlement import RecordSettler
from tests.unit.fakes import FakeIndexer, FakeLedgerStore, fake_session_factory

THRESHOLD = 20


@pytest.fixture
def ledger() -> FakeLedgerStore:
    return FakeLedgerStore()


@pytest.fixture
def indexer() -> FakeIndexer:
    return FakeIndexer()


@pytest.fixture
def settler(ledger: FakeLedgerStore) -> RecordSettler:
    return RecordSettler(
        ledger,
        fake_session_factory,
        confirmation_threshold=THRESHOLD,
        fee_percent=Decimal("3"),
        subscription_duration_days=30,
    )
