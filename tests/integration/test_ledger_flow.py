"""Integration tests for LedgerStore against PostgreSQL.

Pre-condition: a ledger database at DATABASE_URL with `alembic upgrade head` applied.

Checks the guarantees only the real schema gives: compare-and-set under a
status and tx hash predicate, prior-state restore for a failed listing change,
the UNIQUE fee per purchase and JSONB metadata round trip.
"""

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from src.mk_common.database import unit_of_work
from src.mk_common.enums import RecordKind
from src.mk_ledger.domain.models import Fee, Listing, Purchase
from src.mk_ledger.infrastructure.persistence import LedgerStore

pytestmark = pytest.mark.asyncio(loop_scope="session")

store = LedgerStore()


def _listing(**kwargs) -> Listing:
    defaults = dict(
        id=str(uuid.uuid4()),
        seller_id="seller-it",
        seller_address="addr_test1seller",
        price=Decimal("12.5"),
        access_type="subscription",
        pending_action="list",
        tx_hash=uuid.uuid4().hex * 2,
        metadata={"type": "agent", "name": "Integration"},
        submitted_at=datetime.now(UTC),
    )
    defaults.update(kwargs)
    return Listing(**defaults)


async def _seed_purchase(session_factory) -> tuple[Listing, Purchase]:
    listing = _listing(status="confirmed", pending_action=None, confirmations=20)
    purchase = Purchase(
        id=str(uuid.uuid4()),
        buyer_id="buyer-it",
        listing_id=listing.id,
        amount=Decimal("12.5"),
        tx_hash=uuid.uuid4().hex * 2,
        submitted_at=datetime.now(UTC),
    )
    async with unit_of_work(session_factory) as db:
        await store.create_listing(listing, db)
        await store.create_purchase(purchase, db)
    return listing, purchase


async def test_listing_round_trip_and_pending_lookup(session_factory) -> None:
    listing = _listing()
    async with unit_of_work(session_factory) as db:
        await store.create_listing(listing, db)

    async with unit_of_work(session_factory) as db:
        found = await store.find_pending_by_tx_hash(RecordKind.LISTING, listing.tx_hash, db)

    assert found is not None
    assert found.id == listing.id
    assert found.metadata == {"type": "agent", "name": "Integration"}
    assert found.price == Decimal("12.5")


async def test_compare_and_set_only_moves_pending(session_factory) -> None:
    listing = _listing()
    async with unit_of_work(session_factory) as db:
        await store.create_listing(listing, db)

    async with unit_of_work(session_factory) as db:
        first = await store.confirm_listing(
            listing.id, listing.tx_hash, "confirmed", 21, datetime.now(UTC), db
        )
    async with unit_of_work(session_factory) as db:
        second = await store.compare_and_set_status(
            RecordKind.LISTING, listing.id, listing.tx_hash, "pending", "failed", db,
            failure_reason="late",
        )
        record = await store.get_record(RecordKind.LISTING, listing.id, db)

    assert first is True
    assert second is False
    assert record.status == "confirmed"
    assert record.pending_action is None
    assert record.confirmations == 21


async def test_purchase_reads_listing_access_type(session_factory) -> None:
    _, purchase = await _seed_purchase(session_factory)

    async with unit_of_work(session_factory) as db:
        record = await store.get_record(RecordKind.PURCHASE, purchase.id, db)

    assert record.is_subscription


async def test_second_fee_for_purchase_is_ignored(session_factory) -> None:
    _, purchase = await _seed_purchase(session_factory)
    now = datetime.now(UTC)
    async with unit_of_work(session_factory) as db:
        completed = await store.complete_purchase(
            purchase.id, purchase.tx_hash, 20, now, now + timedelta(days=30), db
        )
        first = await store.insert_fee(Fee(str(uuid.uuid4()), purchase.id, Decimal("0.375"), now), db)
    async with unit_of_work(session_factory) as db:
        second = await store.insert_fee(Fee(str(uuid.uuid4()), purchase.id, Decimal("0.375"), now), db)
        exists = await store.fee_exists_for(purchase.id, db)

    assert completed is True
    assert first is True
    assert second is False
    assert exists is True


async def test_writes_for_a_replaced_tx_hash_are_ignored(session_factory) -> None:
    listing = _listing()
    async with unit_of_work(session_factory) as db:
        await store.create_listing(listing, db)

    async with unit_of_work(session_factory) as db:
        confirmed = await store.confirm_listing(
            listing.id, "0" * 64, "confirmed", 25, datetime.now(UTC), db
        )
        refreshed = await store.update_confirmations(
            RecordKind.LISTING, listing.id, "0" * 64, 5, db
        )
        record = await store.get_record(RecordKind.LISTING, listing.id, db)

    assert confirmed is False
    assert refreshed is False
    assert record.status == "pending"
    assert record.confirmations is None


async def test_failed_edit_restores_prior_live_state(session_factory) -> None:
    listing = _listing(status="confirmed", pending_action=None, confirmations=30)
    async with unit_of_work(session_factory) as db:
        await store.create_listing(listing, db)
    original_tx = listing.tx_hash

    edit = _listing(
        id=listing.id, price=Decimal("9"), pending_action="edit", tx_hash=uuid.uuid4().hex * 2
    )
    async with unit_of_work(session_factory) as db:
        attached = await store.attach_listing_transaction(edit, ("confirmed", "active"), db)
        pending = await store.get_record(RecordKind.LISTING, listing.id, db)
    async with unit_of_work(session_factory) as db:
        reverted = await store.revert_listing_change(listing.id, edit.tx_hash, "not observed", db)
        record = await store.get_record(RecordKind.LISTING, listing.id, db)

    assert attached is True
    assert pending.prior_tx_hash == original_tx
    assert pending.prior_price == Decimal("12.5")
    assert reverted is True
    assert record.status == "confirmed"
    assert record.tx_hash == original_tx
    assert record.price == Decimal("12.5")
    assert record.confirmations == 30
    assert record.pending_action is None
    assert record.prior_status is None
    assert record.failure_reason == "not observed"


async def test_purchase_keeps_subscription_days(session_factory) -> None:
    listing = _listing(status="confirmed", pending_action=None, confirmations=20)
    purchase = Purchase(
        id=str(uuid.uuid4()),
        buyer_id="buyer-it",
        listing_id=listing.id,
        amount=Decimal("12.5"),
        tx_hash=uuid.uuid4().hex * 2,
        subscription_days=7,
        submitted_at=datetime.now(UTC),
    )
    async with unit_of_work(session_factory) as db:
        await store.create_listing(listing, db)
        await store.create_purchase(purchase, db)

    async with unit_of_work(session_factory) as db:
        record = await store.get_record(RecordKind.PURCHASE, purchase.id, db)

    assert record.subscription_days == 7
