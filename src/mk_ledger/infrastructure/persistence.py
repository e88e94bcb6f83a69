"""LedgerStore — raw SQL persistence for listings, purchases and fees.

Every status change is a single conditional UPDATE keyed on the current status
and transaction hash (compare-and-set). A lost race returns False; it is never
an error.
"""
import json
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.enums import ListingStatus, RecordKind
from src.mk_ledger.domain.models import Fee, LedgerRecord, Listing, Purchase

_TABLES = {RecordKind.LISTING: "listings", RecordKind.PURCHASE: "purchases"}

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_INSERT_LISTING_SQL = text("""
    INSERT INTO listings (id, seller_id, seller_address, price, full_price,
        access_type, status, pending_action, tx_hash, confirmations, metadata,
        failure_reason, submitted_at)
    VALUES (:id, :seller_id, :seller_address, :price, :full_price,
        :access_type, :status, :pending_action, :tx_hash, :confirmations,
        CAST(:metadata AS JSONB), :failure_reason, :submitted_at)
""")

_INSERT_PURCHASE_SQL = text("""
    INSERT INTO purchases (id, buyer_id, listing_id, amount, currency, status,
        tx_hash, confirmations, subscription_days, failure_reason, submitted_at)
    VALUES (:id, :buyer_id, :listing_id, :amount, :currency, :status,
        :tx_hash, :confirmations, :subscription_days, :failure_reason, :submitted_at)
""")

_LISTING_COLUMNS = """
    id, seller_id, seller_address, price, full_price, access_type, status,
    pending_action, tx_hash, confirmations, metadata, failure_reason,
    created_at, submitted_at, confirmed_at, prior_status, prior_tx_hash,
    prior_price, prior_full_price, prior_confirmations
"""

_PURCHASE_COLUMNS = """
    p.id, p.buyer_id, p.listing_id, p.amount, p.currency, p.status, p.tx_hash,
    p.confirmations, p.subscription_expiry, p.failure_reason, p.created_at,
    p.submitted_at, p.completed_at, p.subscription_days,
    l.access_type AS listing_access_type
"""

_GET_LISTING_SQL = text(f"SELECT {_LISTING_COLUMNS} FROM listings WHERE id = :id")

_GET_PURCHASE_SQL = text(f"""
    SELECT {_PURCHASE_COLUMNS}
    FROM purchases p LEFT JOIN listings l ON l.id = p.listing_id
    WHERE p.id = :id
""")

_FIND_PENDING_LISTING_SQL = text(f"""
    SELECT {_LISTING_COLUMNS} FROM listings
    WHERE tx_hash = :tx_hash AND status = 'pending'
    LIMIT 1
""")

_FIND_PENDING_PURCHASE_SQL = text(f"""
    SELECT {_PURCHASE_COLUMNS}
    FROM purchases p LEFT JOIN listings l ON l.id = p.listing_id
    WHERE p.tx_hash = :tx_hash AND p.status = 'pending'
    LIMIT 1
""")

_LIST_PENDING_LISTINGS_SQL = text(f"""
    SELECT {_LISTING_COLUMNS} FROM listings
    WHERE status = 'pending'
      AND (CAST(:submitted_before AS TIMESTAMPTZ) IS NULL
           OR submitted_at < :submitted_before)
    ORDER BY submitted_at ASC
    LIMIT :limit
""")

_LIST_PENDING_PURCHASES_SQL = text(f"""
    SELECT {_PURCHASE_COLUMNS}
    FROM purchases p LEFT JOIN listings l ON l.id = p.listing_id
    WHERE p.status = 'pending'
      AND (CAST(:submitted_before AS TIMESTAMPTZ) IS NULL
           OR p.submitted_at < :submitted_before)
    ORDER BY p.submitted_at ASC
    LIMIT :limit
""")

# Every write below is also keyed on tx_hash: evidence about one transaction
# never moves a record that has since been attached to another.

_CAS_STATUS_SQL = {
    kind: text(f"""
        UPDATE {table}
        SET status = :next_status,
            failure_reason = COALESCE(:failure_reason, failure_reason),
            updated_at = NOW()
        WHERE id = :id AND status = :expected
          AND tx_hash IS NOT DISTINCT FROM :tx_hash
    """)
    for kind, table in _TABLES.items()
}

_UPDATE_CONFIRMATIONS_SQL = {
    kind: text(f"""
        UPDATE {table}
        SET confirmations = :confirmations, updated_at = NOW()
        WHERE id = :id AND status = 'pending' AND tx_hash = :tx_hash
    """)
    for kind, table in _TABLES.items()
}

_CONFIRM_LISTING_SQL = text("""
    UPDATE listings
    SET status = :next_status, confirmations = :confirmations,
        confirmed_at = :confirmed_at, pending_action = NULL,
        prior_status = NULL, prior_tx_hash = NULL, prior_price = NULL,
        prior_full_price = NULL, prior_confirmations = NULL, updated_at = NOW()
    WHERE id = :id AND status = 'pending' AND tx_hash = :tx_hash
""")

_COMPLETE_PURCHASE_SQL = text("""
    UPDATE purchases
    SET status = 'completed', confirmations = :confirmations,
        completed_at = :completed_at, subscription_expiry = :subscription_expiry,
        updated_at = NOW()
    WHERE id = :id AND status = 'pending' AND tx_hash = :tx_hash
""")

# Right-hand sides read the pre-update row, so prior_* captures the live state
_ATTACH_LISTING_TX_SQL = text("""
    UPDATE listings
    SET prior_status = status, prior_tx_hash = tx_hash, prior_price = price,
        prior_full_price = full_price, prior_confirmations = confirmations,
        status = 'pending', pending_action = :pending_action, tx_hash = :tx_hash,
        confirmations = NULL, price = :price, full_price = :full_price,
        submitted_at = :submitted_at, updated_at = NOW()
    WHERE id = :id AND status = ANY(string_to_array(CAST(:expected_csv AS TEXT), ','))
""")

_REVERT_LISTING_CHANGE_SQL = text("""
    UPDATE listings
    SET status = COALESCE(prior_status, 'confirmed'),
        tx_hash = COALESCE(prior_tx_hash, tx_hash),
        price = COALESCE(prior_price, price), full_price = prior_full_price,
        confirmations = prior_confirmations, pending_action = NULL,
        failure_reason = :failure_reason,
        prior_status = NULL, prior_tx_hash = NULL, prior_price = NULL,
        prior_full_price = NULL, prior_confirmations = NULL, updated_at = NOW()
    WHERE id = :id AND status = 'pending' AND tx_hash = :tx_hash
      AND pending_action IN ('edit', 'cancel')
""")

_FEE_EXISTS_SQL = text("SELECT 1 FROM fees WHERE purchase_id = :purchase_id LIMIT 1")

_INSERT_FEE_SQL = text("""
    INSERT INTO fees (id, purchase_id, fee_amount, recorded_at)
    VALUES (:id, :purchase_id, :fee_amount, :recorded_at)
    ON CONFLICT (purchase_id) DO NOTHING
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _load_json(value: Any) -> dict[str, Any]:
    # asyncpg hands JSONB back as text for raw statements
    if value is None:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _row_to_listing(row: Any) -> Listing:
    return Listing(
        id=str(row.id),
        seller_id=row.seller_id,
        seller_address=row.seller_address,
        price=row.price,
        full_price=row.full_price,
        access_type=row.access_type,
        status=row.status,
        pending_action=row.pending_action,
        tx_hash=row.tx_hash,
        confirmations=row.confirmations,
        metadata=_load_json(row.metadata),
        failure_reason=row.failure_reason,
        created_at=row.created_at,
        submitted_at=row.submitted_at,
        confirmed_at=row.confirmed_at,
        prior_status=row.prior_status,
        prior_tx_hash=row.prior_tx_hash,
        prior_price=row.prior_price,
        prior_full_price=row.prior_full_price,
        prior_confirmations=row.prior_confirmations,
    )


def _row_to_purchase(row: Any) -> Purchase:
    return Purchase(
        id=str(row.id),
        buyer_id=row.buyer_id,
        listing_id=str(row.listing_id),
        amount=row.amount,
        currency=row.currency,
        status=row.status,
        tx_hash=row.tx_hash,
        confirmations=row.confirmations,
        subscription_expiry=row.subscription_expiry,
        failure_reason=row.failure_reason,
        created_at=row.created_at,
        submitted_at=row.submitted_at,
        completed_at=row.completed_at,
        subscription_days=row.subscription_days,
        listing_access_type=row.listing_access_type,
    )


_MAPPERS = {RecordKind.LISTING: _row_to_listing, RecordKind.PURCHASE: _row_to_purchase}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class LedgerStore:
    """Concrete implementation of LedgerStoreProtocol using raw SQL."""

    async def create_listing(self, listing: Listing, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_LISTING_SQL,
            {
                "id": listing.id,
                "seller_id": listing.seller_id,
                "seller_address": listing.seller_address,
                "price": listing.price,
                "full_price": listing.full_price,
                "access_type": listing.access_type,
                "status": listing.status,
                "pending_action": listing.pending_action,
                "tx_hash": listing.tx_hash,
                "confirmations": listing.confirmations,
                "metadata": json.dumps(listing.metadata),
                "failure_reason": listing.failure_reason,
                "submitted_at": listing.submitted_at,
            },
        )

    async def create_purchase(self, purchase: Purchase, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_PURCHASE_SQL,
            {
                "id": purchase.id,
                "buyer_id": purchase.buyer_id,
                "listing_id": purchase.listing_id,
                "amount": purchase.amount,
                "currency": purchase.currency,
                "status": purchase.status,
                "tx_hash": purchase.tx_hash,
                "confirmations": purchase.confirmations,
                "subscription_days": purchase.subscription_days,
                "failure_reason": purchase.failure_reason,
                "submitted_at": purchase.submitted_at,
            },
        )

    async def get_record(
        self, kind: RecordKind, record_id: str, db: AsyncSession
    ) -> LedgerRecord | None:
        sql = _GET_LISTING_SQL if kind == RecordKind.LISTING else _GET_PURCHASE_SQL
        row = (await db.execute(sql, {"id": record_id})).fetchone()
        return _MAPPERS[kind](row) if row else None

    async def find_pending_by_tx_hash(
        self, kind: RecordKind, tx_hash: str, db: AsyncSession
    ) -> LedgerRecord | None:
        sql = (
            _FIND_PENDING_LISTING_SQL if kind == RecordKind.LISTING
            else _FIND_PENDING_PURCHASE_SQL
        )
        row = (await db.execute(sql, {"tx_hash": tx_hash})).fetchone()
        return _MAPPERS[kind](row) if row else None

    async def list_pending(
        self,
        kind: RecordKind,
        db: AsyncSession,
        submitted_before: datetime | None = None,
        limit: int = 500,
    ) -> list[LedgerRecord]:
        sql = (
            _LIST_PENDING_LISTINGS_SQL if kind == RecordKind.LISTING
            else _LIST_PENDING_PURCHASES_SQL
        )
        result = await db.execute(sql, {"submitted_before": submitted_before, "limit": limit})
        mapper = _MAPPERS[kind]
        return [mapper(row) for row in result.fetchall()]

    async def compare_and_set_status(
        self,
        kind: RecordKind,
        record_id: str,
        tx_hash: str | None,
        expected: str,
        next_status: str,
        db: AsyncSession,
        failure_reason: str | None = None,
    ) -> bool:
        result = await db.execute(
            _CAS_STATUS_SQL[kind],
            {
                "id": record_id,
                "tx_hash": tx_hash,
                "expected": expected,
                "next_status": next_status,
                "failure_reason": failure_reason,
            },
        )
        return (result.rowcount or 0) == 1

    async def confirm_listing(
        self,
        listing_id: str,
        tx_hash: str,
        next_status: str,
        confirmations: int,
        confirmed_at: datetime,
        db: AsyncSession,
    ) -> bool:
        if next_status not in (ListingStatus.CONFIRMED.value, ListingStatus.CANCELLED.value):
            raise ValueError(f"Listing cannot be confirmed into status {next_status}")
        result = await db.execute(
            _CONFIRM_LISTING_SQL,
            {
                "id": listing_id,
                "tx_hash": tx_hash,
                "next_status": next_status,
                "confirmations": confirmations,
                "confirmed_at": confirmed_at,
            },
        )
        return (result.rowcount or 0) == 1

    async def complete_purchase(
        self,
        purchase_id: str,
        tx_hash: str,
        confirmations: int,
        completed_at: datetime,
        subscription_expiry: datetime | None,
        db: AsyncSession,
    ) -> bool:
        result = await db.execute(
            _COMPLETE_PURCHASE_SQL,
            {
                "id": purchase_id,
                "tx_hash": tx_hash,
                "confirmations": confirmations,
                "completed_at": completed_at,
                "subscription_expiry": subscription_expiry,
            },
        )
        return (result.rowcount or 0) == 1

    async def update_confirmations(
        self,
        kind: RecordKind,
        record_id: str,
        tx_hash: str,
        confirmations: int,
        db: AsyncSession,
    ) -> bool:
        result = await db.execute(
            _UPDATE_CONFIRMATIONS_SQL[kind],
            {"id": record_id, "tx_hash": tx_hash, "confirmations": confirmations},
        )
        return (result.rowcount or 0) == 1

    async def attach_listing_transaction(
        self,
        listing: Listing,
        expected_statuses: tuple[str, ...],
        db: AsyncSession,
    ) -> bool:
        result = await db.execute(
            _ATTACH_LISTING_TX_SQL,
            {
                "id": listing.id,
                "pending_action": listing.pending_action,
                "tx_hash": listing.tx_hash,
                "price": listing.price,
                "full_price": listing.full_price,
                "submitted_at": listing.submitted_at,
                "expected_csv": ",".join(expected_statuses),
            },
        )
        return (result.rowcount or 0) == 1

    async def revert_listing_change(
        self, listing_id: str, tx_hash: str, reason: str, db: AsyncSession
    ) -> bool:
        """Put a listing whose edit/cancel tx failed back to its prior live state."""
        result = await db.execute(
            _REVERT_LISTING_CHANGE_SQL,
            {"id": listing_id, "tx_hash": tx_hash, "failure_reason": reason},
        )
        return (result.rowcount or 0) == 1

    async def fee_exists_for(self, purchase_id: str, db: AsyncSession) -> bool:
        row = (await db.execute(_FEE_EXISTS_SQL, {"purchase_id": purchase_id})).fetchone()
        return row is not None

    async def insert_fee(self, fee: Fee, db: AsyncSession) -> bool:
        result = await db.execute(
            _INSERT_FEE_SQL,
            {
                "id": fee.id,
                "purchase_id": fee.purchase_id,
                "fee_amount": fee.fee_amount,
                "recorded_at": fee.recorded_at,
            },
        )
        return (result.rowcount or 0) == 1
