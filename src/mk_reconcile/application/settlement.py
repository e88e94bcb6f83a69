"""RecordSettler — the one place a ledger record moves on indexer evidence.

Both the ReconciliationEngine and the ConfirmationTracker go through here, so a
record converges to the same final state whichever path sees it first. Every
write is a compare-and-set on status='pending' and the record's current tx hash,
inside one unit of work.
"""
import logging
import uuid
from datetime import timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_chain.domain.models import TxStatus
from src.mk_common.amounts import calculate_fee
from src.mk_common.database import SessionFactory, unit_of_work
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import ListingStatus, MarketAction, PurchaseStatus, RecordKind
from src.mk_ledger.domain.models import Fee, Listing, Purchase
from src.mk_ledger.domain.repository import LedgerStoreProtocol
from src.mk_reconcile.domain.models import Settlement, SettleOutcome

logger = logging.getLogger(__name__)

_FAILED_STATUS = {
    RecordKind.LISTING: ListingStatus.FAILED.value,
    RecordKind.PURCHASE: PurchaseStatus.FAILED.value,
}

_REVERTIBLE = (MarketAction.EDIT.value, MarketAction.CANCEL.value)

_NOT_PENDING = Settlement(SettleOutcome.NOT_PENDING)
_UNCHANGED = Settlement(SettleOutcome.UNCHANGED)


class RecordSettler:
    def __init__(
        self,
        ledger: LedgerStoreProtocol,
        session_factory: SessionFactory,
        confirmation_threshold: int = 20,
        fee_percent: Decimal = Decimal("3"),
        subscription_duration_days: int = 30,
    ) -> None:
        if confirmation_threshold < 1:
            raise ValueError("confirmation_threshold must be >= 1")
        self._ledger = ledger
        self._session_factory = session_factory
        self.confirmation_threshold = confirmation_threshold
        self._fee_percent = fee_percent
        self._subscription_days = subscription_duration_days

    def is_final(self, confirmations: int) -> bool:
        return confirmations >= self.confirmation_threshold

    async def apply(
        self,
        kind: RecordKind,
        record_id: str,
        tx_hash: str,
        status: TxStatus,
        persist_unchanged: bool = False,
    ) -> Settlement:
        """Re-read the record and advance it according to the status of tx_hash.

        A record no longer pending on tx_hash is left alone.
        persist_unchanged writes the confirmation count even when it did not move.
        """
        async with unit_of_work(self._session_factory) as db:
            record = await self._ledger.get_record(kind, record_id, db)
            if record is None or not record.is_pending or record.tx_hash != tx_hash:
                return _NOT_PENDING
            if not status.found:
                return _UNCHANGED

            if self.is_final(status.confirmations):
                if isinstance(record, Listing):
                    return await self._confirm_listing(record, status.confirmations, db)
                return await self._complete_purchase(record, status.confirmations, db)

            if persist_unchanged or record.confirmations != status.confirmations:
                updated = await self._ledger.update_confirmations(
                    kind, record_id, tx_hash, status.confirmations, db
                )
                if not updated:
                    return _NOT_PENDING
                return Settlement(SettleOutcome.REFRESHED, record_status=record.status)
            return _UNCHANGED

    async def fail(
        self, kind: RecordKind, record_id: str, tx_hash: str | None, reason: str
    ) -> Settlement:
        """Give up on tx_hash for this record.

        A failed edit or cancel puts the listing back to its prior live state,
        since the listing it would have replaced is still on chain.
        """
        async with unit_of_work(self._session_factory) as db:
            record = await self._ledger.get_record(kind, record_id, db)
            if record is None or not record.is_pending or record.tx_hash != tx_hash:
                return _NOT_PENDING
            if isinstance(record, Listing) and record.pending_action in _REVERTIBLE and tx_hash:
                reverted = await self._ledger.revert_listing_change(
                    record_id, tx_hash, reason, db
                )
                if not reverted:
                    return _NOT_PENDING
                restored = record.prior_status or ListingStatus.CONFIRMED.value
                logger.warning(
                    "listing %s %s tx %s failed, restored to %s: %s",
                    record_id, record.pending_action, tx_hash, restored, reason,
                )
                return Settlement(SettleOutcome.REVERTED, record_status=restored)

            moved = await self._ledger.compare_and_set_status(
                kind,
                record_id,
                tx_hash,
                "pending",
                _FAILED_STATUS[kind],
                db,
                failure_reason=reason,
            )
        if not moved:
            return _NOT_PENDING
        logger.warning("%s %s failed: %s", kind.value, record_id, reason)
        return Settlement(SettleOutcome.FAILED, record_status=_FAILED_STATUS[kind])

    async def _confirm_listing(
        self, listing: Listing, confirmations: int, db: AsyncSession
    ) -> Settlement:
        # A confirmed delist ends the listing; list/edit make it live
        next_status = (
            ListingStatus.CANCELLED.value
            if listing.pending_action == MarketAction.CANCEL.value
            else ListingStatus.CONFIRMED.value
        )
        moved = await self._ledger.confirm_listing(
            listing.id, listing.tx_hash, next_status, confirmations, utc_now(), db
        )
        if not moved:
            return _NOT_PENDING
        logger.info(
            "listing %s %s (tx %s, %d confirmations)",
            listing.id, next_status, listing.tx_hash, confirmations,
        )
        return Settlement(SettleOutcome.CONFIRMED, record_status=next_status)

    async def _complete_purchase(
        self, purchase: Purchase, confirmations: int, db: AsyncSession
    ) -> Settlement:
        completed_at = utc_now()
        expiry = None
        if purchase.is_subscription:
            days = purchase.subscription_days or self._subscription_days
            expiry = completed_at + timedelta(days=days)
        moved = await self._ledger.complete_purchase(
            purchase.id, purchase.tx_hash, confirmations, completed_at, expiry, db
        )
        if not moved:
            return _NOT_PENDING
        logger.info(
            "purchase %s completed (tx %s, %d confirmations)",
            purchase.id, purchase.tx_hash, confirmations,
        )

        completed = PurchaseStatus.COMPLETED.value
        if await self._ledger.fee_exists_for(purchase.id, db):
            logger.info("fee for purchase %s already recorded", purchase.id)
            return Settlement(SettleOutcome.CONFIRMED, record_status=completed)
        fee = Fee(
            id=str(uuid.uuid4()),
            purchase_id=purchase.id,
            fee_amount=calculate_fee(purchase.amount, self._fee_percent),
            recorded_at=completed_at,
        )
        recorded = await self._ledger.insert_fee(fee, db)
        if recorded:
            logger.info(
                "recorded fee %s (%s%%) for purchase %s",
                fee.fee_amount, self._fee_percent, purchase.id,
            )
        return Settlement(SettleOutcome.CONFIRMED, record_status=completed, fee_recorded=recorded)
