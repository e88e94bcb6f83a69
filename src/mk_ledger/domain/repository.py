"""LedgerStore Protocol — interface contract for the persistence layer."""
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.enums import RecordKind
from src.mk_ledger.domain.models import Fee, LedgerRecord, Listing, Purchase


class LedgerStoreProtocol(Protocol):
    async def create_listing(self, listing: Listing, db: AsyncSession) -> None: ...

    async def create_purchase(self, purchase: Purchase, db: AsyncSession) -> None: ...

    async def get_record(
        self, kind: RecordKind, record_id: str, db: AsyncSession
    ) -> LedgerRecord | None: ...

    async def find_pending_by_tx_hash(
        self, kind: RecordKind, tx_hash: str, db: AsyncSession
    ) -> LedgerRecord | None: ...

    async def list_pending(
        self,
        kind: RecordKind,
        db: AsyncSession,
        submitted_before: datetime | None = None,
        limit: int = 500,
    ) -> list[LedgerRecord]: ...

    async def compare_and_set_status(
        self,
        kind: RecordKind,
        record_id: str,
        tx_hash: str | None,
        expected: str,
        next_status: str,
        db: AsyncSession,
        failure_reason: str | None = None,
    ) -> bool: ...

    async def confirm_listing(
        self,
        listing_id: str,
        tx_hash: str,
        next_status: str,
        confirmations: int,
        confirmed_at: datetime,
        db: AsyncSession,
    ) -> bool: ...

    async def complete_purchase(
        self,
        purchase_id: str,
        tx_hash: str,
        confirmations: int,
        completed_at: datetime,
        subscription_expiry: datetime | None,
        db: AsyncSession,
    ) -> bool: ...

    async def update_confirmations(
        self,
        kind: RecordKind,
        record_id: str,
        tx_hash: str,
        confirmations: int,
        db: AsyncSession,
    ) -> bool: ...

    async def attach_listing_transaction(
        self,
        listing: Listing,
        expected_statuses: tuple[str, ...],
        db: AsyncSession,
    ) -> bool: ...

    async def revert_listing_change(
        self, listing_id: str, tx_hash: str, reason: str, db: AsyncSession
    ) -> bool: ...

    async def fee_exists_for(self, purchase_id: str, db: AsyncSession) -> bool: ...

    async def insert_fee(self, fee: Fee, db: AsyncSession) -> bool: ...
