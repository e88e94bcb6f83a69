"""Ledger domain models — pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from src.mk_common.enums import (
    SETTLED_LISTING_STATUSES,
    SETTLED_PURCHASE_STATUSES,
    AccessType,
    ListingStatus,
    PurchaseStatus,
    RecordKind,
)


@dataclass
class Listing:
    id: str
    seller_id: str
    seller_address: str
    price: Decimal
    full_price: Decimal | None = None
    access_type: str = AccessType.LIFETIME.value
    status: str = ListingStatus.PENDING.value
    pending_action: str | None = None  # list / edit / cancel awaiting confirmation
    tx_hash: str | None = None
    confirmations: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    failure_reason: str | None = None
    created_at: datetime | None = None
    submitted_at: datetime | None = None
    confirmed_at: datetime | None = None
    # Live state before an edit/cancel went pending; restored if that tx fails
    prior_status: str | None = None
    prior_tx_hash: str | None = None
    prior_price: Decimal | None = None
    prior_full_price: Decimal | None = None
    prior_confirmations: int | None = None

    kind = RecordKind.LISTING

    @property
    def is_pending(self) -> bool:
        return self.status == ListingStatus.PENDING.value

    @property
    def is_settled(self) -> bool:
        return self.status in {s.value for s in SETTLED_LISTING_STATUSES}

    @property
    def is_purchasable(self) -> bool:
        return self.status in (ListingStatus.CONFIRMED.value, ListingStatus.ACTIVE.value)


@dataclass
class Purchase:
    id: str
    buyer_id: str
    listing_id: str
    amount: Decimal
    currency: str = "ADA"
    status: str = PurchaseStatus.PENDING.value
    tx_hash: str | None = None
    confirmations: int | None = None
    subscription_expiry: datetime | None = None
    failure_reason: str | None = None
    created_at: datetime | None = None
    submitted_at: datetime | None = None
    completed_at: datetime | None = None
    # Term bought by a subscribe; falls back to the configured default when NULL
    subscription_days: int | None = None
    # Joined from listings; decides whether completion sets subscription_expiry
    listing_access_type: str | None = None

    kind = RecordKind.PURCHASE

    @property
    def is_pending(self) -> bool:
        return self.status == PurchaseStatus.PENDING.value

    @property
    def is_settled(self) -> bool:
        return self.status in {s.value for s in SETTLED_PURCHASE_STATUSES}

    @property
    def is_subscription(self) -> bool:
        return self.listing_access_type == AccessType.SUBSCRIPTION.value


@dataclass(frozen=True)
class Fee:
    """Immutable audit row: one per completed purchase."""

    id: str
    purchase_id: str
    fee_amount: Decimal
    recorded_at: datetime


LedgerRecord = Listing | Purchase
