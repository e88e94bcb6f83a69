"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class ListingStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class RecordKind(str, Enum):
    """Which ledger table a tracked transaction belongs to."""
    LISTING = "listing"
    PURCHASE = "purchase"


class MarketAction(str, Enum):
    LIST = "list"
    EDIT = "edit"
    CANCEL = "cancel"
    BUY = "buy"
    SUBSCRIBE = "subscribe"


class AccessType(str, Enum):
    LIFETIME = "lifetime"
    SUBSCRIPTION = "subscription"


class TrackState(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    FAILED = "Failed"


LISTING_ACTIONS = frozenset({MarketAction.LIST, MarketAction.EDIT, MarketAction.CANCEL})
PURCHASE_ACTIONS = frozenset({MarketAction.BUY, MarketAction.SUBSCRIBE})

# Settled states: reconciliation never writes to them. A seller edit or cancel
# may still reopen a confirmed or active listing as pending.
SETTLED_LISTING_STATUSES = frozenset(
    {ListingStatus.CONFIRMED, ListingStatus.ACTIVE, ListingStatus.CANCELLED, ListingStatus.FAILED}
)
SETTLED_PURCHASE_STATUSES = frozenset(
    {PurchaseStatus.COMPLETED, PurchaseStatus.FAILED, PurchaseStatus.REFUNDED}
)
