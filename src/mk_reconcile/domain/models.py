"""Reconciliation domain models — reports, tracked handles and settle outcomes."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from src.mk_common.enums import RecordKind, TrackState


class SettleOutcome(str, Enum):
    """Result of applying one indexer observation to one ledger record."""
    CONFIRMED = "CONFIRMED"        # this call moved the record to its confirmed state
    REFRESHED = "REFRESHED"        # still pending, confirmation count written
    UNCHANGED = "UNCHANGED"        # still pending, nothing written
    FAILED = "FAILED"              # this call moved the record to failed
    REVERTED = "REVERTED"          # failed edit/cancel; listing back to its prior live state
    NOT_PENDING = "NOT_PENDING"    # record missing, settled or on another tx (lost race / re-scan)


@dataclass(frozen=True)
class Settlement:
    outcome: SettleOutcome
    record_status: str | None = None
    fee_recorded: bool = False


@dataclass
class ReconciliationReport:
    started_at: datetime
    finished_at: datetime | None = None
    scanned: int = 0
    listings_confirmed: int = 0
    listings_cancelled: int = 0
    purchases_completed: int = 0
    fees_recorded: int = 0
    confirmations_refreshed: int = 0
    expired: int = 0
    changes_reverted: int = 0

    @property
    def writes(self) -> int:
        return (
            self.listings_confirmed
            + self.listings_cancelled
            + self.purchases_completed
            + self.fees_recorded
            + self.confirmations_refreshed
            + self.expired
            + self.changes_reverted
        )


@dataclass
class TrackHandle:
    """In-memory state of one tracked transaction. Never persisted."""

    tx_hash: str
    kind: RecordKind
    record_id: str
    state: TrackState = TrackState.PENDING
    failures: int = 0
    seen: bool = False
    confirmations: int = 0
    checks: int = 0
    last_checked_at: datetime | None = None
    error: str | None = None
    history: list[TrackState] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.kind.value, self.record_id, self.tx_hash)

    @property
    def is_terminal(self) -> bool:
        return self.state != TrackState.PENDING
