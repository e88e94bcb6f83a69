"""ReconciliationEngine — periodic scan that converges ledger records with the chain.

Each cycle:
  1. Pull the most recent transactions at the marketplace address.
  2. For each hash with a pending listing/purchase, read its depth and settle it
     (confirm, complete + fee + subscription expiry, or refresh the count).
  3. Sweep pending records older than the lookback window; any whose transaction
     the indexer has never seen are failed so nothing stays stuck. A stale edit
     or cancel puts the listing back to its prior live state instead.

An unreachable indexer aborts the cycle; per-record writes already committed
stay committed and the next cycle picks up the rest.
"""
import asyncio
import logging
from datetime import timedelta

from src.mk_chain.domain.clients import ChainIndexerProtocol
from src.mk_common.database import SessionFactory, unit_of_work
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import ListingStatus, RecordKind
from src.mk_common.errors import IndexerUnavailableError
from src.mk_ledger.domain.models import LedgerRecord
from src.mk_ledger.domain.repository import LedgerStoreProtocol
from src.mk_reconcile.application.settlement import RecordSettler
from src.mk_reconcile.domain.models import ReconciliationReport, Settlement, SettleOutcome

logger = logging.getLogger(__name__)


class ReconciliationEngine:
    def __init__(
        self,
        indexer: ChainIndexerProtocol,
        ledger: LedgerStoreProtocol,
        session_factory: SessionFactory,
        settler: RecordSettler,
        marketplace_address: str,
        scan_limit: int = 50,
        pending_max_age: timedelta = timedelta(hours=1),
        scan_interval: float = 30.0,
    ) -> None:
        self._indexer = indexer
        self._ledger = ledger
        self._session_factory = session_factory
        self._settler = settler
        self._address = marketplace_address
        self._scan_limit = scan_limit
        self._max_age = pending_max_age
        self._scan_interval = scan_interval
        self._cycle_lock = asyncio.Lock()
        self._stopping = asyncio.Event()

    async def run_once(self) -> ReconciliationReport:
        """One full cycle. Raises IndexerUnavailableError if the indexer cannot be read."""
        async with self._cycle_lock:
            report = ReconciliationReport(started_at=utc_now())
            observed = await self._indexer.transactions_at(self._address, limit=self._scan_limit)
            seen: set[str] = set()
            for tx in observed:
                if tx.tx_hash in seen:
                    continue
                seen.add(tx.tx_hash)
                report.scanned += 1
                await self._reconcile_tx(tx.tx_hash, report)

            await self._expire_stale(report)
            report.finished_at = utc_now()
            # Idle cycles only at DEBUG
            logger.log(
                logging.INFO if report.writes else logging.DEBUG,
                "reconciliation cycle: scanned=%d listings=%d cancelled=%d purchases=%d "
                "fees=%d refreshed=%d expired=%d reverted=%d",
                report.scanned,
                report.listings_confirmed,
                report.listings_cancelled,
                report.purchases_completed,
                report.fees_recorded,
                report.confirmations_refreshed,
                report.expired,
                report.changes_reverted,
            )
            return report

    async def _reconcile_tx(self, tx_hash: str, report: ReconciliationReport) -> None:
        async with unit_of_work(self._session_factory) as db:
            pending: list[LedgerRecord] = []
            for kind in (RecordKind.LISTING, RecordKind.PURCHASE):
                record = await self._ledger.find_pending_by_tx_hash(kind, tx_hash, db)
                if record is not None:
                    pending.append(record)
        if not pending:
            return

        status = await self._indexer.status(tx_hash)
        for record in pending:
            settlement = await self._settler.apply(record.kind, record.id, tx_hash, status)
            self._count(record.kind, settlement, report)

    async def _expire_stale(self, report: ReconciliationReport) -> None:
        cutoff = utc_now() - self._max_age
        for kind in (RecordKind.LISTING, RecordKind.PURCHASE):
            async with unit_of_work(self._session_factory) as db:
                stale = await self._ledger.list_pending(kind, db, submitted_before=cutoff)
            for record in stale:
                if not record.tx_hash:
                    settlement = await self._settler.fail(
                        kind, record.id, None, "no transaction hash"
                    )
                else:
                    status = await self._indexer.status(record.tx_hash)
                    if status.found:
                        # Late but on chain: settle normally instead of failing
                        settlement = await self._settler.apply(
                            kind, record.id, record.tx_hash, status
                        )
                    else:
                        settlement = await self._settler.fail(
                            kind,
                            record.id,
                            record.tx_hash,
                            f"transaction {record.tx_hash} not observed within {self._max_age}",
                        )
                self._count(kind, settlement, report)

    @staticmethod
    def _count(kind: RecordKind, settlement: Settlement, report: ReconciliationReport) -> None:
        if settlement.outcome == SettleOutcome.CONFIRMED:
            if kind == RecordKind.PURCHASE:
                report.purchases_completed += 1
            elif settlement.record_status == ListingStatus.CANCELLED.value:
                report.listings_cancelled += 1
            else:
                report.listings_confirmed += 1
        elif settlement.outcome == SettleOutcome.REFRESHED:
            report.confirmations_refreshed += 1
        elif settlement.outcome == SettleOutcome.FAILED:
            report.expired += 1
        elif settlement.outcome == SettleOutcome.REVERTED:
            report.changes_reverted += 1
        if settlement.fee_recorded:
            report.fees_recorded += 1

    async def _safe_run_once(self) -> None:
        try:
            await self.run_once()
        except IndexerUnavailableError as exc:
            logger.warning("reconciliation cycle aborted, retrying next interval: %s", exc)
        except Exception:
            logger.exception("reconciliation cycle crashed")

    async def run_forever(self, interval: float | None = None) -> None:
        """Tick every interval; a tick that lands while a cycle is in flight is skipped."""
        interval = self._scan_interval if interval is None else interval
        self._stopping.clear()
        logger.info("reconciliation engine started (interval %.1fs)", interval)
        current: asyncio.Task[None] | None = None
        try:
            while not self._stopping.is_set():
                if current is not None and not current.done():
                    logger.warning("previous reconciliation cycle still running, skipping tick")
                else:
                    current = asyncio.create_task(self._safe_run_once())
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            if current is not None and not current.done():
                await current
            logger.info("reconciliation engine stopped")

    def stop(self) -> None:
        self._stopping.set()
