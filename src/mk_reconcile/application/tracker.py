"""ConfirmationTracker — one polling loop per submitted transaction.

Handle state machine: Pending -> Confirmed | Failed.
  - Confirmed once the indexer reports depth >= threshold.
  - Failed when a transaction that was seen disappears (rolled back), or when
    consecutive lookup errors exceed the retry allowance.
A handle whose record has moved on to a newer transaction only reports on its
own transaction and never writes.
The failure counter lives only in memory; a success resets it.
"""
import asyncio
import logging

from src.mk_chain.domain.clients import ChainIndexerProtocol
from src.mk_chain.domain.models import TxStatus
from src.mk_common.database import SessionFactory, unit_of_work
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import ListingStatus, RecordKind, TrackState
from src.mk_common.errors import IndexerUnavailableError
from src.mk_common.retry import RetryPolicy
from src.mk_ledger.domain.models import LedgerRecord
from src.mk_ledger.domain.repository import LedgerStoreProtocol
from src.mk_reconcile.application.settlement import RecordSettler
from src.mk_reconcile.domain.models import SettleOutcome, TrackHandle

logger = logging.getLogger(__name__)


class ConfirmationTracker:
    def __init__(
        self,
        indexer: ChainIndexerProtocol,
        ledger: LedgerStoreProtocol,
        session_factory: SessionFactory,
        settler: RecordSettler,
        interval: float = 10.0,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._indexer = indexer
        self._ledger = ledger
        self._session_factory = session_factory
        self._settler = settler
        self._interval = interval
        self._retry = retry_policy or RetryPolicy()
        self._tasks: dict[tuple[str, str, str], asyncio.Task[TrackHandle]] = {}
        self._handles: dict[tuple[str, str, str], TrackHandle] = {}

    @property
    def active_handles(self) -> list[TrackHandle]:
        return [h for h in self._handles.values() if not h.is_terminal]

    def _state_of_settled(self, record: LedgerRecord | None) -> TrackState:
        """Map a record some other writer finalized onto a handle state."""
        if record is None or record.status == ListingStatus.FAILED.value:
            return TrackState.FAILED
        if record.confirmations is not None and self._settler.is_final(record.confirmations):
            return TrackState.CONFIRMED
        return TrackState.FAILED

    def _finish(self, handle: TrackHandle, state: TrackState, error: str | None = None) -> TrackState:
        handle.state = state
        handle.error = error
        handle.history.append(state)
        logger.info(
            "tracked %s %s (tx %s) -> %s", handle.kind.value, handle.record_id, handle.tx_hash,
            state.value,
        )
        return state

    async def _load(self, handle: TrackHandle) -> LedgerRecord | None:
        async with unit_of_work(self._session_factory) as db:
            return await self._ledger.get_record(handle.kind, handle.record_id, db)

    def _report_superseded(self, handle: TrackHandle, status: TxStatus | None) -> TrackState:
        # The record moved on to a newer transaction; report on ours, write nothing
        if status is not None and status.found:
            if self._settler.is_final(status.confirmations):
                return self._finish(handle, TrackState.CONFIRMED)
            return handle.state
        return self._finish(handle, TrackState.FAILED, error="superseded")

    async def check_once(self, handle: TrackHandle) -> TrackState:
        """One poll: re-read the record, query the indexer, settle."""
        if handle.is_terminal:
            return handle.state
        handle.checks += 1
        handle.last_checked_at = utc_now()

        record = await self._load(handle)
        if record is None:
            return self._finish(handle, TrackState.FAILED, error="record missing")
        superseded = record.tx_hash != handle.tx_hash
        if not superseded and record.is_settled:
            return self._finish(handle, self._state_of_settled(record))

        try:
            status = await self._indexer.status(handle.tx_hash)
        except IndexerUnavailableError as exc:
            handle.failures += 1
            logger.warning(
                "status lookup for %s failed (%d consecutive): %s",
                handle.tx_hash, handle.failures, exc,
            )
            if not self._retry.exhausted(handle.failures):
                return handle.state
            if superseded:
                return self._finish(handle, TrackState.FAILED, error="max retries exceeded")
            settlement = await self._settler.fail(
                handle.kind, handle.record_id, handle.tx_hash,
                f"max retries exceeded: {exc.message}",
            )
            if settlement.outcome == SettleOutcome.NOT_PENDING:
                return await self._adopt(handle)
            return self._finish(handle, TrackState.FAILED, error="max retries exceeded")

        handle.failures = 0
        if superseded:
            return self._report_superseded(handle, status)
        if not status.found:
            if handle.seen:
                settlement = await self._settler.fail(
                    handle.kind, handle.record_id, handle.tx_hash, "transaction rolled back"
                )
                if settlement.outcome == SettleOutcome.NOT_PENDING:
                    return await self._adopt(handle, status)
                return self._finish(handle, TrackState.FAILED, error="rolled back")
            return handle.state

        handle.seen = True
        handle.confirmations = status.confirmations
        settlement = await self._settler.apply(
            handle.kind, handle.record_id, handle.tx_hash, status, persist_unchanged=True
        )
        if settlement.outcome == SettleOutcome.CONFIRMED:
            return self._finish(handle, TrackState.CONFIRMED)
        if settlement.outcome == SettleOutcome.NOT_PENDING:
            return await self._adopt(handle, status)
        return handle.state

    async def _adopt(self, handle: TrackHandle, status: TxStatus | None = None) -> TrackState:
        # Lost a race: adopt whatever the other writer decided
        record = await self._load(handle)
        if record is not None and record.tx_hash != handle.tx_hash:
            return self._report_superseded(handle, status)
        if record is not None and record.is_pending:
            return handle.state
        return self._finish(handle, self._state_of_settled(record))

    async def _run(self, handle: TrackHandle) -> TrackHandle:
        logger.info(
            "tracking %s %s (tx %s)", handle.kind.value, handle.record_id, handle.tx_hash
        )
        try:
            while True:
                state = await self.check_once(handle)
                if state != TrackState.PENDING:
                    return handle
                await asyncio.sleep(self._interval)
        finally:
            if self._handles.get(handle.key) is handle:
                del self._handles[handle.key]

    def start(self, tx_hash: str, kind: RecordKind, record_id: str) -> asyncio.Task[TrackHandle]:
        """Track in the background; a second start for the same record reuses the task."""
        key = (kind.value, record_id, tx_hash)
        existing = self._tasks.get(key)
        if existing is not None and not existing.done():
            return existing
        handle = TrackHandle(tx_hash=tx_hash, kind=kind, record_id=record_id)
        self._handles[key] = handle
        task = asyncio.create_task(self._run(handle), name=f"track-{kind.value}-{record_id}")
        self._tasks[key] = task
        task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return task

    async def track(self, tx_hash: str, kind: RecordKind, record_id: str) -> TrackHandle:
        """Poll until the handle is terminal and return it.

        Shares the loop with start(); cancelling the caller leaves that loop running.
        """
        return await asyncio.shield(self.start(tx_hash, kind, record_id))

    def _forget(self, key: tuple[str, str, str], task: asyncio.Task[TrackHandle]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled() and task.exception() is not None:
            logger.error("tracker task %s crashed", key, exc_info=task.exception())

    async def resume_pending(self, limit: int = 500) -> int:
        """Start handles for every record still pending (e.g. after a restart)."""
        started = 0
        for kind in (RecordKind.LISTING, RecordKind.PURCHASE):
            async with unit_of_work(self._session_factory) as db:
                pending = await self._ledger.list_pending(kind, db, limit=limit)
            for record in pending:
                if record.tx_hash:
                    self.start(record.tx_hash, kind, record.id)
                    started += 1
        logger.info("resumed tracking for %d pending records", started)
        return started

    async def shutdown(self) -> None:
        """Cancel all handles; each write is a single conditional update so none is half-done."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("confirmation tracker stopped (%d handles cancelled)", len(tasks))
