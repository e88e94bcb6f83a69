"""Settlement worker entry point.

Run with: python -m src.main

Builds every collaborator explicitly from Settings, resumes tracking for records
left pending by a previous process, then runs the reconciliation loop until
SIGINT/SIGTERM.
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import asyncio
import logging
import signal
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import text

from config.settings import Settings, settings
from src.mk_chain.application.submitter import TransactionSubmitter
from src.mk_chain.domain.clients import TransactionBuilderProtocol
from src.mk_chain.infrastructure.indexer import ChainIndexerClient
from src.mk_chain.infrastructure.node_client import NodeSubmitClient
from src.mk_common.database import SessionFactory, create_engine, create_session_factory
from src.mk_common.retry import RetryPolicy
from src.mk_ledger.infrastructure.persistence import LedgerStore
from src.mk_market.application.service import MarketActionService
from src.mk_reconcile.application.engine import ReconciliationEngine
from src.mk_reconcile.application.settlement import RecordSettler
from src.mk_reconcile.application.tracker import ConfirmationTracker

logger = logging.getLogger("mk.worker")


@dataclass
class Runtime:
    cfg: Settings
    indexer: ChainIndexerClient
    node: NodeSubmitClient
    ledger: LedgerStore
    ledger_sessions: SessionFactory
    settler: RecordSettler
    tracker: ConfirmationTracker
    engine: ReconciliationEngine

    def market_service(self, builder: TransactionBuilderProtocol) -> MarketActionService:
        """Action service for a host process that owns the signing wallet."""
        submitter = TransactionSubmitter(
            builder,
            self.node,
            self.indexer,
            retry_policy=RetryPolicy(
                max_retries=self.cfg.MAX_RETRIES, delay=self.cfg.RETRY_DELAY_SECONDS
            ),
            native_currency=self.cfg.NATIVE_CURRENCY,
            rate_scaling_factor=self.cfg.RATE_SCALING_FACTOR,
        )
        return MarketActionService(submitter, self.ledger, self.ledger_sessions, self.tracker)


@asynccontextmanager
async def open_runtime(cfg: Settings) -> AsyncIterator[Runtime]:
    """Startup: verify both databases. Shutdown: cancel trackers, close clients."""
    ledger_engine = create_engine(cfg.DATABASE_URL, echo=cfg.DEBUG)
    indexer_engine = create_engine(cfg.INDEXER_DATABASE_URL, pool_size=5)
    node = NodeSubmitClient(cfg.NODE_SUBMIT_URL, cfg.NODE_PROJECT_ID or None)
    try:
        async with ledger_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        async with indexer_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        ledger_sessions = create_session_factory(ledger_engine)
        indexer = ChainIndexerClient(
            create_session_factory(indexer_engine),
            oracle_address=cfg.ORACLE_ADDRESS or None,
            query_timeout=cfg.INDEXER_QUERY_TIMEOUT_SECONDS,
        )
        ledger = LedgerStore()
        settler = RecordSettler(
            ledger,
            ledger_sessions,
            confirmation_threshold=cfg.CONFIRMATION_THRESHOLD,
            fee_percent=cfg.MARKETPLACE_FEE_PERCENT,
            subscription_duration_days=cfg.SUBSCRIPTION_DURATION_DAYS,
        )
        tracker = ConfirmationTracker(
            indexer,
            ledger,
            ledger_sessions,
            settler,
            interval=cfg.TRACK_INTERVAL_SECONDS,
            retry_policy=RetryPolicy(
                max_retries=cfg.MAX_RETRIES, delay=cfg.RETRY_DELAY_SECONDS
            ),
        )
        engine = ReconciliationEngine(
            indexer,
            ledger,
            ledger_sessions,
            settler,
            marketplace_address=cfg.MARKETPLACE_ADDRESS,
            scan_limit=cfg.SCAN_LIMIT,
            pending_max_age=timedelta(minutes=cfg.PENDING_MAX_AGE_MINUTES),
            scan_interval=cfg.SCAN_INTERVAL_SECONDS,
        )
        runtime = Runtime(
            cfg, indexer, node, ledger, ledger_sessions, settler, tracker, engine
        )
        try:
            yield runtime
        finally:
            engine.stop()
            await tracker.shutdown()
    finally:
        await node.aclose()
        await indexer_engine.dispose()
        await ledger_engine.dispose()


async def run(cfg: Settings) -> None:
    if not cfg.MARKETPLACE_ADDRESS:
        raise SystemExit("MARKETPLACE_ADDRESS must be set")
    async with open_runtime(cfg) as runtime:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, runtime.engine.stop)
        await runtime.tracker.resume_pending()
        await runtime.engine.run_forever()


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("%s starting", settings.APP_NAME)
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
