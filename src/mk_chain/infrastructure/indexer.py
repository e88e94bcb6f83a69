"""ChainIndexerClient — read-only queries against a cardano-db-sync database.

Runs on its own engine; never writes. Any driver error or timeout becomes
IndexerUnavailableError so callers can treat it as transient.
"""
import asyncio
import json
import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.mk_chain.domain.models import ObservedTransaction, OracleRate, TxStatus
from src.mk_chain.domain.oracle import OracleDatumError, parse_oracle_datum
from src.mk_common.database import SessionFactory
from src.mk_common.errors import IndexerUnavailableError

logger = logging.getLogger(__name__)

_TXS_AT_ADDRESS_SQL = text("""
    SELECT DISTINCT ON (tx.id) encode(tx.hash, 'hex') AS tx_hash, block.block_no
    FROM tx
    JOIN tx_out ON tx_out.tx_id = tx.id
    JOIN block ON block.id = tx.block_id
    WHERE tx_out.address = :address
    ORDER BY tx.id DESC
    LIMIT :limit
""")

_TX_STATUS_SQL = text("""
    SELECT tx.id AS tx_id, block.block_no,
           (SELECT MAX(block_no) FROM block) AS tip_block_no
    FROM tx
    JOIN block ON block.id = tx.block_id
    WHERE tx.hash = decode(:tx_hash, 'hex')
""")

_TX_METADATA_SQL = text("""
    SELECT key, json FROM tx_metadata WHERE tx_id = :tx_id
""")

_ORACLE_DATUM_SQL = text("""
    SELECT datum.value AS datum, block.time AS as_of
    FROM tx_out
    JOIN datum ON datum.id = tx_out.inline_datum_id
    JOIN tx ON tx.id = tx_out.tx_id
    JOIN block ON block.id = tx.block_id
    LEFT JOIN tx_in ON tx_in.tx_out_id = tx_out.tx_id
                   AND tx_in.tx_out_index = tx_out.index
    WHERE tx_out.address = :address AND tx_in.id IS NULL
    ORDER BY tx.id DESC
    LIMIT 1
""")


def _as_json(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


class ChainIndexerClient:
    def __init__(
        self,
        session_factory: SessionFactory,
        oracle_address: str | None = None,
        query_timeout: float = 10.0,
    ) -> None:
        self._session_factory = session_factory
        self._oracle_address = oracle_address
        self._query_timeout = query_timeout

    async def _fetch(self, sql: Any, params: dict[str, Any]) -> list[Any]:
        async def run() -> list[Any]:
            async with self._session_factory() as db:
                result = await db.execute(sql, params)
                return list(result.fetchall())

        try:
            return await asyncio.wait_for(run(), timeout=self._query_timeout)
        except asyncio.TimeoutError as exc:
            raise IndexerUnavailableError(f"query timed out after {self._query_timeout}s") from exc
        except (SQLAlchemyError, OSError) as exc:
            raise IndexerUnavailableError(f"{type(exc).__name__}: {exc}") from exc

    async def transactions_at(self, address: str, limit: int = 50) -> list[ObservedTransaction]:
        """Most recent transactions with an output at address, newest first."""
        rows = await self._fetch(_TXS_AT_ADDRESS_SQL, {"address": address, "limit": limit})
        return [ObservedTransaction(tx_hash=row.tx_hash, block_no=row.block_no) for row in rows]

    async def status(self, tx_hash: str) -> TxStatus:
        rows = await self._fetch(_TX_STATUS_SQL, {"tx_hash": tx_hash})
        if not rows:
            return TxStatus.not_found()
        row = rows[0]
        confirmations = max(0, (row.tip_block_no or 0) - (row.block_no or 0))
        meta_rows = await self._fetch(_TX_METADATA_SQL, {"tx_id": row.tx_id})
        metadata = {str(m.key): _as_json(m.json) for m in meta_rows} or None
        return TxStatus(
            found=True,
            confirmations=confirmations,
            block_no=row.block_no,
            metadata=metadata,
        )

    async def oracle_rate(self, currency: str) -> OracleRate | None:
        """Rate from the newest unspent oracle output, or None if the currency is absent."""
        if not self._oracle_address:
            logger.warning("oracle lookup for %s skipped: no oracle address configured", currency)
            return None
        rows = await self._fetch(_ORACLE_DATUM_SQL, {"address": self._oracle_address})
        if not rows:
            return None
        try:
            rates = parse_oracle_datum(_as_json(rows[0].datum))
        except OracleDatumError as exc:
            logger.error("oracle datum at %s is malformed: %s", self._oracle_address, exc)
            return None
        rate = rates.get(currency.upper())
        if rate is None:
            return None
        return OracleRate(currency=currency.upper(), rate=rate, as_of=rows[0].as_of)
