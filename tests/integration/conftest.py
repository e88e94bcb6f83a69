"""Integration-test fixtures.

All integration tests share a single event-loop so the asyncpg pool behind
the session-scoped engine stays valid across the whole test session.
Tests are skipped when the ledger database is not reachable.
"""

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from config.settings import settings
from src.mk_common.database import create_engine, create_session_factory


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def session_factory():
    """Session factory over the migrated ledger database."""
    engine = create_engine(settings.DATABASE_URL, pool_size=2)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1 FROM listings LIMIT 1"))
    except (SQLAlchemyError, OSError) as exc:
        await engine.dispose()
        pytest.skip(f"ledger database unavailable: {exc}")
    yield create_session_factory(engine)
    await engine.dispose()
