"""
Balance Store - transactional access to balance storage
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from crud.balance import BalanceRepository
from services.ledger_errors import StorageError

logger = logging.getLogger(__name__)


class BalanceStore:
    """
    Opens one database transaction per ledger operation.

    Everything done through the yielded repository commits together when
    the block exits normally and rolls back on any exception, including
    task cancellation. Driver and SQL failures surface as StorageError.
    """

    def __init__(self, session_factory: async_sessionmaker):
        """
        Args:
            session_factory: async_sessionmaker bound to the ledger database
        """
        self._session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[BalanceRepository]:
        """
        Unit of work for a single ledger operation.

        Usage:
            async with store.transaction() as repo:
                await repo.create_if_absent(...)
                await repo.consume_trial(...)
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield BalanceRepository(session)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Balance storage failure: {e}")
            raise StorageError(f"Balance storage failure: {e}") from e

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[BalanceRepository]:
        """Read-only access; the transaction is rolled back on exit."""
        try:
            async with self._session_factory() as session:
                try:
                    yield BalanceRepository(session)
                finally:
                    await session.rollback()
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Balance storage read failure: {e}")
            raise StorageError(f"Balance storage read failure: {e}") from e
