"""Unit of Work pattern for nftledger.

One unit of work spans one indexed batch: entity upserts and the checkpoint
update commit together or not at all.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nftledger.repositories.owner import OwnerRepository
from nftledger.repositories.system_state import SystemStateRepository
from nftledger.repositories.token import TokenRepository
from nftledger.repositories.transfer import TransferRepository

logger = structlog.get_logger()


class UnitOfWork:
    """Unit of Work pattern implementation.

    Manages the database transaction and provides access to all repositories.
    Use as async context manager for automatic commit/rollback.

    Example:
        async with await uow_factory() as uow:
            owners = await uow.owners.find_by_ids(addresses)
            await uow.transfers.upsert_many(transfers)
            # Automatically commits on successful exit
            # Automatically rolls back on exception
    """

    def __init__(self, session: AsyncSession):
        """Initialize UnitOfWork with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

        self.owners = OwnerRepository(session)
        self.tokens = TokenRepository(session)
        self.transfers = TransferRepository(session)
        self.system_state = SystemStateRepository(session)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Commit on clean exit, roll back and re-raise otherwise."""
        try:
            if exc_type is None:
                await self.session.commit()
                logger.debug("transaction.committed")
            else:
                await self.session.rollback()
                logger.info("transaction.rolled_back", exc_type=exc_type.__name__)
        finally:
            await self.session.close()

        return False


def create_uow_factory(session_factory: async_sessionmaker[AsyncSession]):
    """Create a factory function that produces UnitOfWork instances.

    Args:
        session_factory: SQLAlchemy async session factory

    Returns:
        Async callable that creates a UnitOfWork bound to a new session

    Example:
        session_factory = setup_db_session(db_url)
        uow_factory = create_uow_factory(session_factory)

        async with await uow_factory() as uow:
            await uow.owners.upsert_many(owners)
    """

    async def _create_uow():
        return UnitOfWork(session_factory())

    return _create_uow
