"""Transfer repository for nftledger.

Transfers are append-only: rows are inserted once and replays are ignored.
"""

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from nftledger.core.batching import chunked
from nftledger.models.transfer import Transfer

# 7 columns per row; stays below PostgreSQL's 65535 bind parameter limit
QUERY_BATCH_SIZE = 5_000


class TransferRepository:
    """Repository for Transfer entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def upsert_many(self, transfers: list[Transfer]) -> None:
        """Insert transfers, skipping ids that already exist.

        Transfer ids are derived from the originating log, so re-running a
        batch hits ON CONFLICT DO NOTHING instead of duplicating rows.

        Args:
            transfers: Transfer entities in log order
        """
        for _, page in chunked(transfers, QUERY_BATCH_SIZE):
            stmt = insert(Transfer).values([transfer.model_dump() for transfer in page])
            stmt = stmt.on_conflict_do_nothing(index_elements=["id"])
            await self.session.execute(stmt)
        await self.session.flush()

    async def get_by_token(self, token_id: str) -> list[Transfer]:
        """Retrieve the transfer history of a token in log order.

        Args:
            token_id: Decimal token id

        Returns:
            Transfers ordered by id (block number, then log index)
        """
        result = await self.session.execute(
            select(Transfer)
            .where(Transfer.token_id == token_id)  # type: ignore[arg-type]
            .order_by(Transfer.id.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def get_by_block_range(self, start_block: int, end_block: int) -> list[Transfer]:
        """Retrieve transfers within a block range.

        Args:
            start_block: Starting block number (inclusive)
            end_block: Ending block number (inclusive)

        Returns:
            Transfers ordered by id (block number, then log index)
        """
        result = await self.session.execute(
            select(Transfer)
            .where(
                Transfer.block_number >= start_block,  # type: ignore[arg-type]
                Transfer.block_number <= end_block,  # type: ignore[arg-type]
            )
            .order_by(Transfer.id.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
