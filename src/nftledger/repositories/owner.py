"""Owner repository for nftledger.

Bulk lookup and insert-if-absent for Owner entities.
"""

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from nftledger.core.batching import chunked
from nftledger.models.owner import Owner

# Keeps every statement well below PostgreSQL's 65535 bind parameter limit
QUERY_BATCH_SIZE = 10_000


class OwnerRepository:
    """Repository for Owner entities.

    Entities returned by find_by_ids are detached from the session, so
    in-memory changes only reach the database through upsert_many.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def find_by_ids(self, owner_ids: Iterable[str]) -> dict[str, Owner]:
        """Retrieve existing owners for a set of addresses.

        Args:
            owner_ids: Lowercase account addresses

        Returns:
            Mapping of address to Owner; unknown addresses are absent
        """
        ids = sorted(set(owner_ids))
        found: dict[str, Owner] = {}

        for _, page in chunked(ids, QUERY_BATCH_SIZE):
            result = await self.session.execute(select(Owner).where(Owner.id.in_(page)))  # type: ignore[attr-defined]
            for owner in result.scalars().all():
                self.session.expunge(owner)
                found[owner.id] = owner

        return found

    async def upsert_many(self, owners: list[Owner]) -> None:
        """Insert owners that do not exist yet.

        Owners carry no attributes besides their id, so existing rows are
        left untouched (ON CONFLICT DO NOTHING).

        Args:
            owners: Owner entities to persist
        """
        for _, page in chunked(owners, QUERY_BATCH_SIZE):
            stmt = insert(Owner).values([{"id": owner.id} for owner in page])
            stmt = stmt.on_conflict_do_nothing(index_elements=["id"])
            await self.session.execute(stmt)
        await self.session.flush()

    async def get_by_id(self, owner_id: str) -> Owner | None:
        """Retrieve owner by address.

        Args:
            owner_id: Account address (any case)

        Returns:
            Owner if found, None otherwise
        """
        result = await self.session.execute(select(Owner).where(Owner.id == owner_id.lower()))  # type: ignore[arg-type]
        return result.scalar_one_or_none()
