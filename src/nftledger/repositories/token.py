"""Token repository for nftledger.

Provides bulk lookup and upsert for Token entities. The upsert only moves
ownership: a token's URI and index are fixed when the row is first written.
"""

from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from nftledger.core.batching import chunked
from nftledger.models.token import Token

# 4 columns per row; stays below PostgreSQL's 65535 bind parameter limit
QUERY_BATCH_SIZE = 10_000


class TokenRepository:
    """Repository for Token entities.

    Entities returned by find_by_ids are detached from the session, so
    ownership changes made by the reconciler are written only by upsert_many.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def find_by_ids(self, token_ids: Iterable[str]) -> dict[str, Token]:
        """Retrieve existing tokens for a set of ids.

        Args:
            token_ids: Decimal token ids

        Returns:
            Mapping of token id to Token; unknown ids are absent
        """
        ids = sorted(set(token_ids))
        found: dict[str, Token] = {}

        for _, page in chunked(ids, QUERY_BATCH_SIZE):
            result = await self.session.execute(select(Token).where(Token.id.in_(page)))  # type: ignore[attr-defined]
            for token in result.scalars().all():
                self.session.expunge(token)
                found[token.id] = token

        return found

    async def upsert_many(self, tokens: list[Token]) -> None:
        """Insert new tokens and update the owner of existing ones.

        Query explanation:
        - INSERT: new tokens with index, uri and owner
        - ON CONFLICT (id) DO UPDATE: only owner_id is overwritten, so a
          replayed batch can never replace a URI fetched earlier

        Args:
            tokens: Token entities to persist
        """
        for _, page in chunked(tokens, QUERY_BATCH_SIZE):
            stmt = insert(Token).values(
                [
                    {
                        "id": token.id,
                        "index": token.index,
                        "uri": token.uri,
                        "owner_id": token.owner_id,
                    }
                    for token in page
                ]
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["id"],
                set_={"owner_id": stmt.excluded.owner_id},
            )
            await self.session.execute(stmt)
        await self.session.flush()

    async def get_by_id(self, token_id: str) -> Token | None:
        """Retrieve token by its decimal id.

        Args:
            token_id: Decimal string of the on-chain index

        Returns:
            Token if found, None otherwise
        """
        result = await self.session.execute(select(Token).where(Token.id == token_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def get_by_owner(self, owner_id: str, limit: int = 100, offset: int = 0) -> list[Token]:
        """Retrieve tokens currently held by an owner, lowest index first.

        Args:
            owner_id: Lowercase account address
            limit: Maximum number of tokens to return (default: 100)
            offset: Number of tokens to skip (default: 0)

        Returns:
            List of tokens ordered by index
        """
        result = await self.session.execute(
            select(Token)
            .where(Token.owner_id == owner_id)  # type: ignore[arg-type]
            .order_by(Token.index.asc())  # type: ignore[attr-defined]
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count(self) -> int:
        """Count all indexed tokens."""
        result = await self.session.execute(select(func.count()).select_from(Token))
        return result.scalar_one()
