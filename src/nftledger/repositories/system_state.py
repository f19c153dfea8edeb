"""SystemState repository for nftledger.

Stores indexer checkpoints in the system_state key-value table.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from nftledger.models.system_state import SystemState


class SystemStateRepository:
    """Repository for the SystemState key-value store.

    Writes use INSERT ... ON CONFLICT DO UPDATE so a checkpoint can be moved
    forward inside the same transaction as the batch it describes.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_state(self, key: str) -> Any | None:
        """Retrieve the JSON value stored under a key.

        Args:
            key: State key (e.g., "last_processed_block")

        Returns:
            Deserialized value if found, None otherwise
        """
        result = await self.session.execute(select(SystemState).where(SystemState.key == key))  # type: ignore[arg-type]
        state = result.scalar_one_or_none()
        return state.state_value if state else None

    async def set_state(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under a key (UPSERT).

        Args:
            key: State key (alphanumeric + underscores only)
            value: State value (must be JSON-serializable)

        Raises:
            ValueError: If key is not alphanumeric with underscores
        """
        if not key.replace("_", "").isalnum():
            raise ValueError("Key must be alphanumeric with underscores only")

        now = datetime.now(timezone.utc)
        stmt = insert(SystemState).values(key=key, state_value=value, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"state_value": value, "updated_at": now},
        )
        await self.session.execute(stmt)
        await self.session.flush()
