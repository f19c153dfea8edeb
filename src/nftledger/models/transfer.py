"""Transfer entity - append-only record of one ERC-721 Transfer event."""

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


class Transfer(SQLModel, table=True):
    """Transfer records a single ownership change.

    Rows are written once and never updated. The id is derived from the
    originating log, so replaying a batch produces the same ids.
    """

    __tablename__ = "transfers"  # type: ignore[assignment]

    id: str = Field(primary_key=True, max_length=32)
    block_number: int = Field(index=True)
    timestamp: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    tx_hash: str = Field(max_length=66)
    from_id: str = Field(foreign_key="owners.id", index=True, max_length=42)
    to_id: str = Field(foreign_key="owners.id", index=True, max_length=42)
    token_id: str = Field(foreign_key="tokens.id", index=True, max_length=78)
