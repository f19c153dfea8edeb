"""Token entity - NFT with its metadata URI and current holder."""

from typing import Optional

from sqlalchemy import Column
from sqlmodel import Field, SQLModel

from nftledger.models.types import Uint256

# Stored when the tokenURI call for a token reverts or returns garbage
UNKNOWN_URI = "unknown"


class Token(SQLModel, table=True):
    """Token represents one NFT of the indexed contract.

    `id` is the decimal string of the on-chain index. `uri` is resolved once,
    when the token is first observed, and never refreshed afterwards.
    `owner_id` follows the `to` side of the latest transfer.
    """

    __tablename__ = "tokens"  # type: ignore[assignment]

    id: str = Field(primary_key=True, max_length=78)
    index: int = Field(sa_column=Column("index", Uint256(), nullable=False))
    uri: Optional[str] = Field(default=None)
    owner_id: Optional[str] = Field(
        default=None, foreign_key="owners.id", index=True, max_length=42
    )

    @classmethod
    def from_index(cls, index: int, uri: str | None = None) -> "Token":
        """Build a new, unowned token for an on-chain index."""
        return cls(id=str(index), index=index, uri=uri)

    def transfer_to(self, owner_id: str) -> None:
        """Point the token at its new holder."""
        self.owner_id = owner_id
