"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from nftledger.models.owner import Owner
from nftledger.models.system_state import SystemState
from nftledger.models.token import UNKNOWN_URI, Token
from nftledger.models.transfer import Transfer

__all__ = [
    "Owner",
    "Token",
    "Transfer",
    "SystemState",
    "UNKNOWN_URI",
]
