"""Repository layer for nftledger.

Each repository is self-contained and implements the bulk find/upsert
operations the reconciler needs for one entity kind.
"""

from nftledger.repositories.owner import OwnerRepository
from nftledger.repositories.system_state import SystemStateRepository
from nftledger.repositories.token import TokenRepository
from nftledger.repositories.transfer import TransferRepository

__all__ = [
    "OwnerRepository",
    "TokenRepository",
    "TransferRepository",
    "SystemStateRepository",
]
