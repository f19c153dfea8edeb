"""Value types passed between the block source, decoder and reconciler."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Log:
    """One contract log as delivered by the block source."""

    address: str
    topics: tuple[bytes, ...]
    data: bytes
    block_number: int
    log_index: int
    transaction_hash: str | None = None


@dataclass(frozen=True)
class Block:
    """Block header fields the indexer needs plus its logs in on-chain order."""

    height: int
    hash: str
    timestamp: int  # Unix seconds
    logs: tuple[Log, ...] = ()


@dataclass(frozen=True)
class BlockBatch:
    """Contiguous block range processed in one reconciliation pass.

    `blocks` only holds blocks that carry matching logs; `to_block` is the
    upper bound of the range whether or not it had any.
    """

    from_block: int
    to_block: int
    blocks: tuple[Block, ...] = ()


@dataclass(frozen=True)
class TransferEvent:
    """Decoded ERC-721 Transfer with its provenance."""

    id: str
    block_number: int
    timestamp: datetime
    tx_hash: str
    from_address: str
    to_address: str
    token_index: int

    @property
    def token_id(self) -> str:
        return str(self.token_index)


@dataclass(frozen=True)
class BatchContext:
    """Per-batch parameters threaded through reconciliation and enrichment.

    Attributes:
        block_height: Block at which contract state is read (last block of the batch)
        contract_address: NFT contract emitting the transfers
        multicall_address: Aggregation helper used for tokenURI lookups
    """

    block_height: int
    contract_address: str
    multicall_address: str
