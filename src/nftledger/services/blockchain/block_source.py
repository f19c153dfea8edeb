"""Block supply backed by a JSON-RPC node.

Pages eth_getLogs over fixed block ranges and groups the Transfer logs of
the NFT contract into ordered blocks, one BlockBatch per range.
"""

from itertools import groupby
from typing import Any, AsyncIterator

import structlog
from eth_utils import to_bytes, to_hex
from web3 import AsyncWeb3, Web3
from web3.types import LogReceipt

from nftledger.services.blockchain.decoder import TRANSFER_TOPIC
from nftledger.services.blockchain.types import Block, BlockBatch, Log
from nftledger.services.exceptions import BlockchainConnectionError

logger = structlog.get_logger()


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return to_bytes(hexstr=value)
    return bytes(value)


def _as_hex(value: Any) -> str:
    if isinstance(value, str):
        return value.lower()
    return to_hex(value)


def to_log(raw: LogReceipt) -> Log:
    """Convert a web3 log receipt into a Log record."""
    tx_hash = raw.get("transactionHash")
    return Log(
        address=str(raw["address"]).lower(),
        topics=tuple(_as_bytes(topic) for topic in raw["topics"]),
        data=_as_bytes(raw["data"]),
        block_number=int(raw["blockNumber"]),
        log_index=int(raw["logIndex"]),
        transaction_hash=_as_hex(tx_hash) if tx_hash is not None else None,
    )


class RpcBlockSource:
    """Produces ordered BlockBatches of Transfer logs from an RPC node."""

    def __init__(self, w3: AsyncWeb3, contract_address: str, batch_size: int = 1000):
        """Initialize the block source.

        Args:
            w3: AsyncWeb3 instance
            contract_address: NFT contract whose Transfer logs are read
            batch_size: Maximum number of blocks per batch (default: 1000)
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.w3 = w3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.batch_size = batch_size

    async def latest_block(self) -> int:
        """Return the current chain head.

        Raises:
            BlockchainConnectionError: If the RPC call fails
        """
        try:
            return await self.w3.eth.block_number
        except Exception as e:
            logger.error("block_source.head_failed", error=str(e), error_type=type(e).__name__)
            raise BlockchainConnectionError(f"Failed to read chain head: {e}") from e

    async def batches(self, from_block: int, to_block: int) -> AsyncIterator[BlockBatch]:
        """Yield consecutive batches covering [from_block, to_block].

        Every range is yielded, including ranges without logs, so callers can
        checkpoint progress through empty stretches of the chain.

        Args:
            from_block: First block (inclusive)
            to_block: Last block (inclusive)

        Raises:
            BlockchainConnectionError: If logs or block headers cannot be fetched
        """
        current = from_block

        while current <= to_block:
            chunk_end = min(current + self.batch_size - 1, to_block)

            logs = await self._get_logs(current, chunk_end)
            blocks = await self._group_into_blocks(logs)

            logger.debug(
                "block_source.batch",
                from_block=current,
                to_block=chunk_end,
                logs=len(logs),
                blocks=len(blocks),
            )
            yield BlockBatch(from_block=current, to_block=chunk_end, blocks=tuple(blocks))

            current = chunk_end + 1

    async def _get_logs(self, from_block: int, to_block: int) -> list[Log]:
        try:
            raw_logs = await self.w3.eth.get_logs(
                {
                    "fromBlock": from_block,
                    "toBlock": to_block,
                    "address": self.contract_address,
                    "topics": [to_hex(TRANSFER_TOPIC)],
                }
            )
        except Exception as e:
            logger.error(
                "block_source.get_logs_failed",
                error=str(e),
                from_block=from_block,
                to_block=to_block,
            )
            raise BlockchainConnectionError(
                f"eth_getLogs failed for blocks {from_block}-{to_block}: {e}"
            ) from e

        logs = [to_log(raw) for raw in raw_logs]
        logs.sort(key=lambda log: (log.block_number, log.log_index))
        return logs

    async def _group_into_blocks(self, logs: list[Log]) -> list[Block]:
        blocks: list[Block] = []

        for height, block_logs in groupby(logs, key=lambda log: log.block_number):
            try:
                header = await self.w3.eth.get_block(height)
            except Exception as e:
                logger.error("block_source.get_block_failed", error=str(e), block=height)
                raise BlockchainConnectionError(f"Failed to fetch block {height}: {e}") from e

            blocks.append(
                Block(
                    height=height,
                    hash=_as_hex(header["hash"]),
                    timestamp=int(header["timestamp"]),
                    logs=tuple(block_logs),
                )
            )

        return blocks
