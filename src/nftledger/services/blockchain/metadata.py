"""Token metadata enrichment.

Resolves tokenURI for many tokens at once through paginated tryAggregate
calls. A token whose call reverts gets UNKNOWN_URI; a page that fails as a
whole aborts the batch.
"""

from typing import Sequence

import structlog
from web3 import AsyncWeb3

from nftledger.abi.erc721 import TOKEN_URI
from nftledger.models.token import UNKNOWN_URI
from nftledger.services.blockchain.multicall import Multicall
from nftledger.services.blockchain.types import BatchContext
from nftledger.services.exceptions import MetadataFetchError, MulticallError

logger = structlog.get_logger()

DEFAULT_CHUNK_SIZE = 1000


class MetadataFetcher:
    """Fetches token metadata URIs via the Multicall helper."""

    def __init__(self, w3: AsyncWeb3, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """Initialize the fetcher.

        Args:
            w3: AsyncWeb3 instance for eth_call
            chunk_size: Tokens per aggregated call (default: 1000)

        Raises:
            ValueError: If chunk_size is not positive
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.w3 = w3
        self.chunk_size = chunk_size

    async def fetch_token_uris(
        self, token_indexes: Sequence[int], context: BatchContext
    ) -> list[str]:
        """Fetch tokenURI for each index, in input order.

        Inputs are not deduplicated; callers pass each token once.

        Args:
            token_indexes: On-chain token indexes
            context: Batch context (contract addresses and block height)

        Returns:
            One URI per input index; UNKNOWN_URI where the lookup failed

        Raises:
            MetadataFetchError: If an aggregated call fails as a whole
        """
        if not token_indexes:
            return []

        multicall = Multicall(self.w3, context.multicall_address, context.block_height)

        try:
            results = await multicall.try_aggregate(
                TOKEN_URI,
                context.contract_address,
                [(index,) for index in token_indexes],
                page_size=self.chunk_size,
            )
        except MulticallError as e:
            raise MetadataFetchError(
                f"tokenURI lookup failed: {e}", context.block_height, e.offset
            ) from e

        uris: list[str] = []
        failed = 0
        for index, result in zip(token_indexes, results):
            if result.success and result.value is not None:
                uris.append(result.value[0])
            else:
                failed += 1
                uris.append(UNKNOWN_URI)
                logger.warning(
                    "metadata.item_failed",
                    token_index=index,
                    block=context.block_height,
                )

        logger.info(
            "metadata.fetched",
            requested=len(token_indexes),
            failed=failed,
            chunks=-(-len(token_indexes) // self.chunk_size),
            block=context.block_height,
        )
        return uris
