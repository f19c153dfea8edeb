"""Multicall client for batched read-only contract calls.

Bundles many calls to one function into `aggregate` / `tryAggregate`
requests against a Multicall helper contract, paginating large inputs so a
single eth_call never exceeds the node's response-time budget.
"""

from dataclasses import dataclass
from typing import Any, Sequence

import structlog
from eth_abi.exceptions import DecodingError
from eth_utils import to_hex
from web3 import AsyncWeb3, Web3

from nftledger.abi.codec import FunctionCodec
from nftledger.abi.multicall import AGGREGATE, TRY_AGGREGATE
from nftledger.core.batching import chunked
from nftledger.services.exceptions import MulticallError

logger = structlog.get_logger()


@dataclass(frozen=True)
class CallResult:
    """Outcome of one call inside a tryAggregate request."""

    success: bool
    value: tuple[Any, ...] | None = None


class Multicall:
    """Multicall helper bound to one contract address and block height."""

    def __init__(self, w3: AsyncWeb3, address: str, block_height: int):
        """Initialize the client.

        Args:
            w3: AsyncWeb3 instance for eth_call
            address: Multicall helper contract address
            block_height: Block at which every call is evaluated
        """
        self.w3 = w3
        self.address = Web3.to_checksum_address(address)
        self.block_height = block_height

    async def aggregate(
        self,
        function: FunctionCodec,
        target: str,
        args_list: Sequence[Sequence[Any]],
        page_size: int | None = None,
    ) -> list[tuple[Any, ...]]:
        """Call `function` once per argument tuple, failing if any call reverts.

        Args:
            function: Codec of the function to call on target
            target: Contract receiving the calls
            args_list: One argument tuple per call
            page_size: Calls per aggregated request (default: all in one)

        Returns:
            Decoded return values, in the order of args_list

        Raises:
            MulticallError: If a request fails or its response cannot be decoded
        """
        results: list[tuple[Any, ...]] = []

        for offset, page in chunked(args_list, page_size or max(len(args_list), 1)):
            calls = [(target, function.encode(args)) for args in page]
            raw = await self._call(AGGREGATE.encode([calls]), offset, len(page))

            try:
                _, return_data = AGGREGATE.decode(raw)
                decoded = [function.decode(item) for item in return_data]
            except DecodingError as e:
                raise MulticallError(
                    f"Undecodable aggregate response: {e}", offset
                ) from e

            self._check_length(decoded, page, offset)
            results.extend(decoded)

        return results

    async def try_aggregate(
        self,
        function: FunctionCodec,
        target: str,
        args_list: Sequence[Sequence[Any]],
        page_size: int | None = None,
    ) -> list[CallResult]:
        """Call `function` once per argument tuple, tolerating individual reverts.

        A call that reverts, or whose return data does not decode, yields
        CallResult(success=False) at its position; the rest are unaffected.

        Args:
            function: Codec of the function to call on target
            target: Contract receiving the calls
            args_list: One argument tuple per call
            page_size: Calls per aggregated request (default: all in one)

        Returns:
            One CallResult per argument tuple, in the order of args_list

        Raises:
            MulticallError: If a whole request fails or its envelope cannot be decoded
        """
        results: list[CallResult] = []

        for offset, page in chunked(args_list, page_size or max(len(args_list), 1)):
            calls = [(target, function.encode(args)) for args in page]
            raw = await self._call(TRY_AGGREGATE.encode([False, calls]), offset, len(page))

            try:
                (pairs,) = TRY_AGGREGATE.decode(raw)
            except DecodingError as e:
                raise MulticallError(
                    f"Undecodable tryAggregate response: {e}", offset
                ) from e

            self._check_length(pairs, page, offset)
            results.extend(self._to_result(function, success, data) for success, data in pairs)

        return results

    @staticmethod
    def _to_result(function: FunctionCodec, success: bool, data: bytes) -> CallResult:
        if not success:
            return CallResult(success=False)
        try:
            return CallResult(success=True, value=function.decode(data))
        except DecodingError:
            return CallResult(success=False)

    @staticmethod
    def _check_length(results: Sequence[Any], page: Sequence[Any], offset: int) -> None:
        if len(results) != len(page):
            raise MulticallError(
                f"Multicall returned {len(results)} results for {len(page)} calls "
                f"at offset {offset}",
                offset,
            )

    async def _call(self, calldata: bytes, offset: int, size: int) -> bytes:
        logger.debug(
            "multicall.request",
            address=self.address,
            block=self.block_height,
            offset=offset,
            size=size,
        )
        try:
            return await self.w3.eth.call(
                {"to": self.address, "data": to_hex(calldata)},
                block_identifier=self.block_height,
            )
        except Exception as e:
            logger.error(
                "multicall.request_failed",
                error=str(e),
                error_type=type(e).__name__,
                block=self.block_height,
                offset=offset,
                size=size,
            )
            raise MulticallError(f"Multicall request failed: {e}", offset) from e
