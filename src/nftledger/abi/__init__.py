"""Static ABI codec table for nftledger.

The indexer only touches a handful of contract entry points, so instead of
loading JSON ABIs at runtime every event and function is declared once as a
typed codec and registered here by canonical signature.

Example:
    >>> from nftledger.abi import get_event
    >>> transfer = get_event("Transfer(address,address,uint256)")
    >>> transfer.decode(log.topics, log.data)["tokenId"]
"""

from nftledger.abi import erc721, multicall
from nftledger.abi.codec import EventCodec, EventParam, FunctionCodec

EVENTS: dict[str, EventCodec] = {codec.signature: codec for codec in (erc721.TRANSFER,)}

FUNCTIONS: dict[str, FunctionCodec] = {
    codec.signature: codec
    for codec in (erc721.TOKEN_URI, multicall.AGGREGATE, multicall.TRY_AGGREGATE)
}


def get_event(signature: str) -> EventCodec:
    """Look up an event codec by canonical signature.

    Raises:
        KeyError: If the event is not registered
    """
    return EVENTS[signature]


def get_function(signature: str) -> FunctionCodec:
    """Look up a function codec by canonical signature.

    Raises:
        KeyError: If the function is not registered
    """
    return FUNCTIONS[signature]


__all__ = [
    "EVENTS",
    "FUNCTIONS",
    "EventCodec",
    "EventParam",
    "FunctionCodec",
    "get_event",
    "get_function",
]
