"""ERC-721 events and functions used by the indexer."""

from nftledger.abi.codec import EventCodec, EventParam, FunctionCodec

# event Transfer(address indexed from, address indexed to, uint256 indexed tokenId)
TRANSFER = EventCodec(
    "Transfer",
    (
        EventParam("from", "address", indexed=True),
        EventParam("to", "address", indexed=True),
        EventParam("tokenId", "uint256", indexed=True),
    ),
)

# function tokenURI(uint256 tokenId) view returns (string)
TOKEN_URI = FunctionCodec("tokenURI", ("uint256",), ("string",))
