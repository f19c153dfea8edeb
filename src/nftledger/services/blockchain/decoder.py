"""Transfer event decoding.

Turns raw logs into TransferEvent records. Pure transformation: no I/O, no
state. Any log that cannot be attributed or decoded aborts the batch.
"""

from datetime import datetime, timezone
from typing import Iterable

import structlog
from eth_abi.exceptions import DecodingError

from nftledger.abi.erc721 import TRANSFER
from nftledger.services.blockchain.types import Block, Log, TransferEvent
from nftledger.services.exceptions import DecodeError

logger = structlog.get_logger()

TRANSFER_TOPIC = TRANSFER.topic


def make_transfer_id(block_number: int, log_index: int) -> str:
    """Derive a stable transfer id from the log position.

    Zero padding keeps lexical order equal to log order.
    """
    return f"{block_number:010d}-{log_index:06d}"


def decode_transfer(block: Block, log: Log) -> TransferEvent:
    """Decode one Transfer log.

    Transfer event structure:
    - topics[0]: keccak256("Transfer(address,address,uint256)")
    - topics[1]: Indexed from address (32 bytes)
    - topics[2]: Indexed to address (32 bytes)
    - topics[3]: Indexed tokenId (uint256)
    - data: empty

    Args:
        block: Block containing the log (height and timestamp)
        log: Raw log record

    Returns:
        TransferEvent with lowercase addresses

    Raises:
        DecodeError: If the log has no transaction or does not match the layout
    """
    if log.transaction_hash is None:
        raise DecodeError("Transfer log is missing its transaction", block.height, log.log_index)

    try:
        values = TRANSFER.decode(log.topics, log.data)
    except (ValueError, DecodingError) as e:
        raise DecodeError(f"Malformed Transfer log: {e}", block.height, log.log_index) from e

    event = TransferEvent(
        id=make_transfer_id(block.height, log.log_index),
        block_number=block.height,
        timestamp=datetime.fromtimestamp(block.timestamp, tz=timezone.utc),
        tx_hash=log.transaction_hash.lower(),
        from_address=values["from"].lower(),
        to_address=values["to"].lower(),
        token_index=values["tokenId"],
    )

    logger.debug(
        "decoder.transfer",
        block=event.block_number,
        tx_hash=event.tx_hash,
        from_address=event.from_address,
        to_address=event.to_address,
        token_index=event.token_index,
    )
    return event


def extract_transfer_events(blocks: Iterable[Block]) -> list[TransferEvent]:
    """Decode every Transfer log in the given blocks, in on-chain order.

    Logs with a different topic0 are skipped. Ownership is derived from the
    order of the returned list, so out-of-order input is rejected rather than
    sorted.

    Args:
        blocks: Blocks in ascending height, each with logs in log-index order

    Returns:
        Decoded events in log order

    Raises:
        DecodeError: If a Transfer log is malformed or logs are out of order
    """
    events: list[TransferEvent] = []
    last_position: tuple[int, int] | None = None

    for block in blocks:
        for log in block.logs:
            if not TRANSFER.matches(log.topics):
                continue

            position = (block.height, log.log_index)
            if last_position is not None and position <= last_position:
                raise DecodeError(
                    f"Log out of order, previous was {last_position}", block.height, log.log_index
                )
            last_position = position

            events.append(decode_transfer(block, log))

    return events
