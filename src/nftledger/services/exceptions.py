"""Service error hierarchy for transfer indexing.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, timeouts, node unavailable)
- PermanentError: Non-retryable errors (corrupt input, broken invariants)

Both kinds abort the batch being processed; only the indexer loop decides
whether a batch is retried.
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - RPC node timeouts or connection resets
    - Aggregated metadata call exceeding the node's response budget
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Logs that do not match the Transfer event layout
    - Reconciliation invariant violations
    - Configuration errors
    """

    pass


class DecodeError(PermanentError):
    """A log cannot be turned into a TransferEvent.

    Carries the block number and log index so operators can locate the
    offending log upstream.
    """

    def __init__(self, message: str, block_number: int, log_index: int):
        super().__init__(f"{message} (block={block_number}, log_index={log_index})")
        self.block_number = block_number
        self.log_index = log_index


class ReconciliationError(PermanentError):
    """A transfer references a token missing from the resolved entity set."""

    def __init__(self, message: str, token_id: str, transfer_id: str):
        super().__init__(f"{message} (token={token_id}, transfer={transfer_id})")
        self.token_id = token_id
        self.transfer_id = transfer_id


class MetadataFetchError(TransientError):
    """An aggregated tokenURI call failed as a whole.

    Individual reverts never raise this; they degrade to the unknown URI.
    """

    def __init__(self, message: str, block_height: int, offset: int):
        super().__init__(f"{message} (block={block_height}, offset={offset})")
        self.block_height = block_height
        self.offset = offset


class BlockchainConnectionError(TransientError):
    """Failed to read blocks or logs from the RPC endpoint."""

    pass


class MulticallError(TransientError):
    """An aggregated eth_call could not be completed or decoded.

    `offset` is the position of the failed page's first call in the input.
    """

    def __init__(self, message: str, offset: int = 0):
        super().__init__(message)
        self.offset = offset
