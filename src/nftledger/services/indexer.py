"""Sequential transfer indexer.

Drives the pipeline one batch at a time:
block source -> decoder -> reconciler -> unit of work commit + checkpoint.
Each batch is committed atomically with the `last_processed_block`
checkpoint, so an interrupted run resumes at the first uncommitted batch.
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Protocol

import structlog

from nftledger.core.config import Settings
from nftledger.services.blockchain.decoder import extract_transfer_events
from nftledger.services.blockchain.types import BatchContext, BlockBatch
from nftledger.services.exceptions import PermanentError, TransientError
from nftledger.services.reconciler import EntityReconciler, ReconcileResult
from nftledger.uow import UnitOfWork

logger = structlog.get_logger()

LAST_PROCESSED_BLOCK_KEY = "last_processed_block"


class BlockSource(Protocol):
    async def latest_block(self) -> int: ...

    def batches(self, from_block: int, to_block: int) -> AsyncIterator[BlockBatch]: ...


@dataclass
class IndexerStats:
    """Summary of an indexer run."""

    batches: int = 0
    transfers: int = 0
    new_tokens: int = 0
    new_owners: int = 0
    last_block: int | None = None

    def record(self, batch: BlockBatch, result: ReconcileResult) -> None:
        self.batches += 1
        self.transfers += len(result.transfers)
        self.new_tokens += result.new_token_count
        self.new_owners += result.new_owner_count
        self.last_block = batch.to_block


async def get_last_processed_block(uow: UnitOfWork) -> int | None:
    """Get last committed block from system_state.

    Args:
        uow: Unit of work for database query

    Returns:
        Last processed block number, or None if nothing was indexed yet
    """
    value = await uow.system_state.get_state(LAST_PROCESSED_BLOCK_KEY)
    if value is None:
        return None
    return int(value)


async def update_last_processed_block(block_number: int, uow: UnitOfWork) -> None:
    """Move the checkpoint inside the current unit of work.

    Args:
        block_number: Last block of the batch being committed
        uow: Unit of work for database transaction
    """
    await uow.system_state.set_state(LAST_PROCESSED_BLOCK_KEY, block_number)
    logger.debug("update_last_processed_block", block_number=block_number)


class TransferIndexer:
    """Runs batches from a block source through the reconciler."""

    def __init__(
        self,
        source: BlockSource,
        reconciler: EntityReconciler,
        uow_factory: Callable[[], Awaitable[UnitOfWork]],
        settings: Settings,
        retry_base_delay: float = 1.0,
    ):
        """Initialize the indexer.

        Args:
            source: Block supply producing ordered batches
            reconciler: Entity reconciler
            uow_factory: Async factory returning a fresh UnitOfWork per batch
            settings: Contract addresses, start block, retry and poll settings
            retry_base_delay: First backoff delay in seconds; doubles per attempt
        """
        self.source = source
        self.reconciler = reconciler
        self.uow_factory = uow_factory
        self.settings = settings
        self.retry_base_delay = retry_base_delay

    async def resolve_start_block(self) -> int:
        """Block after the last checkpoint, or the configured start block."""
        async with await self.uow_factory() as uow:
            last_block = await get_last_processed_block(uow)

        if last_block is None:
            logger.info("indexer.start_from_config", start_block=self.settings.start_block)
            return self.settings.start_block

        logger.info("indexer.resume", last_processed_block=last_block, from_block=last_block + 1)
        return last_block + 1

    async def run(
        self,
        from_block: int | None = None,
        to_block: int | None = None,
        follow: bool = False,
    ) -> IndexerStats:
        """Index transfers from from_block up to to_block (or the chain head).

        Args:
            from_block: First block to index (default: resume from checkpoint)
            to_block: Last block to index (default: chain head at each pass)
            follow: Keep polling for new blocks after catching up; ignored
                when to_block is given

        Returns:
            IndexerStats for the blocks processed

        Raises:
            PermanentError: On decode faults or reconciliation invariant violations
            TransientError: When reading the chain or a batch still fails after all retries
        """
        stats = IndexerStats()
        next_block = from_block if from_block is not None else await self.resolve_start_block()

        logger.info("indexer.started", from_block=next_block, to_block=to_block, follow=follow)

        while True:
            head = to_block if to_block is not None else await self._latest_block_with_retry()

            if next_block <= head:
                next_block = await self._index_range(next_block, head, stats)

            if not follow or to_block is not None:
                break

            await asyncio.sleep(self.settings.poll_interval_seconds)

        logger.info(
            "indexer.completed",
            batches=stats.batches,
            transfers=stats.transfers,
            new_tokens=stats.new_tokens,
            new_owners=stats.new_owners,
            last_block=stats.last_block,
        )
        return stats

    async def process_batch(self, batch: BlockBatch) -> ReconcileResult:
        """Decode, reconcile and commit one batch together with its checkpoint.

        Args:
            batch: Block batch from the source

        Returns:
            Reconciliation result of the committed batch
        """
        events = extract_transfer_events(batch.blocks)
        context = BatchContext(
            block_height=batch.to_block,
            contract_address=self.settings.nft_contract_address,
            multicall_address=self.settings.multicall_address,
        )

        async with await self.uow_factory() as uow:
            result = await self.reconciler.process_batch(events, context, uow)
            await update_last_processed_block(batch.to_block, uow)

        logger.info(
            "indexer.batch_committed",
            from_block=batch.from_block,
            to_block=batch.to_block,
            transfers=len(result.transfers),
            new_tokens=result.new_token_count,
        )
        return result

    async def _index_range(self, from_block: int, to_block: int, stats: IndexerStats) -> int:
        """Commit every batch of [from_block, to_block]; return the next block to index.

        A transient failure while fetching or processing a batch restarts the
        range at the first uncommitted block. Consecutive failures are capped at
        max_batch_retries; a committed batch resets the count.
        """
        next_block = from_block
        failures = 0

        while next_block <= to_block:
            try:
                async for batch in self.source.batches(next_block, to_block):
                    result = await self.process_batch(batch)
                    stats.record(batch, result)
                    next_block = batch.to_block + 1
                    failures = 0

            except PermanentError as e:
                logger.error(
                    "indexer.permanent_error",
                    error=str(e),
                    error_type=type(e).__name__,
                    from_block=next_block,
                    to_block=to_block,
                    message="Batch aborted - upstream data or indexer logic needs investigation",
                )
                raise

            except TransientError as e:
                failures += 1
                if not await self._wait_before_retry(
                    e, failures, from_block=next_block, to_block=to_block
                ):
                    raise

        return next_block

    async def _latest_block_with_retry(self) -> int:
        attempt = 0
        while True:
            try:
                return await self.source.latest_block()
            except TransientError as e:
                attempt += 1
                if not await self._wait_before_retry(e, attempt, operation="latest_block"):
                    raise

    async def _wait_before_retry(self, error: TransientError, attempt: int, **context) -> bool:
        """Back off after a failed attempt; False once max_batch_retries is reached."""
        max_attempts = self.settings.max_batch_retries

        if attempt >= max_attempts:
            logger.error(
                "indexer.retries_exhausted",
                error=str(error),
                error_type=type(error).__name__,
                attempts=max_attempts,
                **context,
            )
            return False

        delay = self.retry_base_delay * 2 ** (attempt - 1)
        logger.warning(
            "indexer.transient_error_retry",
            error=str(error),
            error_type=type(error).__name__,
            attempt=attempt,
            retry_in_seconds=delay,
            **context,
        )
        await asyncio.sleep(delay)
        return True
