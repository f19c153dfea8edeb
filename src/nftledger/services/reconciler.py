"""Entity reconciliation for decoded transfer batches.

This module provides the EntityReconciler which, for one batch of events:
1. Deduplicates the owner and token ids the batch references
2. Loads the existing entities in bulk
3. Creates tokens seen for the first time, enriched with their metadata URI
4. Applies transfers in log order so the last transfer decides ownership
5. Upserts owners, tokens and transfers through the unit of work
"""

from dataclasses import dataclass, field
from typing import Sequence

import structlog

from nftledger.models.owner import Owner
from nftledger.models.token import Token
from nftledger.models.transfer import Transfer
from nftledger.services.blockchain.metadata import MetadataFetcher
from nftledger.services.blockchain.types import BatchContext, TransferEvent
from nftledger.services.exceptions import ReconciliationError
from nftledger.uow import UnitOfWork

logger = structlog.get_logger()


@dataclass
class ReconcileResult:
    """Entities produced by one reconciliation pass, ready to persist."""

    owners: list[Owner] = field(default_factory=list)
    tokens: list[Token] = field(default_factory=list)
    transfers: list[Transfer] = field(default_factory=list)
    new_owner_count: int = 0
    new_token_count: int = 0


class EntityReconciler:
    """Resolves transfer events against persisted owners and tokens."""

    def __init__(self, metadata_fetcher: MetadataFetcher):
        """Initialize reconciler.

        Args:
            metadata_fetcher: Fetcher used once per batch for new tokens
        """
        self.metadata_fetcher = metadata_fetcher

    async def process_batch(
        self,
        events: Sequence[TransferEvent],
        context: BatchContext,
        uow: UnitOfWork,
    ) -> ReconcileResult:
        """Reconcile a batch and persist the result in the given unit of work.

        Args:
            events: Decoded transfers in log order
            context: Batch context (block height, contract addresses)
            uow: Unit of work providing the repositories

        Returns:
            The persisted entities and creation counts

        Raises:
            ReconciliationError: If a transfer's token cannot be resolved
            MetadataFetchError: If an aggregated tokenURI call fails
        """
        result = await self.reconcile(events, context, uow)
        await self.persist(result, uow)
        return result

    async def reconcile(
        self,
        events: Sequence[TransferEvent],
        context: BatchContext,
        uow: UnitOfWork,
    ) -> ReconcileResult:
        """Compute the owners, tokens and transfers a batch produces.

        Reads existing entities through the unit of work but writes nothing.

        Args:
            events: Decoded transfers in log order
            context: Batch context (block height, contract addresses)
            uow: Unit of work providing the repositories

        Returns:
            ReconcileResult with every owner and token the batch touches

        Raises:
            ReconciliationError: If a transfer's token cannot be resolved
            MetadataFetchError: If an aggregated tokenURI call fails
        """
        if not events:
            return ReconcileResult()

        # dict keys keep first-seen order, which makes the tokenURI request deterministic
        token_ids = dict.fromkeys(event.token_id for event in events)
        owner_ids = dict.fromkeys(
            address for event in events for address in (event.from_address, event.to_address)
        )

        owners = await uow.owners.find_by_ids(owner_ids)
        tokens = await uow.tokens.find_by_ids(token_ids)
        existing_owner_count = len(owners)

        logger.debug(
            "reconciler.batch_loaded",
            events=len(events),
            distinct_tokens=len(token_ids),
            distinct_owners=len(owner_ids),
            existing_tokens=len(tokens),
            existing_owners=existing_owner_count,
        )

        new_tokens = await self._init_tokens(
            [token_id for token_id in token_ids if token_id not in tokens], context
        )
        for token in new_tokens:
            tokens[token.id] = token

        transfers: list[Transfer] = []
        for event in events:
            sender = self._resolve_owner(owners, event.from_address)
            recipient = self._resolve_owner(owners, event.to_address)

            token = tokens.get(event.token_id)
            if token is None:
                logger.error(
                    "reconciler.token_missing",
                    token_id=event.token_id,
                    transfer_id=event.id,
                    block=event.block_number,
                )
                raise ReconciliationError(
                    "Transfer references a token that was neither loaded nor created",
                    token_id=event.token_id,
                    transfer_id=event.id,
                )

            token.transfer_to(recipient.id)

            transfers.append(
                Transfer(
                    id=event.id,
                    block_number=event.block_number,
                    timestamp=event.timestamp,
                    tx_hash=event.tx_hash,
                    from_id=sender.id,
                    to_id=recipient.id,
                    token_id=token.id,
                )
            )

        return ReconcileResult(
            owners=list(owners.values()),
            tokens=list(tokens.values()),
            transfers=transfers,
            new_owner_count=len(owners) - existing_owner_count,
            new_token_count=len(new_tokens),
        )

    async def persist(self, result: ReconcileResult, uow: UnitOfWork) -> None:
        """Upsert a reconciliation result.

        Owners and tokens are written before the transfers that reference
        them; the unit of work commits all three together.

        Args:
            result: Output of reconcile()
            uow: Unit of work providing the repositories
        """
        if result.owners:
            await uow.owners.upsert_many(result.owners)
        if result.tokens:
            await uow.tokens.upsert_many(result.tokens)
        if result.transfers:
            await uow.transfers.upsert_many(result.transfers)

        logger.info(
            "reconciler.batch_persisted",
            owners=len(result.owners),
            tokens=len(result.tokens),
            transfers=len(result.transfers),
            new_owners=result.new_owner_count,
            new_tokens=result.new_token_count,
        )

    async def _init_tokens(self, token_ids: list[str], context: BatchContext) -> list[Token]:
        """Create tokens seen for the first time, with their metadata URI."""
        if not token_ids:
            return []

        indexes = [int(token_id) for token_id in token_ids]
        uris = await self.metadata_fetcher.fetch_token_uris(indexes, context)

        return [Token.from_index(index, uri=uri) for index, uri in zip(indexes, uris)]

    @staticmethod
    def _resolve_owner(owners: dict[str, Owner], address: str) -> Owner:
        owner = owners.get(address)
        if owner is None:
            owner = Owner(id=address)
            owners[address] = owner
        return owner
