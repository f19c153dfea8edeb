"""CLI command for indexing NFT transfers.

Usage:
    python -m nftledger.cli.index_transfers [OPTIONS]

Examples:
    # Resume from last checkpoint (or START_BLOCK) up to the chain head
    python -m nftledger.cli.index_transfers

    # Specific block range
    python -m nftledger.cli.index_transfers --from-block 15584000 --to-block 15600000

    # Keep following the chain head after catching up
    python -m nftledger.cli.index_transfers --follow

    # Smaller multicall pages for a slow node
    python -m nftledger.cli.index_transfers --chunk-size 250 -v
"""

import asyncio
import sys
from argparse import ArgumentParser, ArgumentTypeError, Namespace

import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3

from nftledger.core import timezone  # noqa: F401
from nftledger.core.config import Settings, configure_logging
from nftledger.core.database import setup_db_session
from nftledger.services.blockchain.block_source import RpcBlockSource
from nftledger.services.blockchain.metadata import MetadataFetcher
from nftledger.services.exceptions import PermanentError, ServiceError
from nftledger.services.indexer import TransferIndexer
from nftledger.services.reconciler import EntityReconciler
from nftledger.uow import create_uow_factory

logger = structlog.get_logger()


def parse_block(value: str) -> int | None:
    """Parse a block argument; "latest" means the chain head."""
    if value == "latest":
        return None
    return int(value)


def positive_int(value: str) -> int:
    """Parse a size argument that must be greater than zero."""
    number = int(value)
    if number <= 0:
        raise ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Index ERC-721 transfers and token metadata into PostgreSQL",
        epilog="Progress is checkpointed per batch in system_state.last_processed_block",
    )

    parser.add_argument(
        "--from-block",
        type=int,
        help="Starting block number (default: last_processed_block + 1, or START_BLOCK)",
    )

    parser.add_argument(
        "--to-block",
        type=parse_block,
        default=None,
        help='Ending block number or "latest" (default: latest)',
    )

    parser.add_argument(
        "--batch-size",
        type=positive_int,
        help="Number of blocks per batch (default: BLOCK_BATCH_SIZE)",
    )

    parser.add_argument(
        "--chunk-size",
        type=positive_int,
        help="Tokens per aggregated tokenURI call (default: METADATA_CHUNK_SIZE)",
    )

    parser.add_argument(
        "--follow",
        action="store_true",
        help="Keep polling for new blocks after reaching the chain head",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 130 (interrupted)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]

    if args.verbose:
        settings.log_level = "DEBUG"
    if args.batch_size is not None:
        settings.block_batch_size = args.batch_size
    if args.chunk_size is not None:
        settings.metadata_chunk_size = args.chunk_size

    configure_logging(settings)

    logger.info(
        "cli.started",
        contract=settings.nft_contract_address,
        multicall=settings.multicall_address,
        from_block=args.from_block,
        to_block=args.to_block,
        follow=args.follow,
    )

    w3 = AsyncWeb3(AsyncHTTPProvider(settings.rpc_url))
    if not await w3.is_connected():
        logger.error("cli.connection_failed", rpc_url=settings.rpc_url)
        print(f"Error: Failed to connect to {settings.rpc_url}", file=sys.stderr)
        return 1

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    indexer = TransferIndexer(
        source=RpcBlockSource(w3, settings.nft_contract_address, settings.block_batch_size),
        reconciler=EntityReconciler(MetadataFetcher(w3, settings.metadata_chunk_size)),
        uow_factory=uow_factory,
        settings=settings,
    )

    try:
        stats = await indexer.run(
            from_block=args.from_block,
            to_block=args.to_block,
            follow=args.follow,
        )

    except PermanentError as e:
        logger.error("cli.permanent_error", error=str(e), error_type=type(e).__name__)
        print(f"\nError: {e}", file=sys.stderr)
        print(
            "The batch was rolled back; fix the input or code before re-running.",
            file=sys.stderr,
        )
        return 1

    except ServiceError as e:
        logger.error("cli.service_error", error=str(e), error_type=type(e).__name__)
        print(f"\nError: {e}", file=sys.stderr)
        print("The batch was rolled back; re-run to resume from the checkpoint.", file=sys.stderr)
        return 1

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("cli.interrupted")
        print("\nIndexing interrupted by user", file=sys.stderr)
        return 130

    print("\n" + "=" * 60)
    print("Transfer Indexing Summary")
    print("=" * 60)
    print(f"Batches committed: {stats.batches}")
    print(f"Transfers indexed: {stats.transfers}")
    print(f"New tokens: {stats.new_tokens}")
    print(f"New owners: {stats.new_owners}")
    print(f"Last processed block: {stats.last_block}")
    print("=" * 60 + "\n")

    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
