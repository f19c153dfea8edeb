"""CLI tests for index_transfers.

External services (RPC node, database, indexer loop) are patched out; the
tests check argument handling, wiring and exit codes.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog

from nftledger.cli import index_transfers
from nftledger.services.exceptions import DecodeError, MetadataFetchError
from nftledger.services.indexer import IndexerStats

MODULE = "nftledger.cli.index_transfers"


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    structlog.reset_defaults()


@pytest.fixture
def connected_w3():
    w3 = MagicMock()
    w3.is_connected = AsyncMock(return_value=True)
    return w3


def test_parse_args_defaults():
    args = index_transfers.parse_args([])

    assert args.from_block is None
    assert args.to_block is None
    assert args.batch_size is None
    assert args.chunk_size is None
    assert args.follow is False
    assert args.verbose is False


def test_parse_args_range():
    args = index_transfers.parse_args(
        ["--from-block", "15584000", "--to-block", "15600000", "--chunk-size", "250", "--follow"]
    )

    assert args.from_block == 15_584_000
    assert args.to_block == 15_600_000
    assert args.chunk_size == 250
    assert args.follow is True


def test_parse_block_latest():
    assert index_transfers.parse_block("latest") is None
    assert index_transfers.parse_block("42") == 42


@pytest.mark.parametrize(
    "argv",
    [["--chunk-size", "0"], ["--batch-size", "-5"], ["--batch-size", "ten"]],
)
def test_parse_args_rejects_non_positive_sizes(argv, capsys):
    """Invalid sizes are usage errors, reported before any service is built."""
    with pytest.raises(SystemExit) as exc_info:
        index_transfers.parse_args(argv)

    assert exc_info.value.code == 2
    assert "--" in capsys.readouterr().err


@pytest.mark.asyncio
async def test_connection_failure_exits_with_error(connected_w3):
    connected_w3.is_connected = AsyncMock(return_value=False)

    with patch(f"{MODULE}.AsyncWeb3", return_value=connected_w3), patch(
        f"{MODULE}.AsyncHTTPProvider"
    ):
        exit_code = await index_transfers.async_main([])

    assert exit_code == 1


@pytest.mark.asyncio
async def test_successful_run_wires_indexer(connected_w3):
    stats = IndexerStats(batches=2, transfers=5, new_tokens=3, new_owners=4, last_block=119)

    with patch(f"{MODULE}.AsyncWeb3", return_value=connected_w3), patch(
        f"{MODULE}.AsyncHTTPProvider"
    ), patch(f"{MODULE}.setup_db_session") as mock_setup, patch(
        f"{MODULE}.TransferIndexer"
    ) as mock_indexer_cls, patch(f"{MODULE}.MetadataFetcher") as mock_fetcher_cls:
        mock_indexer_cls.return_value.run = AsyncMock(return_value=stats)

        exit_code = await index_transfers.async_main(
            ["--from-block", "100", "--to-block", "119", "--chunk-size", "250"]
        )

    assert exit_code == 0
    mock_setup.assert_called_once()
    mock_fetcher_cls.assert_called_once_with(connected_w3, 250)
    mock_indexer_cls.return_value.run.assert_awaited_once_with(
        from_block=100, to_block=119, follow=False
    )


@pytest.mark.parametrize(
    "error",
    [
        DecodeError("bad log", block_number=7, log_index=0),
        MetadataFetchError("timeout", block_height=7, offset=0),
    ],
)
@pytest.mark.asyncio
async def test_service_errors_exit_with_error(connected_w3, error):
    with patch(f"{MODULE}.AsyncWeb3", return_value=connected_w3), patch(
        f"{MODULE}.AsyncHTTPProvider"
    ), patch(f"{MODULE}.setup_db_session"), patch(
        f"{MODULE}.TransferIndexer"
    ) as mock_indexer_cls:
        mock_indexer_cls.return_value.run = AsyncMock(side_effect=error)

        exit_code = await index_transfers.async_main([])

    assert exit_code == 1


@pytest.mark.asyncio
async def test_interrupt_exits_130(connected_w3):
    with patch(f"{MODULE}.AsyncWeb3", return_value=connected_w3), patch(
        f"{MODULE}.AsyncHTTPProvider"
    ), patch(f"{MODULE}.setup_db_session"), patch(
        f"{MODULE}.TransferIndexer"
    ) as mock_indexer_cls:
        mock_indexer_cls.return_value.run = AsyncMock(side_effect=KeyboardInterrupt)

        exit_code = await index_transfers.async_main([])

    assert exit_code == 130
