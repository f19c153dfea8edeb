"""pytest fixtures for nftledger tests.

Provides:
- postgres_container: Session-scoped testcontainer PostgreSQL instance
- utc_timezone: Autouse fixture enforcing UTC timezone
- session: Function-scoped database session with table truncation
- uow_factory: Function-scoped UnitOfWork factory bound to the container
- memory_store / memory_uow_factory: In-memory UnitOfWork for unit tests
- settings: Test settings with the default contract addresses
- make_transfer_log / make_block: Builders for raw Transfer logs
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from eth_abi import decode, encode
from eth_utils import to_bytes
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nftledger.abi.erc721 import TRANSFER
from nftledger.abi.multicall import AGGREGATE, TRY_AGGREGATE
from nftledger.core.config import Settings
from nftledger.core.database import setup_db_session
from nftledger.models.owner import Owner
from nftledger.models.token import Token
from nftledger.models.transfer import Transfer
from nftledger.services.blockchain.types import Block, Log
from nftledger.uow import create_uow_factory

PROJECT_ROOT = Path(__file__).resolve().parent.parent

os.environ.setdefault("APP_ENV", "test")


@pytest.fixture(scope="session")
def postgres_container():
    """Provide session-scoped PostgreSQL container with migrations applied.

    Container starts once per test session and is reused across all tests.
    Migrations are applied using subprocess to avoid asyncio event loop conflicts.
    Tests depending on it are skipped when no Docker daemon is reachable.
    """
    import docker
    from testcontainers.postgres import PostgresContainer

    try:
        docker.from_env().ping()
    except Exception as e:
        pytest.skip(f"Docker is not available: {e}")

    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="test_nftledger",
    ) as container:
        db_url = container.get_connection_url(driver="psycopg")

        # alembic/env.py reads DATABASE_URL
        env = os.environ.copy()
        env["DATABASE_URL"] = db_url

        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            env=env,
            cwd=PROJECT_ROOT,
        )

        yield container


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def session(postgres_container) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session with table truncation.

    Each test gets a fresh session with empty tables (truncated between tests).
    """
    db_url = postgres_container.get_connection_url(driver="psycopg")
    session_factory = setup_db_session(db_url, pool_size=5)

    async with session_factory() as session:
        yield session

        # Rollback any uncommitted changes so truncation does not hit FK errors
        await session.rollback()

        # Dependent tables first
        await session.execute(text("DELETE FROM transfers"))
        await session.execute(text("DELETE FROM tokens"))
        await session.execute(text("DELETE FROM owners"))
        await session.execute(text("DELETE FROM system_state"))
        await session.commit()

    await session.bind.dispose()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session: AsyncSession):
    """Provide function-scoped UnitOfWork factory using the test database."""
    session_factory = async_sessionmaker(
        bind=session.bind,
        expire_on_commit=False,
    )
    return create_uow_factory(session_factory)


@pytest.fixture
def settings(monkeypatch) -> Settings:
    """Settings for tests: test environment, no .env file, small batches."""
    monkeypatch.setenv("APP_ENV", "test")
    settings = Settings(_env_file=None)  # type: ignore[call-arg]
    settings.start_block = 100
    settings.block_batch_size = 10
    settings.max_batch_retries = 3
    return settings


# ---------------------------------------------------------------------------
# In-memory unit of work
# ---------------------------------------------------------------------------


def _copy_token(token: Token) -> Token:
    return Token(id=token.id, index=token.index, uri=token.uri, owner_id=token.owner_id)


class MemoryStore:
    """Committed state shared by every in-memory unit of work."""

    def __init__(self):
        self.owners: dict[str, Owner] = {}
        self.tokens: dict[str, Token] = {}
        self.transfers: dict[str, Transfer] = {}
        self.state: dict[str, Any] = {}
        self.commits = 0
        self.rollbacks = 0


class MemoryOwnerRepository:
    def __init__(self, rows: dict[str, Owner]):
        self.rows = rows

    async def find_by_ids(self, owner_ids):
        return {i: Owner(id=i) for i in set(owner_ids) if i in self.rows}

    async def upsert_many(self, owners):
        for owner in owners:
            self.rows.setdefault(owner.id, Owner(id=owner.id))


class MemoryTokenRepository:
    def __init__(self, rows: dict[str, Token]):
        self.rows = rows

    async def find_by_ids(self, token_ids):
        return {i: _copy_token(self.rows[i]) for i in set(token_ids) if i in self.rows}

    async def upsert_many(self, tokens):
        for token in tokens:
            existing = self.rows.get(token.id)
            if existing is None:
                self.rows[token.id] = _copy_token(token)
            else:
                existing.owner_id = token.owner_id


class MemoryTransferRepository:
    def __init__(self, rows: dict[str, Transfer]):
        self.rows = rows

    async def upsert_many(self, transfers):
        for transfer in transfers:
            self.rows.setdefault(transfer.id, transfer)


class MemorySystemStateRepository:
    def __init__(self, rows: dict[str, Any]):
        self.rows = rows

    async def get_state(self, key):
        return self.rows.get(key)

    async def set_state(self, key, value):
        self.rows[key] = value


class MemoryUnitOfWork:
    """Stages writes on copies of the store and publishes them on commit."""

    def __init__(self, store: MemoryStore):
        self.store = store
        self._owners = dict(store.owners)
        self._tokens = {k: _copy_token(v) for k, v in store.tokens.items()}
        self._transfers = dict(store.transfers)
        self._state = dict(store.state)

        self.owners = MemoryOwnerRepository(self._owners)
        self.tokens = MemoryTokenRepository(self._tokens)
        self.transfers = MemoryTransferRepository(self._transfers)
        self.system_state = MemorySystemStateRepository(self._state)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.store.owners = self._owners
            self.store.tokens = self._tokens
            self.store.transfers = self._transfers
            self.store.state = self._state
            self.store.commits += 1
        else:
            self.store.rollbacks += 1
        return False


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def memory_uow_factory(memory_store: MemoryStore):
    """UnitOfWork factory backed by memory_store."""

    async def _create_uow():
        return MemoryUnitOfWork(memory_store)

    return _create_uow


# ---------------------------------------------------------------------------
# Raw log builders
# ---------------------------------------------------------------------------


def _topic(abi_type: str, value: Any) -> bytes:
    return encode([abi_type], [value])


@pytest.fixture
def make_transfer_log():
    """Build a raw ERC-721 Transfer log.

    Example:
        log = make_transfer_log(120, 0, "0x...aaa", "0x...bbb", token_index=1)
    """

    def _make(
        block_number: int,
        log_index: int,
        from_address: str,
        to_address: str,
        token_index: int,
        tx_hash: str | None = None,
        address: str = "0xac5c7493036de60e63eb81c5e9a440b42f47ebf5",
    ) -> Log:
        return Log(
            address=address,
            topics=(
                TRANSFER.topic,
                _topic("address", from_address),
                _topic("address", to_address),
                _topic("uint256", token_index),
            ),
            data=b"",
            block_number=block_number,
            log_index=log_index,
            transaction_hash=tx_hash or "0x" + f"{block_number:032x}{log_index:032x}",
        )

    return _make


@pytest.fixture
def make_block():
    """Build a Block holding the given logs (timestamp derived from height)."""

    def _make(height: int, logs: list[Log] | tuple[Log, ...] = (), timestamp: int | None = None):
        return Block(
            height=height,
            hash="0x" + f"{height:064x}",
            timestamp=timestamp if timestamp is not None else 1_663_000_000 + height * 12,
            logs=tuple(logs),
        )

    return _make


# ---------------------------------------------------------------------------
# Multicall node double
# ---------------------------------------------------------------------------


def _decode_uint(data: bytes) -> int:
    (value,) = decode(["uint256"], data)
    return value


def _decode_multicall_request(data: bytes) -> tuple[bytes, list[tuple[str, bytes]]]:
    selector, payload = data[:4], data[4:]
    if selector == TRY_AGGREGATE.selector:
        _, calls = decode(["bool", "(address,bytes)[]"], payload)
    elif selector == AGGREGATE.selector:
        (calls,) = decode(["(address,bytes)[]"], payload)
    else:
        raise AssertionError(f"Unexpected selector {selector.hex()}")
    return selector, list(calls)


@pytest.fixture
def make_multicall_w3():
    """Build a mocked AsyncWeb3 whose eth_call answers Multicall requests.

    Args (of the returned builder):
        uris: tokenURI per token index; None makes that call revert
        failing_requests: 1-based request numbers that raise a transport error

    The mock records every request; `w3.eth.call.await_count` gives the
    number of aggregated calls made.
    """

    def _make(uris: dict[int, str | None], failing_requests: tuple[int, ...] = ()):
        w3 = MagicMock()
        requests: list[list[int]] = []

        async def call(transaction, block_identifier=None):
            selector, calls = _decode_multicall_request(to_bytes(hexstr=transaction["data"]))
            indexes = [_decode_uint(calldata[4:]) for _, calldata in calls]
            requests.append(indexes)

            if len(requests) in failing_requests:
                raise TimeoutError("eth_call timed out")

            if selector == AGGREGATE.selector:
                if any(uris.get(i) is None for i in indexes):
                    raise ValueError("execution reverted: Multicall aggregate: call failed")
                return encode(
                    ["uint256", "bytes[]"],
                    [block_identifier or 0, [encode(["string"], [uris[i]]) for i in indexes]],
                )

            results = [
                (False, b"") if uris.get(i) is None else (True, encode(["string"], [uris[i]]))
                for i in indexes
            ]
            return encode(["(bool,bytes)[]"], [results])

        w3.eth.call = AsyncMock(side_effect=call)
        w3.requests = requests
        return w3

    return _make
