"""Pytest configuration and fixtures."""

import json
import os
from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "true"

from chainsweep.builders.factory import ChainBuilderFactory
from chainsweep.config import Settings, get_settings
from chainsweep.ledger.models import Base
from chainsweep.ledger.repository import UtxoLedgerRepository

# Well-formed sample addresses per chain
EVM_FROM = "0x" + "a1" * 20
EVM_TO = "0x" + "b2" * 20
BTC_SEGWIT = "bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4"
BTC_P2PKH = "1BvBMSEYstWetqTFn5Au4m4GFg7xJaNVN2"
BTC_P2SH = "3J98t1WpEZ73CNmQviecrnyiWrnqRhWNLy"
TRX_FROM = "TLa2f6VPqDgRE67v1736s7bJ8Ray5wYjU7"
TRX_TO = "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t"
ADA_FROM = (
    "addr1qx2fxv2umyhttkxyxp8x0dlpdt3k6cwng5pxj3jhsydzer3n0d3vllmyqwsx5wktcd8cc3sq835lu7drv2xwl2wywfgse35a3x"
)
ADA_TO = "addr1vpu5vlrf4xkxv2qpwngf6cjhtw542ayty80v8dyr49rf5eg0yu80w"
XRP_FROM = "rHb9CJAWyB4rj91VRWn96DkukG4bwdtyTh"
XRP_TO = "rPT1Sjq2YGrBMTttX4GZHjKu9dyfzbpAYe"

ETH_RPC = "https://eth.rpc.test"
POLYGON_RPC = "https://polygon.rpc.test"
BTC_API = "https://btc.api.test/api"
TRON_RPC = "https://tron.api.test"
ADA_API = "https://cardano.api.test/api/v0"
XRP_RPC = "https://xrp.rpc.test"


def make_settings(**overrides) -> Settings:
    """Settings with every chain endpoint configured, ignoring any .env file."""
    values = {
        "environment": "test",
        "database_url": "sqlite+aiosqlite:///:memory:",
        "ethereum_rpc_url": ETH_RPC,
        "polygon_rpc_url": POLYGON_RPC,
        "bitcoin_api_url": BTC_API,
        "tron_rpc_url": TRON_RPC,
        "tron_api_key": "tron-key",
        "cardano_blockfrost_url": ADA_API,
        "cardano_blockfrost_project_id": "mainnetProjectId",
        "ripple_rpc_url": XRP_RPC,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def recording(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording)

    def json_bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]


def unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected network call: {request.method} {request.url}")


@pytest.fixture
def settings() -> Settings:
    """Fully configured settings."""
    return make_settings()


@pytest.fixture(autouse=True)
def reset_caches():
    """Isolate factory and settings caches between tests."""
    ChainBuilderFactory.clear_cache()
    get_settings.cache_clear()
    yield
    ChainBuilderFactory.clear_cache()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger_repo(db_session: AsyncSession) -> UtxoLedgerRepository:
    """Create UTXO ledger repository for testing."""
    return UtxoLedgerRepository(db_session)
