"""
Pytest configuration for plasma_bridge tests.
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from plasma_bridge.config import PlasmaSettings
from plasma_bridge.confirmation import ConfirmationWatcher
from plasma_bridge.models import Utxo
from plasma_bridge.ports import ChildChainPort, RootChainPort, SigningProviderPort
from plasma_bridge.session import AccountSession
from plasma_bridge.transaction import ETH_CURRENCY

DEPLOYER_ADDRESS = "0x9999999999999999999999999999999999999999"
ACCOUNT_ADDRESS = "0x1234567890123456789012345678901234567890"
RECIPIENT_ADDRESS = "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd"
TOKEN_ADDRESS = "0x00000000000000000000000000000000000000aa"
SIGNATURE = "0x" + "11" * 65


def make_utxo(
    amount: int,
    currency: str = ETH_CURRENCY,
    blknum: int = 1000,
    txindex: int = 0,
    oindex: int = 0,
    owner: str = ACCOUNT_ADDRESS,
) -> Utxo:
    return Utxo(
        owner=owner,
        currency=currency,
        amount=amount,
        blknum=blknum,
        txindex=txindex,
        oindex=oindex,
    )


@pytest.fixture
def utxo_factory():
    """Build UTXOs with distinct positions."""
    counter = {"next": 0}

    def factory(amount: int, currency: str = ETH_CURRENCY, **kwargs) -> Utxo:
        counter["next"] += 1
        kwargs.setdefault("blknum", 1000 * counter["next"])
        return make_utxo(amount, currency, **kwargs)

    return factory


@pytest.fixture
def sample_tx_hash():
    """Valid transaction hash for testing."""
    return "0x" + "a" * 64


@pytest.fixture
def settings():
    """Settings with fast polling, isolated from any .env file."""
    return PlasmaSettings(
        _env_file=None,
        poll_interval_seconds=0.001,
        confirmation_blocks=2,
        confirmation_timeout_seconds=5.0,
        receipt_timeout_seconds=1.0,
    )


@pytest.fixture
def root_chain():
    """Mock root chain with a funded provider account."""
    root = MagicMock(spec=RootChainPort)
    root.get_accounts = AsyncMock(return_value=[DEPLOYER_ADDRESS, ACCOUNT_ADDRESS])
    root.get_balance = AsyncMock(return_value=10**18)
    root.token_symbol = AsyncMock(return_value="OMG")
    root.deposit_eth = AsyncMock(return_value={"transactionHash": "0xdeposit", "status": "0x1"})
    root.deposit_token = AsyncMock(return_value={"transactionHash": "0xtokendeposit", "status": "0x1"})
    root.approve_token = AsyncMock(return_value={"transactionHash": "0xapprove", "status": "0x1"})
    root.start_standard_exit = AsyncMock(return_value={"transactionHash": "0xexit", "status": "0x1"})
    return root


@pytest.fixture
def child_chain():
    """Mock child chain with an empty account."""
    child = MagicMock(spec=ChildChainPort)
    child.get_utxos = AsyncMock(return_value=[])
    child.get_balance = AsyncMock(return_value=[])
    child.get_transactions = AsyncMock(return_value=[])
    child.get_exit_data = AsyncMock()
    child.submit_transaction = AsyncMock(
        return_value={"blknum": 1000, "txindex": 0, "txhash": "0xchildtx"}
    )
    child.build_signed_transaction = MagicMock(return_value="0xsigned")
    child.sign_transaction = MagicMock(return_value=[SIGNATURE])
    return child


@pytest.fixture
def signing_provider():
    """Mock provider that signs typed data."""
    provider = MagicMock(spec=SigningProviderPort)
    provider.supports_typed_data_signing = True
    provider.sign_typed_data = AsyncMock(return_value=SIGNATURE)
    return provider


@pytest.fixture
def watcher():
    """Mock confirmation watcher that confirms immediately."""
    mock = MagicMock(spec=ConfirmationWatcher)
    mock.confirm = AsyncMock(return_value={"transactionHash": "0xapprove", "blockNumber": "0x10"})
    return mock


@pytest.fixture
def session(settings, root_chain, child_chain, signing_provider, watcher):
    """Uninitialized session over mocked ports."""
    return AccountSession(settings, root_chain, child_chain, signing_provider, watcher=watcher)


@pytest.fixture
async def ready_session(session, root_chain, child_chain):
    """Initialized session; mocks are reset so tests only see their own calls."""
    await session.init()
    root_chain.reset_mock()
    child_chain.reset_mock()
    return session
