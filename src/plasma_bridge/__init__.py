"""Plasma root/child chain account session exports."""

from .session import (
    AccountSession,
    SessionState,
)
from .selection import select_utxos
from .confirmation import (
    ConfirmationWatcher,
    ConfirmationState,
    TrackedConfirmation,
)
from .signing import (
    TypedDataSigner,
    RPCSigningProvider,
)
from .ports import (
    RootChainPort,
    ChildChainPort,
    SigningProviderPort,
)
from .root_chain import RootChain, STANDARD_EXIT_BOND
from .child_chain import ChildChain
from .rpc_client import RootChainRPC
from .config import PlasmaSettings, get_settings
from .logging_utils import setup_logging
from .models import (
    Utxo,
    ExitData,
    CurrencyBalance,
    Account,
    AccountBalances,
    AccountState,
    ConfiguredAccount,
)
from .transaction import ETH_CURRENCY, MAX_INPUTS

__all__ = [
    "AccountSession",
    "SessionState",
    "select_utxos",
    "ConfirmationWatcher",
    "ConfirmationState",
    "TrackedConfirmation",
    "TypedDataSigner",
    "RPCSigningProvider",
    "RootChainPort",
    "ChildChainPort",
    "SigningProviderPort",
    "RootChain",
    "STANDARD_EXIT_BOND",
    "ChildChain",
    "RootChainRPC",
    "PlasmaSettings",
    "get_settings",
    "setup_logging",
    "Utxo",
    "ExitData",
    "CurrencyBalance",
    "Account",
    "AccountBalances",
    "AccountState",
    "ConfiguredAccount",
    "ETH_CURRENCY",
    "MAX_INPUTS",
]
