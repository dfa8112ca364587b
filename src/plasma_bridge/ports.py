"""Abstract interfaces for the root chain, the child chain and the signing provider."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union

from .models import CurrencyBalance, ExitData, Utxo

Receipt = Dict[str, Any]


class RootChainPort(ABC):
    """Plasma contract binding plus the node primitives used for confirmations."""

    @abstractmethod
    async def deposit_eth(self, deposit_tx: str, amount: int, from_address: str) -> Receipt:
        """Deposit native currency into the child chain."""

    @abstractmethod
    async def deposit_token(self, deposit_tx: str, from_address: str) -> Receipt:
        """Deposit an already-approved token amount into the child chain."""

    @abstractmethod
    async def approve_token(
        self,
        token: str,
        spender: str,
        amount: int,
        from_address: str,
    ) -> Receipt:
        """Approve ``spender`` to pull ``amount`` of ``token``."""

    @abstractmethod
    async def start_standard_exit(
        self,
        utxo_pos: int,
        tx_bytes: str,
        proof: str,
        from_address: str,
    ) -> Receipt:
        """Start a standard exit for the output at ``utxo_pos``."""

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""

    @abstractmethod
    async def get_accounts(self) -> List[str]:
        """Accounts exposed by the connected provider."""

    @abstractmethod
    async def token_symbol(self, token: str) -> str:
        """ERC20 ``symbol()`` of a token contract."""

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Receipt]:
        pass

    @abstractmethod
    async def get_block(self, block: Union[int, str]) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        pass


class ChildChainPort(ABC):
    """Child-chain watcher/operator client."""

    @abstractmethod
    async def get_utxos(self, address: str) -> List[Utxo]:
        pass

    @abstractmethod
    async def get_balance(self, address: str) -> List[CurrencyBalance]:
        pass

    @abstractmethod
    async def get_transactions(self, address: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def get_exit_data(self, utxo: Utxo) -> ExitData:
        pass

    @abstractmethod
    def build_signed_transaction(self, typed_data: Dict[str, Any], signatures: Sequence[str]) -> str:
        """Assemble a signed transaction ready for submission."""

    @abstractmethod
    async def submit_transaction(self, signed_tx: str) -> Dict[str, Any]:
        """Submit a signed transaction; returns at least ``txhash``."""

    @abstractmethod
    def sign_transaction(self, typed_data: Dict[str, Any], private_keys: Sequence[str]) -> List[str]:
        """
        Sign locally with held private keys.

        Deprecated: only used as the fallback when the signing provider lacks
        typed-data signing.
        """


class SigningProviderPort(ABC):
    """Provider-mediated signing (node, wallet or custody service)."""

    # Capability flag: False routes signing straight to the fallback path
    supports_typed_data_signing: bool = True

    @abstractmethod
    async def sign_typed_data(self, address: str, typed_data: Dict[str, Any]) -> Union[str, List[str]]:
        """
        Sign EIP-712 typed data on behalf of ``address``.

        Raises:
            SigningMethodUnsupportedError: The provider lacks typed-data signing
        """
