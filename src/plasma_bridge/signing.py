"""
EIP-712 transaction signing.

Signing is provider-mediated: the connected node or wallet signs the typed
data with eth_signTypedData_v4. Signing with a locally held private key is
deprecated and only used when explicitly enabled and the provider cannot
sign typed data.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from .exceptions import SigningMethodUnsupportedError, UpstreamError
from .ports import ChildChainPort, SigningProviderPort
from .rpc_client import SIGN_TYPED_DATA_METHOD, RootChainRPC

logger = logging.getLogger(__name__)


class RPCSigningProvider(SigningProviderPort):
    """Signs through the root-chain node's eth_signTypedData_v4."""

    def __init__(self, rpc: RootChainRPC, supports_typed_data_signing: bool = True):
        self._rpc = rpc
        self.supports_typed_data_signing = supports_typed_data_signing

    async def sign_typed_data(self, address: str, typed_data: Dict[str, Any]) -> str:
        return await self._rpc.sign_typed_data(address, typed_data)


def _as_signature_list(result: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(result, str):
        return [result]
    return list(result)


class TypedDataSigner:
    """
    Produces the signature list that authorizes a child-chain transaction.

    Args:
        provider: Primary signing provider
        child_chain: Child-chain client, used for the private-key fallback
        private_key: Key held for the signing address, if any
        allow_private_key_fallback: Opt-in for the deprecated fallback
    """

    def __init__(
        self,
        provider: SigningProviderPort,
        child_chain: ChildChainPort,
        private_key: Optional[str] = None,
        allow_private_key_fallback: bool = False,
    ):
        self._provider = provider
        self._child_chain = child_chain
        self._private_key = private_key
        self._allow_fallback = allow_private_key_fallback

    @property
    def fallback_available(self) -> bool:
        return self._allow_fallback and bool(self._private_key)

    async def sign(self, signer_address: str, typed_data: Dict[str, Any]) -> List[str]:
        """
        Sign ``typed_data`` for ``signer_address``.

        Raises:
            SigningMethodUnsupportedError: Provider cannot sign typed data and
                no fallback is enabled
            UpstreamError: Fallback signing failed

        Any other provider error propagates unchanged.
        """
        if self._provider.supports_typed_data_signing:
            try:
                result = await self._provider.sign_typed_data(signer_address, typed_data)
                return _as_signature_list(result)
            except SigningMethodUnsupportedError:
                if not self.fallback_available:
                    raise
                logger.warning(
                    f"Provider rejected {SIGN_TYPED_DATA_METHOD}, falling back to private key signing"
                )
        elif not self.fallback_available:
            raise SigningMethodUnsupportedError(
                SIGN_TYPED_DATA_METHOD,
                "provider does not advertise typed-data signing",
            )

        return self._sign_with_private_key(typed_data)

    def _sign_with_private_key(self, typed_data: Dict[str, Any]) -> List[str]:
        logger.warning(
            "Signing with a locally held private key is deprecated; "
            f"use a provider that supports {SIGN_TYPED_DATA_METHOD}"
        )
        try:
            result = self._child_chain.sign_transaction(typed_data, [self._private_key])
        except Exception as e:
            raise UpstreamError(f"Private key signing failed: {e}", step="sign_fallback") from e
        return _as_signature_list(result)
