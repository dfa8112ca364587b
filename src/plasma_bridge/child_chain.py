"""HTTP client for the child-chain watcher API."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from eth_account import Account

from .config import normalize_url
from .exceptions import ChildChainError
from .models import CurrencyBalance, ExitData, Utxo
from .ports import ChildChainPort
from .transaction import encode_transaction

logger = logging.getLogger(__name__)


class ChildChain(ChildChainPort):
    """
    Watcher API client.

    Every endpoint is a JSON POST answering with an envelope
    ``{"success": bool, "data": ...}``; failures carry
    ``data.code`` and ``data.description``.
    """

    def __init__(
        self,
        watcher_url: str,
        timeout_seconds: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._watcher_url = normalize_url(watcher_url)
        self._timeout = timeout_seconds
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._watcher_url,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        return self._client

    async def _request(self, endpoint: str, body: Dict[str, Any]) -> Any:
        """POST to a watcher endpoint and unwrap the response envelope."""
        client = await self._get_client()
        response = await client.post(f"{self._watcher_url}{endpoint}", json=body)

        try:
            payload = response.json()
        except ValueError:
            response.raise_for_status()
            raise ChildChainError(endpoint, code="invalid_response", description=response.text[:200])

        if not payload.get("success", False):
            data = payload.get("data") or {}
            logger.warning(f"Watcher {endpoint} failed: {data}")
            raise ChildChainError(
                endpoint,
                code=data.get("code"),
                description=data.get("description"),
            )

        return payload.get("data")

    async def get_utxos(self, address: str) -> List[Utxo]:
        data = await self._request("account.get_utxos", {"address": address})
        return [Utxo.from_dict(item) for item in data or []]

    async def get_balance(self, address: str) -> List[CurrencyBalance]:
        data = await self._request("account.get_balance", {"address": address})
        return [CurrencyBalance.from_dict(item) for item in data or []]

    async def get_transactions(self, address: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        body: Dict[str, Any] = {"address": address}
        if limit is not None:
            body["limit"] = limit
        return await self._request("transaction.all", body) or []

    async def get_exit_data(self, utxo: Utxo) -> ExitData:
        data = await self._request("utxo.get_exit_data", {"utxo_pos": utxo.utxo_pos})
        return ExitData.from_dict(data)

    def build_signed_transaction(self, typed_data: Dict[str, Any], signatures: Sequence[str]) -> str:
        return "0x" + encode_transaction(typed_data, signatures).hex()

    async def submit_transaction(self, signed_tx: str) -> Dict[str, Any]:
        return await self._request("transaction.submit", {"transaction": signed_tx})

    def sign_transaction(self, typed_data: Dict[str, Any], private_keys: Sequence[str]) -> List[str]:
        """Sign typed data locally, one signature per key. Deprecated."""
        signatures = []
        for key in private_keys:
            signed = Account.sign_typed_data(key, full_message=typed_data)
            signatures.append("0x" + bytes(signed.signature).hex())
        return signatures

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "ChildChain":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
