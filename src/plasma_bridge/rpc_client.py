"""JSON-RPC client for the root chain node."""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional, Union

import httpx

from .exceptions import RPCError, SigningMethodUnsupportedError

logger = logging.getLogger(__name__)

# JSON-RPC error codes meaning "this node does not implement the method"
METHOD_NOT_FOUND_CODES = (-32601, 4200)

SIGN_TYPED_DATA_METHOD = "eth_signTypedData_v4"


def to_int(value: Any) -> Optional[int]:
    """Parse a quantity that may be hex-encoded, decimal or already an int."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


class RootChainRPC:
    """JSON-RPC client for root chain interaction."""

    def __init__(
        self,
        rpc_url: str,
        timeout_seconds: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._rpc_url = rpc_url
        self._timeout = timeout_seconds
        self._http_client = http_client
        self._owns_client = http_client is None
        self._request_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
        return self._http_client

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Make a JSON-RPC call.

        Raises:
            RPCError: If the node returns an error object
            httpx.HTTPError: On transport failures
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        client = await self._get_client()
        start_time = time.time()
        response = await client.post(
            self._rpc_url,
            json=payload,
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()
        result = response.json()

        latency_ms = (time.time() - start_time) * 1000
        logger.debug(f"RPC call {method} succeeded in {latency_ms:.0f}ms")

        if "error" in result and result["error"]:
            error = result["error"]
            raise RPCError(
                message=error.get("message", str(error)),
                code=error.get("code"),
                data=error.get("data"),
            )

        return result.get("result")

    async def get_block_number(self) -> int:
        """Get current block number."""
        result = await self.call("eth_blockNumber")
        return int(result, 16)

    async def get_block(
        self,
        block: Union[int, str] = "latest",
        include_transactions: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """Get block by number or tag."""
        if isinstance(block, int):
            block = hex(block)
        return await self.call("eth_getBlockByNumber", [block, include_transactions])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Get transaction receipt."""
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Get transaction by hash."""
        return await self.call("eth_getTransactionByHash", [tx_hash])

    async def get_balance(self, address: str, block: str = "latest") -> int:
        """Get native balance for address in wei."""
        result = await self.call("eth_getBalance", [address, block])
        return int(result, 16)

    async def get_accounts(self) -> List[str]:
        """Accounts managed by the connected provider."""
        return await self.call("eth_accounts") or []

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Ask the provider to sign and broadcast a transaction."""
        return await self.call("eth_sendTransaction", [tx])

    async def eth_call(self, tx: Dict[str, Any], block: str = "latest") -> str:
        """Execute a call without creating a transaction."""
        return await self.call("eth_call", [tx, block])

    async def sign_typed_data(self, address: str, typed_data: Dict[str, Any]) -> str:
        """
        Request an EIP-712 signature from the provider.

        Raises:
            SigningMethodUnsupportedError: The provider does not implement
                eth_signTypedData_v4
        """
        try:
            return await self.call(
                SIGN_TYPED_DATA_METHOD, [address, json.dumps(typed_data)]
            )
        except RPCError as e:
            if e.code in METHOD_NOT_FOUND_CODES:
                raise SigningMethodUnsupportedError(SIGN_TYPED_DATA_METHOD, e.message) from e
            raise

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None
