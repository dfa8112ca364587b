"""Plasma root-chain contract binding over JSON-RPC."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

from eth_abi import decode, encode
from eth_utils import to_bytes
from web3 import Web3

from .exceptions import TransactionRevertedError, UpstreamError
from .ports import Receipt, RootChainPort
from .rpc_client import RootChainRPC, to_int

logger = logging.getLogger(__name__)

# Bond posted with every standard exit, in wei
STANDARD_EXIT_BOND = 31415926535

_DEPOSIT_SELECTOR = bytes(Web3.keccak(text="deposit(bytes)")[:4])
_DEPOSIT_FROM_SELECTOR = bytes(Web3.keccak(text="depositFrom(bytes)")[:4])
_START_STANDARD_EXIT_SELECTOR = bytes(Web3.keccak(text="startStandardExit(uint192,bytes,bytes)")[:4])
_APPROVE_SELECTOR = bytes(Web3.keccak(text="approve(address,uint256)")[:4])
_SYMBOL_SELECTOR = bytes(Web3.keccak(text="symbol()")[:4])


def _calldata(selector: bytes, types: List[str], values: List[Any]) -> str:
    return "0x" + (selector + encode(types, values)).hex()


class RootChain(RootChainPort):
    """
    Plasma contract binding.

    Transactions are sent with eth_sendTransaction, so the connected
    provider holds the keys and signs. Each send waits for the receipt
    (one confirmation); deeper confirmation is the caller's concern.
    """

    def __init__(
        self,
        rpc: RootChainRPC,
        plasma_contract_address: str,
        poll_interval_seconds: float = 1.0,
        receipt_timeout_seconds: float = 300.0,
        approve_gas: int = 2_000_000,
        approve_gas_price: int = 1_000_000,
    ):
        self._rpc = rpc
        self.plasma_contract_address = Web3.to_checksum_address(plasma_contract_address)
        self._poll_interval = poll_interval_seconds
        self._receipt_timeout = receipt_timeout_seconds
        self._approve_gas = approve_gas
        self._approve_gas_price = approve_gas_price

    async def _wait_for_receipt(self, tx_hash: str) -> Receipt:
        """Poll until the transaction is mined."""
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if loop.time() - start_time > self._receipt_timeout:
                raise UpstreamError(
                    f"Transaction {tx_hash} not mined after {self._receipt_timeout}s",
                    step="wait_for_receipt",
                    details={"tx_hash": tx_hash},
                )

            receipt = await self._rpc.get_transaction_receipt(tx_hash)
            if receipt and receipt.get("blockNumber") is not None:
                if to_int(receipt.get("status", 1)) == 0:
                    raise TransactionRevertedError(tx_hash)
                return receipt

            await asyncio.sleep(self._poll_interval)

    async def _send(self, tx: Dict[str, Any]) -> Receipt:
        tx_hash = await self._rpc.send_transaction(tx)
        logger.info(f"Root chain transaction submitted: {tx_hash} (to={tx['to']})")
        return await self._wait_for_receipt(tx_hash)

    async def deposit_eth(self, deposit_tx: str, amount: int, from_address: str) -> Receipt:
        return await self._send({
            "from": from_address,
            "to": self.plasma_contract_address,
            "value": hex(int(amount)),
            "data": _calldata(_DEPOSIT_SELECTOR, ["bytes"], [to_bytes(hexstr=deposit_tx)]),
        })

    async def deposit_token(self, deposit_tx: str, from_address: str) -> Receipt:
        return await self._send({
            "from": from_address,
            "to": self.plasma_contract_address,
            "data": _calldata(_DEPOSIT_FROM_SELECTOR, ["bytes"], [to_bytes(hexstr=deposit_tx)]),
        })

    async def approve_token(
        self,
        token: str,
        spender: str,
        amount: int,
        from_address: str,
    ) -> Receipt:
        return await self._send({
            "from": from_address,
            "to": Web3.to_checksum_address(token),
            "gas": hex(self._approve_gas),
            "gasPrice": hex(self._approve_gas_price),
            "data": _calldata(
                _APPROVE_SELECTOR,
                ["address", "uint256"],
                [Web3.to_checksum_address(spender), int(amount)],
            ),
        })

    async def start_standard_exit(
        self,
        utxo_pos: int,
        tx_bytes: str,
        proof: str,
        from_address: str,
    ) -> Receipt:
        return await self._send({
            "from": from_address,
            "to": self.plasma_contract_address,
            "value": hex(STANDARD_EXIT_BOND),
            "data": _calldata(
                _START_STANDARD_EXIT_SELECTOR,
                ["uint192", "bytes", "bytes"],
                [int(utxo_pos), to_bytes(hexstr=tx_bytes), to_bytes(hexstr=proof)],
            ),
        })

    async def get_balance(self, address: str) -> int:
        return await self._rpc.get_balance(address)

    async def get_accounts(self) -> List[str]:
        return await self._rpc.get_accounts()

    async def token_symbol(self, token: str) -> str:
        result = await self._rpc.eth_call({
            "to": Web3.to_checksum_address(token),
            "data": "0x" + _SYMBOL_SELECTOR.hex(),
        })
        raw = to_bytes(hexstr=result)
        # Some early tokens return bytes32 instead of string
        if len(raw) == 32:
            return raw.rstrip(b"\x00").decode("utf-8")
        return decode(["string"], raw)[0]

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Receipt]:
        return await self._rpc.get_transaction_receipt(tx_hash)

    async def get_block(self, block: Union[int, str]) -> Optional[Dict[str, Any]]:
        return await self._rpc.get_block(block)

    async def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self._rpc.get_transaction(tx_hash)
