"""
Child-chain transaction encoding.

Covers:
- Deposit transaction encoding for the root-chain vault
- Transaction body construction from selected inputs (payment + change outputs)
- EIP-712 typed data for authorizing a transaction
- RLP encoding of unsigned and signed transactions

Transactions carry at most four inputs and four outputs. The typed data
always exposes all four slots, padding unused ones with null entries.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import rlp
from eth_utils import to_bytes, to_checksum_address

from .exceptions import TransactionBuildError
from .models import Utxo, encode_utxo_pos

ETH_CURRENCY = "0x0000000000000000000000000000000000000000"
NULL_ADDRESS = ETH_CURRENCY
NULL_METADATA = "0x" + "00" * 32

PAYMENT_TX_TYPE = 1
OUTPUT_TYPE_PAYMENT = 1
MAX_INPUTS = 4
MAX_OUTPUTS = 4

DOMAIN_NAME = "OMG Network"
DOMAIN_VERSION = "1"
DOMAIN_SALT = "0xfad5c7f626d80f9256ef01929f3beb96e058b8b4b0e3fe52d84f054c0e2a7a83"

NULL_INPUT = {"blknum": 0, "txindex": 0, "oindex": 0}
NULL_OUTPUT = {
    "outputType": 0,
    "outputGuard": NULL_ADDRESS,
    "currency": NULL_ADDRESS,
    "amount": 0,
}

# EIP-712 type definitions for a payment transaction
TYPED_DATA_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "verifyingContract", "type": "address"},
        {"name": "salt", "type": "bytes32"},
    ],
    "Transaction": [
        {"name": "txType", "type": "uint256"},
        {"name": "input0", "type": "Input"},
        {"name": "input1", "type": "Input"},
        {"name": "input2", "type": "Input"},
        {"name": "input3", "type": "Input"},
        {"name": "output0", "type": "Output"},
        {"name": "output1", "type": "Output"},
        {"name": "output2", "type": "Output"},
        {"name": "output3", "type": "Output"},
        {"name": "txData", "type": "uint256"},
        {"name": "metadata", "type": "bytes32"},
    ],
    "Input": [
        {"name": "blknum", "type": "uint256"},
        {"name": "txindex", "type": "uint256"},
        {"name": "oindex", "type": "uint256"},
    ],
    "Output": [
        {"name": "outputType", "type": "uint256"},
        {"name": "outputGuard", "type": "bytes20"},
        {"name": "currency", "type": "address"},
        {"name": "amount", "type": "uint256"},
    ],
}


def is_eth(currency: str) -> bool:
    return currency.lower() == ETH_CURRENCY


def _address_bytes(address: str) -> bytes:
    return to_bytes(hexstr=address)


def _payment_output(owner: str, currency: str, amount: int) -> Dict[str, Any]:
    return {
        "outputType": OUTPUT_TYPE_PAYMENT,
        "outputGuard": owner,
        "currency": currency,
        "amount": int(amount),
    }


def encode_deposit(owner: str, amount: int, currency: str = ETH_CURRENCY) -> str:
    """RLP-encode a deposit transaction creating one output for ``owner``."""
    tx = [
        PAYMENT_TX_TYPE,
        [],
        [[OUTPUT_TYPE_PAYMENT, [_address_bytes(owner), _address_bytes(currency), int(amount)]]],
        0,
        to_bytes(hexstr=NULL_METADATA),
    ]
    return "0x" + rlp.encode(tx).hex()


def create_transaction_body(
    from_address: str,
    from_utxos: Sequence[Utxo],
    to_address: str,
    to_amount: int,
    currency: str = ETH_CURRENCY,
    fee: int = 0,
    metadata: str = NULL_METADATA,
) -> Dict[str, Any]:
    """
    Build an unsigned transaction body spending ``from_utxos``.

    The first output pays ``to_amount`` of ``currency`` to ``to_address``.
    Any remainder of each input currency returns to ``from_address`` as a
    change output; ``fee`` is deducted from the native-currency change.

    Raises:
        TransactionBuildError: Too many inputs/outputs, or inputs that do not
            cover the amount plus fee
    """
    to_amount = int(to_amount)
    fee = int(fee)

    if not from_utxos:
        raise TransactionBuildError("A transaction needs at least one input")
    if len(from_utxos) > MAX_INPUTS:
        raise TransactionBuildError(
            f"Transaction has {len(from_utxos)} inputs, the child chain accepts at most {MAX_INPUTS}",
            details={"inputs": len(from_utxos)},
        )

    # Keyed by lowercase currency, preserving first-seen spelling
    totals: Dict[str, int] = {}
    spelling: Dict[str, str] = {}
    for utxo in from_utxos:
        key = utxo.currency.lower()
        totals[key] = totals.get(key, 0) + utxo.amount
        spelling.setdefault(key, utxo.currency)

    currency_key = currency.lower()
    if totals.get(currency_key, 0) < to_amount:
        raise TransactionBuildError(
            f"Inputs hold {totals.get(currency_key, 0)} of {currency}, need {to_amount}",
            details={"currency": currency, "amount": str(to_amount)},
        )

    eth_needed = fee + (to_amount if is_eth(currency) else 0)
    if totals.get(ETH_CURRENCY, 0) < eth_needed:
        raise TransactionBuildError(
            f"Inputs hold {totals.get(ETH_CURRENCY, 0)} wei, need {eth_needed} including fee",
            details={"fee": str(fee)},
        )

    outputs = [_payment_output(to_address, currency, to_amount)]
    for key, total in totals.items():
        spent = (to_amount if key == currency_key else 0) + (fee if key == ETH_CURRENCY else 0)
        change = total - spent
        if change > 0:
            outputs.append(_payment_output(from_address, spelling[key], change))

    if len(outputs) > MAX_OUTPUTS:
        raise TransactionBuildError(
            f"Transaction has {len(outputs)} outputs, the child chain accepts at most {MAX_OUTPUTS}",
            details={"outputs": len(outputs)},
        )

    return {
        "txType": PAYMENT_TX_TYPE,
        "inputs": [
            {"blknum": u.blknum, "txindex": u.txindex, "oindex": u.oindex}
            for u in from_utxos
        ],
        "outputs": outputs,
        "txData": 0,
        "metadata": metadata,
    }


def get_typed_data(tx_body: Dict[str, Any], verifying_contract: str) -> Dict[str, Any]:
    """EIP-712 typed data for a transaction body, JSON-serializable."""
    inputs = list(tx_body["inputs"]) + [NULL_INPUT] * (MAX_INPUTS - len(tx_body["inputs"]))
    outputs = list(tx_body["outputs"]) + [NULL_OUTPUT] * (MAX_OUTPUTS - len(tx_body["outputs"]))

    message: Dict[str, Any] = {"txType": tx_body["txType"]}
    for i, tx_input in enumerate(inputs):
        message[f"input{i}"] = dict(tx_input)
    for i, tx_output in enumerate(outputs):
        message[f"output{i}"] = dict(tx_output)
    message["txData"] = tx_body.get("txData", 0)
    message["metadata"] = tx_body.get("metadata", NULL_METADATA)

    return {
        "types": TYPED_DATA_TYPES,
        "domain": {
            "name": DOMAIN_NAME,
            "version": DOMAIN_VERSION,
            "verifyingContract": to_checksum_address(verifying_contract),
            "salt": DOMAIN_SALT,
        },
        "primaryType": "Transaction",
        "message": message,
    }


def _is_null_input(tx_input: Dict[str, Any]) -> bool:
    return not (tx_input["blknum"] or tx_input["txindex"] or tx_input["oindex"])


def _is_null_output(tx_output: Dict[str, Any]) -> bool:
    return not tx_output["outputType"] and not tx_output["amount"]


def encode_transaction(
    typed_data: Dict[str, Any],
    signatures: Optional[Sequence[str]] = None,
) -> bytes:
    """RLP-encode the transaction described by ``typed_data``, optionally signed."""
    message = typed_data["message"]

    inputs: List[bytes] = []
    outputs: List[Any] = []
    for i in range(MAX_INPUTS):
        tx_input = message[f"input{i}"]
        if not _is_null_input(tx_input):
            pos = encode_utxo_pos(tx_input["blknum"], tx_input["txindex"], tx_input["oindex"])
            inputs.append(pos.to_bytes(32, "big"))
    for i in range(MAX_OUTPUTS):
        tx_output = message[f"output{i}"]
        if not _is_null_output(tx_output):
            outputs.append([
                int(tx_output["outputType"]),
                [
                    _address_bytes(tx_output["outputGuard"]),
                    _address_bytes(tx_output["currency"]),
                    int(tx_output["amount"]),
                ],
            ])

    fields: List[Any] = [
        int(message["txType"]),
        inputs,
        outputs,
        int(message["txData"]),
        to_bytes(hexstr=message["metadata"]),
    ]
    if signatures:
        fields.insert(0, [to_bytes(hexstr=sig) for sig in signatures])
    return rlp.encode(fields)
