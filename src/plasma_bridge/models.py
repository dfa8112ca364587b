"""Account, balance and UTXO models shared by the session and its clients."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Position packing: blknum * BLOCK_OFFSET + txindex * TX_OFFSET + oindex
BLOCK_OFFSET = 1_000_000_000
TX_OFFSET = 10_000

ETH_SYMBOL = "wei"
UNKNOWN_SYMBOL = "Unknown ERC20"


def encode_utxo_pos(blknum: int, txindex: int, oindex: int) -> int:
    """Pack a block/tx/output index triple into a single UTXO position."""
    return blknum * BLOCK_OFFSET + txindex * TX_OFFSET + oindex


def decode_utxo_pos(utxo_pos: int) -> tuple[int, int, int]:
    """Unpack a UTXO position into (blknum, txindex, oindex)."""
    blknum, rest = divmod(int(utxo_pos), BLOCK_OFFSET)
    txindex, oindex = divmod(rest, TX_OFFSET)
    return blknum, txindex, oindex


@dataclass(frozen=True)
class Utxo:
    """An unspent child-chain output. Immutable once observed."""
    owner: str
    currency: str
    amount: int
    blknum: int
    txindex: int
    oindex: int
    creating_txhash: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def utxo_pos(self) -> int:
        return encode_utxo_pos(self.blknum, self.txindex, self.oindex)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Utxo":
        """Build from a watcher `account.get_utxos` entry."""
        if "blknum" in data:
            blknum = int(data["blknum"])
            txindex = int(data.get("txindex", 0))
            oindex = int(data.get("oindex", 0))
        else:
            blknum, txindex, oindex = decode_utxo_pos(int(data["utxo_pos"]))
        return cls(
            owner=data.get("owner", ""),
            currency=data["currency"],
            amount=int(data["amount"]),
            blknum=blknum,
            txindex=txindex,
            oindex=oindex,
            creating_txhash=data.get("creating_txhash"),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "currency": self.currency,
            "amount": self.amount,
            "blknum": self.blknum,
            "txindex": self.txindex,
            "oindex": self.oindex,
            "utxo_pos": self.utxo_pos,
            "creating_txhash": self.creating_txhash,
        }


@dataclass
class CurrencyBalance:
    """Child-chain balance of one currency."""
    currency: str
    amount: int
    symbol: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CurrencyBalance":
        return cls(
            currency=data["currency"],
            amount=int(data["amount"]),
            symbol=data.get("symbol"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"currency": self.currency, "amount": self.amount, "symbol": self.symbol}


@dataclass(frozen=True)
class ExitData:
    """Exit proof for a UTXO, as served by the watcher."""
    utxo_pos: int
    txbytes: str
    proof: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExitData":
        return cls(
            utxo_pos=int(data["utxo_pos"]),
            txbytes=data["txbytes"],
            proof=data["proof"],
        )


@dataclass
class AccountBalances:
    """Root-chain native balance plus decorated child-chain balances."""
    root_balance: int
    child_balances: List[CurrencyBalance] = field(default_factory=list)


@dataclass
class Account:
    """Cached view of the session's account."""
    address: str = ""
    root_balance: int = 0
    child_balances: List[CurrencyBalance] = field(default_factory=list)


@dataclass
class AccountState:
    """Advisory cache refreshed by update_state. Never used for spend decisions."""
    account: Account = field(default_factory=Account)
    transactions: List[Dict[str, Any]] = field(default_factory=list)
    utxos: List[Utxo] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConfiguredAccount:
    """An account supplied by the host, optionally with a held private key."""
    address: str
    private_key: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfiguredAccount":
        return cls(
            address=data["address"],
            private_key=data.get("private_key") or data.get("privateKey"),
        )
