"""Canonical configuration surface for the Plasma session coordinator."""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

# Samrong testnet defaults
DEFAULT_PLASMA_CONTRACT_ADDRESS = "0x740ecec4c0ee99c285945de8b44e9f5bfb71eea7"
DEFAULT_WATCHER_URL = "https://watcher.samrong.omg.network/"
DEFAULT_CHILDCHAIN_URL = "https://samrong.omg.network/"
DEFAULT_CHILDCHAIN_EXPLORER_URL = "https://quest.samrong.omg.network/"
DEFAULT_ROOT_EXPLORER_TX_URL = "https://rinkeby.etherscan.io/tx/{tx_hash}"

# Confirmation defaults
DEFAULT_CONFIRMATION_BLOCKS = 13
DEFAULT_POLL_INTERVAL_SECONDS = 1.0


def normalize_url(url: str) -> str:
    """Canonicalize a URL so it ends with exactly one trailing slash."""
    return url.rstrip("/") + "/"


class PlasmaSettings(BaseSettings):
    """Immutable configuration for one Plasma session."""

    model_config = SettingsConfigDict(
        env_prefix="PLASMA_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # Contracts and endpoints
    plasma_contract_address: str = DEFAULT_PLASMA_CONTRACT_ADDRESS
    watcher_url: str = DEFAULT_WATCHER_URL
    childchain_url: str = DEFAULT_CHILDCHAIN_URL
    childchain_explorer_url: str = DEFAULT_CHILDCHAIN_EXPLORER_URL
    root_rpc_url: str = "http://localhost:8545"
    root_explorer_tx_url: str = DEFAULT_ROOT_EXPLORER_TX_URL

    # Confirmation watching
    confirmation_blocks: int = Field(default=DEFAULT_CONFIRMATION_BLOCKS, ge=0)
    poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0)
    confirmation_timeout_seconds: Optional[float] = 1800.0
    receipt_timeout_seconds: float = 300.0

    # Root-chain transaction parameters
    approve_gas: int = 2_000_000
    approve_gas_price: int = 1_000_000

    # Child-chain fee paid from the native fee input
    transfer_fee: int = Field(default=0, ge=0)

    # Deprecated: sign locally with a held private key when the provider
    # does not implement eth_signTypedData_v4
    allow_private_key_signing: bool = False

    # HTTP
    http_timeout_seconds: float = 30.0

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    operation_level: str = "INFO"
    error_level: str = "ERROR"
    mask_addresses: bool = False

    @field_validator(
        "watcher_url", "childchain_url", "childchain_explorer_url", "root_rpc_url",
    )
    @classmethod
    def canonicalize_url(cls, v: str) -> str:
        return normalize_url(v)

    @field_validator("plasma_contract_address")
    @classmethod
    def validate_contract_address(cls, v: str) -> str:
        if not Web3.is_address(v):
            raise ValueError(f"Invalid plasma contract address: {v}")
        return Web3.to_checksum_address(v)

    @field_validator("root_explorer_tx_url")
    @classmethod
    def validate_explorer_template(cls, v: str) -> str:
        if "{tx_hash}" not in v:
            raise ValueError("root_explorer_tx_url must contain a {tx_hash} placeholder")
        return v

    def root_tx_link(self, tx_hash: str) -> str:
        """Explorer link for a root-chain transaction."""
        return self.root_explorer_tx_url.format(tx_hash=tx_hash)

    def child_tx_link(self, tx_hash: str) -> str:
        """Explorer link for a child-chain transaction."""
        return f"{self.childchain_explorer_url}transaction/{tx_hash}"


@lru_cache(maxsize=1)
def get_settings() -> PlasmaSettings:
    return PlasmaSettings()
