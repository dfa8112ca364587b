"""
Tests for plasma_bridge.config.
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError
from web3 import Web3

from plasma_bridge.config import PlasmaSettings, get_settings, normalize_url


class TestNormalizeUrl:
    """Tests for URL canonicalization."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://watcher.example.com", "https://watcher.example.com/"),
            ("https://watcher.example.com/", "https://watcher.example.com/"),
            ("https://watcher.example.com///", "https://watcher.example.com/"),
        ],
    )
    def test_single_trailing_slash(self, url, expected):
        """Should end with exactly one slash."""
        assert normalize_url(url) == expected


class TestPlasmaSettings:
    """Tests for PlasmaSettings."""

    def test_defaults(self):
        """Should default to the public testnet and 13 confirmations."""
        settings = PlasmaSettings(_env_file=None)

        assert settings.plasma_contract_address == Web3.to_checksum_address(
            "0x740ecec4c0ee99c285945de8b44e9f5bfb71eea7"
        )
        assert settings.watcher_url == "https://watcher.samrong.omg.network/"
        assert settings.childchain_explorer_url == "https://quest.samrong.omg.network/"
        assert settings.confirmation_blocks == 13
        assert settings.poll_interval_seconds == 1.0
        assert settings.allow_private_key_signing is False

    def test_urls_canonicalized(self):
        """Should canonicalize configured URLs."""
        settings = PlasmaSettings(
            _env_file=None,
            watcher_url="http://localhost:7534",
            childchain_explorer_url="http://localhost:4000//",
        )

        assert settings.watcher_url == "http://localhost:7534/"
        assert settings.childchain_explorer_url == "http://localhost:4000/"

    def test_env_prefix(self, monkeypatch):
        """Should read PLASMA_ environment variables."""
        monkeypatch.setenv("PLASMA_WATCHER_URL", "http://watcher.local")
        monkeypatch.setenv("PLASMA_CONFIRMATION_BLOCKS", "3")

        settings = PlasmaSettings(_env_file=None)

        assert settings.watcher_url == "http://watcher.local/"
        assert settings.confirmation_blocks == 3

    def test_invalid_contract_address(self):
        """Should reject malformed contract addresses."""
        with pytest.raises(ValidationError):
            PlasmaSettings(_env_file=None, plasma_contract_address="0x1234")

    def test_explorer_template_requires_placeholder(self):
        """Should reject a root explorer template without {tx_hash}."""
        with pytest.raises(ValidationError):
            PlasmaSettings(_env_file=None, root_explorer_tx_url="https://etherscan.io/tx/")

    def test_negative_confirmation_blocks(self):
        """Should reject negative confirmation depths."""
        with pytest.raises(ValidationError):
            PlasmaSettings(_env_file=None, confirmation_blocks=-1)

    def test_links(self):
        """Should build explorer links."""
        settings = PlasmaSettings(
            _env_file=None,
            root_explorer_tx_url="https://etherscan.io/tx/{tx_hash}",
            childchain_explorer_url="https://explorer.local",
        )

        assert settings.root_tx_link("0xabc") == "https://etherscan.io/tx/0xabc"
        assert settings.child_tx_link("0xdef") == "https://explorer.local/transaction/0xdef"

    def test_frozen(self):
        """Should be immutable."""
        settings = PlasmaSettings(_env_file=None)

        with pytest.raises(ValidationError):
            settings.confirmation_blocks = 1


class TestGetSettings:
    """Tests for the cached accessor."""

    def test_cached(self):
        """Should return the same instance."""
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
