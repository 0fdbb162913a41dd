"""Tests for client configuration."""

import pytest

from kettle_sdk.chain import MULTICALL3_ADDRESS
from kettle_sdk.config import (
    DEFAULT_CONFIRMATION_TIMEOUT,
    config_from_env,
    resolve_config,
)

from .fakes import CONTRACT


class TestResolveConfig:
    """Tests for resolve_config."""

    def test_defaults(self):
        """Test that defaults are applied."""
        config = resolve_config({"contract_address": CONTRACT})

        assert config.contract_address.lower() == CONTRACT
        assert config.chain_id is None
        assert config.multicall_address == MULTICALL3_ADDRESS
        assert config.multicall_chunk_size > 0
        assert config.confirmation_timeout == DEFAULT_CONFIRMATION_TIMEOUT

    def test_checksums_addresses(self):
        """Test that addresses are checksummed."""
        config = resolve_config({"contract_address": CONTRACT})

        assert config.contract_address == "0x" + "11" * 20
        assert resolve_config({"contract_address": MULTICALL3_ADDRESS.lower()}).contract_address == (
            MULTICALL3_ADDRESS
        )

    @pytest.mark.parametrize("address", [None, "", "0x123", "not an address"])
    def test_invalid_contract_address(self, address):
        """Test that a missing or malformed contract address is rejected."""
        with pytest.raises(ValueError, match="Invalid contract address"):
            resolve_config({"contract_address": address})

    def test_missing_contract_address(self):
        """Test that the contract address is required."""
        with pytest.raises(ValueError, match="Invalid contract address"):
            resolve_config({})

    def test_invalid_multicall_address(self):
        """Test that the multicall address is validated."""
        with pytest.raises(ValueError, match="Invalid multicall address"):
            resolve_config({"contract_address": CONTRACT, "multicall_address": "0x1"})

    def test_invalid_chunk_size(self):
        """Test that the chunk size must be positive."""
        with pytest.raises(ValueError, match="multicall_chunk_size"):
            resolve_config({"contract_address": CONTRACT, "multicall_chunk_size": 0})

    def test_invalid_timeout(self):
        """Test that the confirmation timeout must be positive."""
        with pytest.raises(ValueError, match="confirmation_timeout"):
            resolve_config({"contract_address": CONTRACT, "confirmation_timeout": -1})


class TestConfigFromEnv:
    """Tests for config_from_env."""

    def test_reads_variables(self):
        """Test that KETTLE_* variables are parsed."""
        config = config_from_env(
            {
                "KETTLE_CONTRACT_ADDRESS": CONTRACT,
                "KETTLE_RPC_URL": "http://localhost:8545",
                "KETTLE_CHAIN_ID": "8453",
                "KETTLE_MULTICALL_CHUNK_SIZE": "50",
                "KETTLE_CONFIRMATION_TIMEOUT": "12.5",
            }
        )

        assert config == {
            "contract_address": CONTRACT,
            "rpc_url": "http://localhost:8545",
            "chain_id": 8453,
            "multicall_chunk_size": 50,
            "confirmation_timeout": 12.5,
        }

    def test_unset_variables_are_omitted(self):
        """Test that empty and missing variables fall back to defaults."""
        config = config_from_env({"KETTLE_CONTRACT_ADDRESS": CONTRACT, "KETTLE_RPC_URL": ""})

        assert config == {"contract_address": CONTRACT}
        assert resolve_config(config).rpc_url is None

    def test_reads_os_environ(self, monkeypatch):
        """Test that os.environ is used by default."""
        monkeypatch.setenv("KETTLE_CONTRACT_ADDRESS", CONTRACT)
        monkeypatch.delenv("KETTLE_CHAIN_ID", raising=False)

        assert config_from_env()["contract_address"] == CONTRACT
