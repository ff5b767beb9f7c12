"""Unit tests for ContractUtility."""

import json
from unittest.mock import MagicMock, PropertyMock

import pytest

from poster.src.ContractUtility import ContractUtility
from poster.src.errors import ConfigError

KEY_A = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
NODE_ACCOUNT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


class TestGetAbi:
    """Test ABI loading."""

    def test_bundled_view_abi(self) -> None:
        """The bundled view ABI exposes postPrices."""
        abi = ContractUtility.get_abi("OpenOracleView")
        names = {entry.get("name") for entry in abi}
        assert "postPrices" in names

    def test_bundled_data_abi(self) -> None:
        """The bundled data ABI exposes the getter and Write event."""
        abi = ContractUtility.get_abi("OpenOracleData")
        entries = {(entry["type"], entry.get("name")) for entry in abi}
        assert ("function", "get") in entries
        assert ("event", "Write") in entries

    def test_artifact_file(self, tmp_path) -> None:
        """Compiler artifacts are unwrapped to their abi field."""
        path = tmp_path / "View.json"
        path.write_text(json.dumps({"contractName": "View", "abi": [{"type": "function"}]}))
        assert ContractUtility.get_abi("View", str(path)) == [{"type": "function"}]

    def test_missing_file(self, tmp_path) -> None:
        """A missing ABI file is a configuration error."""
        with pytest.raises(ConfigError, match="Cannot load ABI"):
            ContractUtility.get_abi("View", str(tmp_path / "missing.json"))

    def test_not_a_list(self, tmp_path) -> None:
        """ABI content must be a list."""
        path = tmp_path / "View.json"
        path.write_text(json.dumps({"name": "View"}))
        with pytest.raises(ConfigError, match="not a list"):
            ContractUtility.get_abi("View", str(path))


class TestContractUtilityInit:
    """Test connection setup (no RPC traffic)."""

    def test_known_network(self, monkeypatch) -> None:
        """Known network names resolve to their RPC URL."""
        monkeypatch.delenv("RPC_URL", raising=False)
        utility = ContractUtility("sapphire-testnet")
        assert utility.network == "https://testnet.sapphire.oasis.io"
        assert utility.sender is None

    def test_rpc_url_override(self) -> None:
        """An explicit RPC URL wins over the network name."""
        utility = ContractUtility("sapphire", rpc_url="http://node:8545")
        assert utility.network == "http://node:8545"

    def test_signing_account(self, monkeypatch) -> None:
        """A private key sets the sender and default account."""
        monkeypatch.delenv("RPC_URL", raising=False)
        utility = ContractUtility("localnet", private_key=KEY_A)
        assert utility.sender == "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
        assert utility.w3.eth.default_account == utility.sender


class TestDefaultSender:
    """Test sender resolution without a poster key."""

    def test_local_account_wins(self, monkeypatch) -> None:
        """With a poster key the local account sends."""
        monkeypatch.delenv("RPC_URL", raising=False)
        utility = ContractUtility("localnet", private_key=KEY_A)
        utility.w3 = MagicMock()
        assert utility.default_sender() == "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

    def test_node_account(self) -> None:
        """Without a key the node's first account sends."""
        utility = ContractUtility("localnet", rpc_url="http://node:8545")
        utility.w3 = MagicMock()
        utility.w3.eth.accounts = [NODE_ACCOUNT.lower()]

        assert utility.default_sender() == NODE_ACCOUNT
        assert utility.w3.eth.default_account == NODE_ACCOUNT

    def test_no_node_accounts(self) -> None:
        """A node without unlocked accounts yields no sender."""
        utility = ContractUtility("localnet", rpc_url="http://node:8545")
        utility.w3 = MagicMock()
        utility.w3.eth.accounts = []
        assert utility.default_sender() is None

    def test_unreachable_node(self) -> None:
        """A node that cannot be reached yields no sender."""
        utility = ContractUtility("localnet", rpc_url="http://node:8545")
        utility.w3 = MagicMock()
        type(utility.w3.eth).accounts = PropertyMock(side_effect=ConnectionError("refused"))
        assert utility.default_sender() is None
