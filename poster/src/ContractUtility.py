"""ContractUtility: Web3 initialization and contract ABI loading."""

import json
import logging
import os
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import Web3Exception
from web3.middleware import SignAndSendRawMiddlewareBuilder

from .errors import ConfigError

logger = logging.getLogger(__name__)

# Default RPC endpoints per network name.
NETWORKS: dict[str, str] = {
    "sapphire": "https://sapphire.oasis.io",
    "sapphire-testnet": "https://testnet.sapphire.oasis.io",
    "sapphire-localnet": "http://localhost:8545",
    "localnet": "http://localhost:8545",
}

ABI_DIR = Path(__file__).parent.parent / "abi"


class ContractUtility:
    """Utility for Web3 connection, sender account and contract ABIs.

    :ivar network: Network RPC URL.
    :ivar w3: Configured Web3 instance.
    :ivar account: Local signing account, if a poster key was provided.
    """

    def __init__(
        self,
        network_name: str,
        rpc_url: str | None = None,
        private_key: str | None = None,
    ) -> None:
        """Initialize the contract utility.

        :param network_name: Known network name, or an RPC URL.
        :param rpc_url: Optional RPC URL override (also read from RPC_URL).
        :param private_key: Optional key used to sign outgoing transactions.
            Without it the node's first unlocked account sends.
        """
        self.network = rpc_url or os.environ.get("RPC_URL") or NETWORKS.get(
            network_name, network_name
        )

        self.w3 = Web3(Web3.HTTPProvider(self.network))
        self.account: LocalAccount | None = None
        if private_key:
            self.account = Account.from_key(private_key)
            self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(self.account))
            self.w3.eth.default_account = self.account.address

    @property
    def sender(self) -> str | None:
        """Address transactions are sent from, if known locally."""
        return self.account.address if self.account else None

    def default_sender(self) -> str | None:
        """Resolve the account transactions are sent from.

        The local signing account wins. Otherwise the node's first unlocked
        account is used and set as ``w3.eth.default_account``.

        :returns: Checksummed sender address, or None if the node has none.
        """
        if self.account is not None:
            return self.account.address
        try:
            accounts = self.w3.eth.accounts
        except (Web3Exception, OSError) as e:
            logger.error(f"Cannot list node accounts at {self.network}: {e}")
            return None
        if not accounts:
            return None
        sender = Web3.to_checksum_address(accounts[0])
        self.w3.eth.default_account = sender
        return sender

    @staticmethod
    def get_abi(contract_name: str, abi_path: str | None = None) -> list:
        """Load a contract ABI.

        :param contract_name: Name of a bundled ABI (e.g. "OpenOracleView").
        :param abi_path: Optional path to a JSON ABI overriding the bundled one.
            Either a plain ABI list or a compiler artifact with an "abi" field.
        :returns: ABI as a list of entries.
        :raises ConfigError: If the file is missing or not valid ABI JSON.
        """
        path = Path(abi_path) if abi_path else ABI_DIR / f"{contract_name}.json"
        try:
            with open(path, "r") as file:
                data = json.load(file)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot load ABI for {contract_name} from {path}: {e}") from e

        abi = data["abi"] if isinstance(data, dict) and "abi" in data else data
        if not isinstance(abi, list):
            raise ConfigError(f"ABI for {contract_name} in {path} is not a list")
        return abi
