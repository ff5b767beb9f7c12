"""RecordReader: Read path for records stored on the oracle data contract."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING

from .errors import ConfigError
from .Observation import StoredRecord

if TYPE_CHECKING:
    from web3.contract import Contract

logger = logging.getLogger(__name__)


class RecordReader(ABC):
    """Abstract base class for (attestor, key) -> StoredRecord lookups."""

    @abstractmethod
    def read(self, attestor: str, key: str) -> StoredRecord | None:
        """Read the current record for an attestor and key.

        :param attestor: Checksummed attestor address.
        :param key: Observation key.
        :returns: Stored record, or None if nothing was ever written.
        """
        pass

    def read_many(
        self, attestors: Iterable[str], key: str
    ) -> dict[str, StoredRecord | None]:
        """Read the current record of one key for several attestors.

        :param attestors: Attestor addresses to query.
        :param key: Observation key.
        :returns: Dict mapping attestor to record or None.
        """
        return {attestor: self.read(attestor, key) for attestor in attestors}


class ContractRecordReader(RecordReader):
    """Reads records through the data contract's getter.

    The getter is bound once at construction and must have the shape
    ``get(address source, string key) returns (uint64 timestamp, <value>)``.
    A zero timestamp means the pair was never written.

    :ivar contract: Data contract instance.
    :ivar method: Getter method name.
    """

    def __init__(self, contract: Contract, method: str = "get") -> None:
        """Initialize the reader.

        :param contract: Web3 contract for the oracle data contract.
        :param method: Getter name (default "get").
        :raises ConfigError: If the getter is missing or has the wrong shape.
        """
        self.contract = contract
        self.method = method
        try:
            self._getter = contract.get_function_by_name(method)
        except ValueError as e:
            raise ConfigError(f"Data contract has no usable '{method}' getter: {e}") from e

        abi = getattr(self._getter, "abi", None)
        if isinstance(abi, dict) and (
            len(abi.get("inputs", [])) != 2 or len(abi.get("outputs", [])) != 2
        ):
            raise ConfigError(
                f"Getter '{method}' must take (address, string) and return "
                f"(timestamp, value)"
            )

    def read(self, attestor: str, key: str) -> StoredRecord | None:
        timestamp, value = self._getter(attestor, key).call()
        if timestamp == 0:
            return None
        logger.debug(f"Read {key} from {attestor}: value={value}, timestamp={timestamp}")
        return StoredRecord(attestor=attestor, key=key, value=value, timestamp=timestamp)
