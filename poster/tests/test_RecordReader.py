"""Unit tests for ContractRecordReader."""

from unittest.mock import MagicMock

import pytest

from poster.src.errors import ConfigError
from poster.src.Observation import StoredRecord
from poster.src.RecordReader import ContractRecordReader

ATTESTOR_A = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
ATTESTOR_B = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def make_contract(stored: dict) -> MagicMock:
    """Contract mock whose getter returns ``stored[(attestor, key)]``."""
    contract = MagicMock()

    def getter(attestor, key):
        call = MagicMock()
        call.call.return_value = stored.get((attestor, key), (0, 0))
        return call

    getter.abi = {
        "name": "get",
        "inputs": [{"type": "address"}, {"type": "string"}],
        "outputs": [{"type": "uint64"}, {"type": "uint64"}],
    }
    contract.get_function_by_name.return_value = getter
    return contract


class TestContractRecordReader:
    """Test reads through the data contract getter."""

    def test_read_record(self) -> None:
        """A stored (timestamp, value) pair becomes a StoredRecord."""
        reader = ContractRecordReader(make_contract({(ATTESTOR_A, "X"): (10, 100)}))
        assert reader.read(ATTESTOR_A, "X") == StoredRecord(ATTESTOR_A, "X", 100, 10)

    def test_never_written(self) -> None:
        """A zero timestamp means no record."""
        reader = ContractRecordReader(make_contract({}))
        assert reader.read(ATTESTOR_A, "X") is None

    def test_read_many(self) -> None:
        """read_many maps every attestor, absent ones to None."""
        reader = ContractRecordReader(make_contract({(ATTESTOR_A, "X"): (10, 100)}))
        records = reader.read_many([ATTESTOR_A, ATTESTOR_B], "X")
        assert records[ATTESTOR_A].value == 100
        assert records[ATTESTOR_B] is None

    def test_missing_getter(self) -> None:
        """A data contract without the getter is a configuration error."""
        contract = MagicMock()
        contract.get_function_by_name.side_effect = ValueError("not found")
        with pytest.raises(ConfigError, match="no usable 'get'"):
            ContractRecordReader(contract)

    def test_wrong_getter_shape(self) -> None:
        """A getter returning a single value is refused."""
        contract = make_contract({})
        contract.get_function_by_name.return_value.abi["outputs"] = [{"type": "uint64"}]
        with pytest.raises(ConfigError, match="must take"):
            ContractRecordReader(contract)
