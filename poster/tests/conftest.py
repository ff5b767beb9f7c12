"""Shared fixtures for poster tests."""

from collections.abc import Callable

import pytest
from eth_account import Account
from eth_account.signers.local import LocalAccount

from poster.src.Observation import Observation, Payload, StoredRecord
from poster.src.PayloadCodec import PayloadCodec
from poster.src.RecordReader import RecordReader
from poster.src.SignatureVerifier import SignatureVerifier

# Well-known development keys, never funded on a real network.
KEY_A = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
KEY_B = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
KEY_C = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"


class InMemoryRecordReader(RecordReader):
    """RecordReader backed by a dict, counting reads."""

    def __init__(self) -> None:
        self.records: dict[tuple[str, str], StoredRecord] = {}
        self.reads = 0

    def set(self, attestor: str, key: str, value, timestamp: int) -> None:
        self.records[(attestor, key)] = StoredRecord(attestor, key, value, timestamp)

    def read(self, attestor: str, key: str) -> StoredRecord | None:
        self.reads += 1
        return self.records.get((attestor, key))


@pytest.fixture
def attestor_a() -> LocalAccount:
    return Account.from_key(KEY_A)


@pytest.fixture
def attestor_b() -> LocalAccount:
    return Account.from_key(KEY_B)


@pytest.fixture
def outsider() -> LocalAccount:
    return Account.from_key(KEY_C)


@pytest.fixture
def codec() -> PayloadCodec:
    return PayloadCodec()


@pytest.fixture
def reader() -> InMemoryRecordReader:
    return InMemoryRecordReader()


@pytest.fixture
def make_payload(codec: PayloadCodec) -> Callable[..., Payload]:
    """Build a signed payload for (key, value, timestamp)."""

    def _make(account: LocalAccount, key: str, value: int, timestamp: int) -> Payload:
        message = codec.encode(Observation(key=key, value=value, timestamp=timestamp))
        return Payload(message, SignatureVerifier.sign(message, account.key))

    return _make
