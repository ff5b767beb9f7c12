"""Observation: Data model shared by the poster pipeline.

.. code-block:: python

    >>> obs = Observation(key="BTC", value=100, timestamp=10)
    >>> obs.kind
    'prices'
    >>> payload = Payload.from_hex("0xdead", "0xbeef")
    >>> payload.message
    b'\\xde\\xad'
"""

from __future__ import annotations

from dataclasses import dataclass

from eth_utils import to_bytes

Value = int | str

DEFAULT_KIND = "prices"


@dataclass(frozen=True)
class Observation:
    """A single signed data point decoded from a payload message.

    :ivar key: Data series identifier (e.g. "BTC").
    :ivar value: Observed value (uint64 or string, depending on codec).
    :ivar timestamp: Source time in seconds.
    :ivar kind: Message kind tag.
    """

    key: str
    value: Value
    timestamp: int
    kind: str = DEFAULT_KIND


@dataclass(frozen=True)
class Payload:
    """Raw signed payload as published by an attestor.

    :ivar message: ABI-encoded observation.
    :ivar signature: Attestor signature over the message hash.
    """

    message: bytes
    signature: bytes

    @classmethod
    def from_hex(cls, message: str, signature: str) -> Payload:
        """Build a payload from 0x-prefixed hex strings.

        :param message: Hex-encoded message.
        :param signature: Hex-encoded signature.
        :returns: New Payload instance.
        :raises ValueError: If either value is not valid hex.
        """
        return cls(message=to_bytes(hexstr=message), signature=to_bytes(hexstr=signature))


@dataclass(frozen=True)
class VerifiedPayload:
    """A payload whose signer has been proven and whose message decoded.

    :ivar attestor: Checksummed address recovered from the signature.
    :ivar observation: Decoded observation.
    :ivar message: Raw message bytes, forwarded unchanged to the contract.
    :ivar signature: Raw signature bytes, forwarded unchanged to the contract.
    """

    attestor: str
    observation: Observation
    message: bytes
    signature: bytes

    @property
    def key(self) -> str:
        return self.observation.key


@dataclass(frozen=True)
class StoredRecord:
    """The data contract's last accepted observation for (attestor, key)."""

    attestor: str
    key: str
    value: Value
    timestamp: int


@dataclass(frozen=True)
class AggregateEntry:
    """Aggregate for one key, replaced wholesale on each recomputation.

    :ivar key: Observation key.
    :ivar value: Aggregated value.
    :ivar computed_at: Unix time the aggregate was computed.
    :ivar source_record_count: Number of records that contributed.
    """

    key: str
    value: int | float | str
    computed_at: float
    source_record_count: int
