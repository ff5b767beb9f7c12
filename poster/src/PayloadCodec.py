"""PayloadCodec: ABI codec for signed payload messages.

A message is the ABI encoding of ``(string kind, uint64 timestamp, string key,
<value_type> value)``. The value type is fixed when the codec is built:
``uint64`` for prices, ``string`` for free-form data series.

.. code-block:: python

    >>> codec = PayloadCodec()
    >>> message = codec.encode(Observation(key="BTC", value=100, timestamp=10))
    >>> codec.decode(message)
    [Observation(key='BTC', value=100, timestamp=10, kind='prices')]
"""

from __future__ import annotations

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError, EncodingError

from .errors import ConfigError, DecodeError
from .Observation import DEFAULT_KIND, Observation

SUPPORTED_VALUE_TYPES = ("uint64", "string")


class PayloadCodec:
    """Encodes and decodes observation messages.

    :ivar kind: Expected message kind tag.
    :ivar value_type: ABI type of the value field.
    """

    def __init__(self, kind: str = DEFAULT_KIND, value_type: str = "uint64") -> None:
        """Initialize the codec.

        :param kind: Kind tag every message must carry (default "prices").
        :param value_type: ABI value type, "uint64" or "string".
        :raises ConfigError: If the value type is unsupported.
        """
        if value_type not in SUPPORTED_VALUE_TYPES:
            raise ConfigError(
                f"Unsupported value type '{value_type}'. "
                f"Expected one of {SUPPORTED_VALUE_TYPES}"
            )
        self.kind = kind
        self.value_type = value_type
        self._types = ["string", "uint64", "string", value_type]

    def decode(self, message: bytes) -> list[Observation]:
        """Decode a message into observations.

        :param message: ABI-encoded message bytes.
        :returns: List of decoded observations.
        :raises DecodeError: If the layout, kind or key is invalid.
        """
        try:
            kind, timestamp, key, value = abi_decode(self._types, message)
        except (DecodingError, UnicodeDecodeError, TypeError, ValueError) as e:
            raise DecodeError(f"Malformed message: {e}") from e

        if kind != self.kind:
            raise DecodeError(f"Unexpected message kind '{kind}', expected '{self.kind}'")
        if not key:
            raise DecodeError("Message has an empty key")

        return [Observation(key=key, value=value, timestamp=timestamp, kind=kind)]

    def encode(self, observation: Observation) -> bytes:
        """Encode an observation into message bytes.

        :param observation: Observation to encode.
        :returns: ABI-encoded message.
        :raises ValueError: If a field does not fit the ABI layout.
        """
        try:
            return abi_encode(
                self._types,
                [observation.kind, observation.timestamp, observation.key, observation.value],
            )
        except EncodingError as e:
            raise ValueError(f"Cannot encode {observation}: {e}") from e
