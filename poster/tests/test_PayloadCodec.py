"""Unit tests for PayloadCodec."""

import pytest
from eth_abi import encode as abi_encode

from poster.src.errors import ConfigError, DecodeError
from poster.src.Observation import Observation
from poster.src.PayloadCodec import PayloadCodec


class TestPayloadCodecInit:
    """Test PayloadCodec construction."""

    def test_defaults(self) -> None:
        """Default codec expects price messages with uint64 values."""
        codec = PayloadCodec()
        assert codec.kind == "prices"
        assert codec.value_type == "uint64"

    def test_unsupported_value_type(self) -> None:
        """Unknown value types should be rejected at startup."""
        with pytest.raises(ConfigError, match="Unsupported value type"):
            PayloadCodec(value_type="int256")


class TestPayloadCodecRoundTrip:
    """Test encode/decode inverse behavior."""

    def test_uint_value(self) -> None:
        """Numeric observations decode back unchanged."""
        codec = PayloadCodec()
        obs = Observation(key="BTC", value=6_500_000_000, timestamp=1_700_000_000)
        assert codec.decode(codec.encode(obs)) == [obs]

    def test_string_value(self) -> None:
        """String observations decode back unchanged."""
        codec = PayloadCodec(kind="data", value_type="string")
        obs = Observation(key="weather/nyc", value="sunny", timestamp=42, kind="data")
        assert codec.decode(codec.encode(obs)) == [obs]

    def test_matches_contract_layout(self) -> None:
        """Encoding matches abi.encode(string, uint64, string, uint64)."""
        codec = PayloadCodec()
        expected = abi_encode(
            ["string", "uint64", "string", "uint64"], ["prices", 10, "ETH", 250]
        )
        assert codec.encode(Observation("ETH", 250, 10)) == expected

    def test_encode_out_of_range(self) -> None:
        """Values that do not fit uint64 cannot be encoded."""
        codec = PayloadCodec()
        with pytest.raises(ValueError, match="Cannot encode"):
            codec.encode(Observation("BTC", 2**64, 10))


class TestPayloadCodecDecodeErrors:
    """Test rejection of malformed messages."""

    def test_empty_message(self) -> None:
        """Empty bytes cannot be decoded."""
        with pytest.raises(DecodeError, match="Malformed message"):
            PayloadCodec().decode(b"")

    def test_truncated_message(self) -> None:
        """Truncated messages are rejected."""
        codec = PayloadCodec()
        message = codec.encode(Observation("BTC", 100, 10))
        with pytest.raises(DecodeError):
            codec.decode(message[:64])

    def test_wrong_kind(self) -> None:
        """Messages of another kind are rejected."""
        message = abi_encode(
            ["string", "uint64", "string", "uint64"], ["volumes", 10, "BTC", 1]
        )
        with pytest.raises(DecodeError, match="Unexpected message kind 'volumes'"):
            PayloadCodec().decode(message)

    def test_empty_key(self) -> None:
        """A message without a key is rejected."""
        message = abi_encode(
            ["string", "uint64", "string", "uint64"], ["prices", 10, "", 1]
        )
        with pytest.raises(DecodeError, match="empty key"):
            PayloadCodec().decode(message)

