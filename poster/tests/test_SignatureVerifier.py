"""Unit tests for SignatureVerifier."""

import pytest
from eth_abi import decode as abi_decode

from poster.src.errors import ConfigError, InvalidSignature
from poster.src.SignatureVerifier import SignatureVerifier, split_signature


def _flip_byte(data: bytes, index: int) -> bytes:
    return data[:index] + bytes([data[index] ^ 0x01]) + data[index + 1:]


class TestSignatureVerifierRecovery:
    """Test identity recovery from valid signatures."""

    def test_recovers_signer(self, attestor_a, make_payload) -> None:
        """The recovered identity is the signing account."""
        payload = make_payload(attestor_a, "BTC", 100, 10)
        verifier = SignatureVerifier([attestor_a.address])
        assert verifier.verify(payload.message, payload.signature) == attestor_a.address

    def test_sign_produces_abi_signature(self, attestor_a) -> None:
        """Signatures are 96-byte ABI (bytes32, bytes32, uint8)."""
        signature = SignatureVerifier.sign(b"hello", attestor_a.key)
        assert len(signature) == 96
        _, _, v = abi_decode(["bytes32", "bytes32", "uint8"], signature)
        assert v in (27, 28)

    def test_compact_signature(self, attestor_a, make_payload) -> None:
        """The 65-byte r||s||v form is accepted."""
        payload = make_payload(attestor_a, "BTC", 100, 10)
        r, s, v = abi_decode(["bytes32", "bytes32", "uint8"], payload.signature)
        compact = r + s + bytes([v])
        verifier = SignatureVerifier([attestor_a.address])
        assert verifier.verify(payload.message, compact) == attestor_a.address

    def test_zero_based_recovery_id(self, attestor_a, make_payload) -> None:
        """A v of 0/1 is normalized to 27/28."""
        payload = make_payload(attestor_a, "BTC", 100, 10)
        r, s, v = abi_decode(["bytes32", "bytes32", "uint8"], payload.signature)
        compact = r + s + bytes([v - 27])
        verifier = SignatureVerifier([attestor_a.address])
        assert verifier.verify(payload.message, compact) == attestor_a.address

    def test_trusted_attestor_accepted(self, attestor_a, attestor_b, make_payload) -> None:
        """Signers in the allow-list verify."""
        verifier = SignatureVerifier([attestor_a.address, attestor_b.address])
        payload = make_payload(attestor_b, "ETH", 5, 10)
        assert verifier.verify(payload.message, payload.signature) == attestor_b.address

    def test_lowercase_allow_list(self, attestor_a, make_payload) -> None:
        """Allow-list addresses are normalized to checksum form."""
        verifier = SignatureVerifier([attestor_a.address.lower()])
        payload = make_payload(attestor_a, "BTC", 100, 10)
        assert verifier.verify(payload.message, payload.signature) == attestor_a.address


class TestSignatureVerifierRejection:
    """Test rejection of unauthenticated payloads."""

    def test_tampered_message(self, attestor_a, make_payload) -> None:
        """A modified message no longer proves the trusted attestor."""
        verifier = SignatureVerifier([attestor_a.address])
        payload = make_payload(attestor_a, "BTC", 100, 10)
        tampered = _flip_byte(payload.message, len(payload.message) - 1)
        with pytest.raises(InvalidSignature):
            verifier.verify(tampered, payload.signature)

    def test_tampered_signature(self, attestor_a, make_payload) -> None:
        """A modified signature no longer proves the trusted attestor."""
        verifier = SignatureVerifier([attestor_a.address])
        payload = make_payload(attestor_a, "BTC", 100, 10)
        with pytest.raises(InvalidSignature):
            verifier.verify(payload.message, _flip_byte(payload.signature, 5))

    def test_untrusted_signer(self, attestor_a, outsider, make_payload) -> None:
        """Valid signatures from unknown signers are rejected."""
        verifier = SignatureVerifier([attestor_a.address])
        payload = make_payload(outsider, "BTC", 100, 10)
        with pytest.raises(InvalidSignature, match="not a trusted attestor"):
            verifier.verify(payload.message, payload.signature)

    def test_error_hides_recovered_address(self, attestor_a, outsider, make_payload) -> None:
        """The error never names the recovered identity."""
        verifier = SignatureVerifier([attestor_a.address])
        payload = make_payload(outsider, "BTC", 100, 10)
        with pytest.raises(InvalidSignature) as exc_info:
            verifier.verify(payload.message, payload.signature)
        assert outsider.address.lower() not in str(exc_info.value).lower()

    def test_wrong_length(self) -> None:
        """Signatures of unexpected length are rejected."""
        with pytest.raises(InvalidSignature, match="Unexpected signature length"):
            split_signature(b"\x01" * 64)

    def test_invalid_recovery_id(self) -> None:
        """A v outside 0/1/27/28 is rejected."""
        with pytest.raises(InvalidSignature, match="Invalid recovery id"):
            split_signature(b"\x01" * 64 + bytes([30]))

    def test_zero_r_and_s(self, attestor_a) -> None:
        """An all-zero signature proves nothing."""
        with pytest.raises(InvalidSignature):
            SignatureVerifier([attestor_a.address]).verify(b"msg", bytes(64) + bytes([27]))

    def test_invalid_allow_list(self) -> None:
        """Malformed attestor addresses are a configuration error."""
        with pytest.raises(ConfigError, match="Invalid attestor addresses"):
            SignatureVerifier(["not-an-address"])

    def test_empty_allow_list(self) -> None:
        """A verifier without trusted attestors cannot be built."""
        with pytest.raises(ConfigError, match="At least one trusted attestor"):
            SignatureVerifier([])

    def test_tampered_message_single_attestor(self, attestor_a, make_payload) -> None:
        """A tampered message recovers a stranger, which the allow-list refuses."""
        verifier = SignatureVerifier([attestor_a.address])
        payload = make_payload(attestor_a, "BTC", 100, 10)
        tampered = _flip_byte(payload.message, 40)
        assert verifier.recover(tampered, payload.signature) != attestor_a.address
        with pytest.raises(InvalidSignature):
            verifier.verify(tampered, payload.signature)
