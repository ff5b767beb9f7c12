"""SignatureVerifier: Recover attestor identities from payload signatures.

The signed digest matches the data contract's ``source()`` function::

    keccak256("\\x19Ethereum Signed Message:\\n32" ++ keccak256(message))

Signatures are ABI-encoded ``(bytes32 r, bytes32 s, uint8 v)`` as published by
attestors, or the compact 65-byte ``r ++ s ++ v`` form.

.. code-block:: python

    >>> verifier = SignatureVerifier(trusted_attestors=[attestor_address])
    >>> verifier.verify(payload.message, payload.signature)
    '0x...'
"""

from __future__ import annotations

from collections.abc import Iterable

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_account.messages import SignableMessage, encode_defunct
from eth_keys.exceptions import BadSignature
from eth_utils import ValidationError, is_address, keccak, to_checksum_address

from .errors import ConfigError, InvalidSignature

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def signable_digest(message: bytes) -> SignableMessage:
    """Wrap keccak256(message) in the EIP-191 personal-sign envelope."""
    return encode_defunct(primitive=keccak(message))


def split_signature(signature: bytes) -> tuple[int, int, int]:
    """Split a signature into ``(v, r, s)``.

    :param signature: 96-byte ABI or 65-byte compact signature.
    :returns: Tuple of (v, r, s) with v normalized to 27/28.
    :raises InvalidSignature: If the signature is malformed.
    """
    if len(signature) == 96:
        try:
            r, s, v = abi_decode(["bytes32", "bytes32", "uint8"], signature)
        except DecodingError as e:
            raise InvalidSignature(f"Malformed signature: {e}") from e
    elif len(signature) == 65:
        r, s, v = signature[:32], signature[32:64], signature[64]
    else:
        raise InvalidSignature(f"Unexpected signature length {len(signature)}")

    if v in (0, 1):
        v += 27
    if v not in (27, 28):
        raise InvalidSignature(f"Invalid recovery id {v}")

    return v, int.from_bytes(r, "big"), int.from_bytes(s, "big")


class SignatureVerifier:
    """Authenticates payloads by recovering the signer address.

    The allow-list is mandatory: recovery alone proves nothing, since a
    tampered message still recovers some address.

    :ivar trusted_attestors: Checksummed addresses allowed to sign.
    """

    def __init__(self, trusted_attestors: Iterable[str]) -> None:
        """Initialize the verifier.

        :param trusted_attestors: Allow-list of attestor addresses.
        :raises ConfigError: If the list is empty or an address is invalid.
        """
        trusted_attestors = list(trusted_attestors)
        if not trusted_attestors:
            raise ConfigError("At least one trusted attestor is required")
        invalid = [a for a in trusted_attestors if not is_address(a)]
        if invalid:
            raise ConfigError(f"Invalid attestor addresses: {invalid}")
        self.trusted_attestors: frozenset[str] = frozenset(
            to_checksum_address(a) for a in trusted_attestors
        )

    def recover(self, message: bytes, signature: bytes) -> str:
        """Recover the signer of a message without checking the allow-list.

        :param message: Raw message bytes.
        :param signature: Signature bytes.
        :returns: Checksummed signer address.
        :raises InvalidSignature: If no identity can be recovered.
        """
        vrs = split_signature(signature)
        try:
            address = Account.recover_message(signable_digest(message), vrs=vrs)
        except (BadSignature, ValidationError, ValueError) as e:
            raise InvalidSignature(f"Signature recovery failed: {e}") from e

        if address == ZERO_ADDRESS:
            raise InvalidSignature("Signature recovered the zero address")
        return to_checksum_address(address)

    def verify(self, message: bytes, signature: bytes) -> str:
        """Verify a payload and return its attestor.

        :param message: Raw message bytes.
        :param signature: Signature bytes.
        :returns: Checksummed attestor address.
        :raises InvalidSignature: If the signer is unrecoverable or untrusted.
        """
        attestor = self.recover(message, signature)
        if attestor not in self.trusted_attestors:
            raise InvalidSignature("Signer is not a trusted attestor")
        return attestor

    @staticmethod
    def sign(message: bytes, private_key: str | bytes) -> bytes:
        """Sign a message the way attestors do.

        :param message: Raw message bytes.
        :param private_key: Signer private key.
        :returns: 96-byte ABI-encoded ``(r, s, v)`` signature.
        """
        signed = Account.sign_message(signable_digest(message), private_key)
        return abi_encode(
            ["bytes32", "bytes32", "uint8"],
            [signed.r.to_bytes(32, "big"), signed.s.to_bytes(32, "big"), signed.v],
        )
