"""
Ghostkey key management.

All roles (master, delegate, ghost) use ECDSA over NIST P-256. Signing keys
are exchanged as the 32-byte big-endian private scalar and verifying keys as
SEC1 points (uncompressed on output, either form on input).
"""

import logging
from dataclasses import dataclass
from typing import Tuple, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jwcrypto import jwk

from ghostkey import armor
from ghostkey.errors import KeyCreationError

logger = logging.getLogger(__name__)

CURVE = ec.SECP256R1()

# Order of the P-256 base point
CURVE_ORDER = 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551

SIGNING_KEY_SIZE = 32

SigningKey = ec.EllipticCurvePrivateKey
VerifyingKey = ec.EllipticCurvePublicKey


@dataclass(frozen=True)
class KeyPair:
    """A P-256 signing key and its verifying key."""

    signing_key: SigningKey
    verifying_key: VerifyingKey

    def signing_key_bytes(self) -> bytes:
        return signing_key_to_bytes(self.signing_key)

    def verifying_key_bytes(self) -> bytes:
        return verifying_key_to_bytes(self.verifying_key)


def generate_keypair() -> KeyPair:
    """
    Generate a fresh P-256 key pair from the operating system's CSPRNG.

    Used for master, delegate and ghost keys alike.
    """
    signing_key = ec.generate_private_key(CURVE)
    return KeyPair(signing_key=signing_key, verifying_key=signing_key.public_key())


def signing_key_to_bytes(key: SigningKey) -> bytes:
    return key.private_numbers().private_value.to_bytes(SIGNING_KEY_SIZE, "big")


def verifying_key_to_bytes(key: VerifyingKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )


def signing_key_from_bytes(data: bytes, role: str = "signing") -> SigningKey:
    """
    Load a signing key from its raw scalar.

    Raises:
        KeyCreationError: If data is not a 32-byte scalar in [1, n-1].
    """
    if len(data) != SIGNING_KEY_SIZE:
        raise KeyCreationError(role, f"expected {SIGNING_KEY_SIZE} bytes, got {len(data)}")
    scalar = int.from_bytes(data, "big")
    if not 0 < scalar < CURVE_ORDER:
        raise KeyCreationError(role, "scalar out of range")
    try:
        return ec.derive_private_key(scalar, CURVE)
    except ValueError as e:
        raise KeyCreationError(role, str(e)) from e


def verifying_key_from_bytes(data: bytes, role: str = "verifying") -> VerifyingKey:
    """
    Load a verifying key from a SEC1-encoded point.

    Raises:
        KeyCreationError: If data is not a valid P-256 point.
    """
    if not data:
        raise KeyCreationError(role, "empty key")
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(CURVE, bytes(data))
    except ValueError as e:
        raise KeyCreationError(role, str(e) or "not a valid P-256 point") from e


def as_signing_key(key: Union[bytes, SigningKey], role: str = "signing") -> SigningKey:
    """Accept either a key object or its raw scalar bytes."""
    if isinstance(key, (bytes, bytearray)):
        return signing_key_from_bytes(bytes(key), role=role)
    return key


def as_verifying_key(key: Union[bytes, VerifyingKey], role: str = "verifying") -> VerifyingKey:
    """Accept either a key object or its SEC1 bytes."""
    if isinstance(key, (bytes, bytearray)):
        return verifying_key_from_bytes(bytes(key), role=role)
    return key


def load_signing_key(armored: str, label: str) -> SigningKey:
    """Decode an armored signing key stored under label."""
    return signing_key_from_bytes(armor.decode(armored, label), role=label.lower())


def load_verifying_key(armored: str, label: str = armor.MASTER_VERIFYING_KEY) -> VerifyingKey:
    """Decode an armored verifying key stored under label."""
    return verifying_key_from_bytes(armor.decode(armored, label), role=label.lower())


def generate_master_key() -> Tuple[str, str]:
    """
    Generate a new master key pair.

    Returns:
        (armored master signing key, armored master verifying key)
    """
    keypair = generate_keypair()
    logger.info("Generated master key pair")
    return (
        armor.encode(keypair.signing_key_bytes(), armor.MASTER_SIGNING_KEY),
        armor.encode(keypair.verifying_key_bytes(), armor.MASTER_VERIFYING_KEY),
    )


def derive_verifying_key(master_signing_key_armored: str) -> str:
    """Recompute the armored master verifying key from the armored signing key."""
    signing_key = load_signing_key(master_signing_key_armored, armor.MASTER_SIGNING_KEY)
    return armor.encode(
        verifying_key_to_bytes(signing_key.public_key()), armor.MASTER_VERIFYING_KEY
    )


def verifying_key_to_jwk(key: VerifyingKey) -> str:
    """
    Export a verifying key as a public JWK (kty=EC, crv=P-256).

    Web verifiers can import the result with WebCrypto.
    """
    return jwk.JWK.from_pyca(key).export_public()
