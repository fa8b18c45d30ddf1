"""
Ghostkey Delegate Certificate Authority.

The master key certifies delegate keys. A delegate certificate binds the
delegate's verifying key to an attestation string (the "info", e.g. a
payment tier); the info is the only fact a verifier learns from it.
"""

import logging
from typing import Tuple, Union

from ghostkey import armor, signature
from ghostkey.encoding import DelegateCertificate
from ghostkey.errors import KeyCreationError
from ghostkey.keys import (
    SigningKey,
    VerifyingKey,
    as_signing_key,
    as_verifying_key,
    generate_keypair,
    load_signing_key,
    load_verifying_key,
    signing_key_to_bytes,
    verifying_key_from_bytes,
    verifying_key_to_bytes,
)

logger = logging.getLogger(__name__)


def issue_delegate_certificate(
    master_signing_key: Union[bytes, SigningKey],
    delegate_verifying_key: Union[bytes, VerifyingKey],
    info: str,
) -> DelegateCertificate:
    """
    Certify a delegate verifying key with the master signing key.

    Args:
        master_signing_key: Master key object or its 32-byte scalar.
        delegate_verifying_key: Delegate verifying key object or SEC1 bytes.
        info: Attestation string bound to the delegate key.

    Returns:
        The signed DelegateCertificate.

    Raises:
        KeyCreationError: If either key is given as malformed bytes.
    """
    master = as_signing_key(master_signing_key, role="master signing")
    delegate_key_bytes = verifying_key_to_bytes(
        as_verifying_key(delegate_verifying_key, role="delegate verifying")
    )

    unsigned = DelegateCertificate(verifying_key=delegate_key_bytes, info=info)
    sig = signature.sign(master, unsigned.signing_payload(), signature.RAW)

    logger.info(f"Issued delegate certificate (info length {len(info)})")
    return DelegateCertificate(verifying_key=delegate_key_bytes, info=info, signature=sig)


def verify_delegate_certificate(
    master_verifying_key: Union[bytes, VerifyingKey],
    certificate: Union[DelegateCertificate, bytes],
) -> str:
    """
    Verify a delegate certificate against the master verifying key.

    Args:
        master_verifying_key: Master verifying key object or SEC1 bytes.
        certificate: A DelegateCertificate or its canonical encoding.

    Returns:
        The certificate's info string.

    Raises:
        DeserializationError: If certificate bytes are not a delegate certificate.
        KeyCreationError: If a key is malformed.
        SignatureError: If the signature bytes are malformed.
        SignatureVerificationError: If the master signature does not match.
    """
    master = as_verifying_key(master_verifying_key, role="master verifying")
    if not isinstance(certificate, DelegateCertificate):
        certificate = DelegateCertificate.from_bytes(certificate)

    # The embedded key must at least be a valid point
    verifying_key_from_bytes(certificate.verifying_key, role="delegate verifying")

    signature.verify(
        master, certificate.signing_payload(), certificate.signature, subject="delegate certificate"
    )
    logger.info("Delegate certificate verified")
    return certificate.info


def extract_delegate_verifying_key(certificate: Union[DelegateCertificate, bytes]) -> VerifyingKey:
    """Return the delegate verifying key carried by a certificate (unverified)."""
    if not isinstance(certificate, DelegateCertificate):
        certificate = DelegateCertificate.from_bytes(certificate)
    return verifying_key_from_bytes(certificate.verifying_key, role="delegate verifying")


def require_matching_delegate_key(
    certificate: Union[DelegateCertificate, bytes], delegate_signing_key: SigningKey
) -> DelegateCertificate:
    """
    Check that a delegate signing key belongs to a delegate certificate.

    Returns:
        The decoded certificate.

    Raises:
        DeserializationError: If certificate bytes are not a delegate certificate.
        KeyCreationError: If the embedded key is malformed or is not the
            signing key's public half.
    """
    if not isinstance(certificate, DelegateCertificate):
        certificate = DelegateCertificate.from_bytes(certificate)

    expected = verifying_key_to_bytes(delegate_signing_key.public_key())
    certified = verifying_key_to_bytes(
        verifying_key_from_bytes(certificate.verifying_key, role="delegate verifying")
    )
    if expected != certified:
        raise KeyCreationError("delegate signing", "key does not match the delegate certificate")
    return certificate


# =============================================================================
# Armored helpers
# =============================================================================


def generate_delegate_key(master_signing_key_armored: str, info: str) -> Tuple[str, str]:
    """
    Generate a delegate key pair and certify it.

    Returns:
        (armored delegate certificate, armored delegate signing key)
    """
    master = load_signing_key(master_signing_key_armored, armor.MASTER_SIGNING_KEY)
    delegate = generate_keypair()
    certificate = issue_delegate_certificate(master, delegate.verifying_key, info)
    return (
        armor.encode(certificate.to_bytes(), armor.DELEGATE_CERTIFICATE),
        armor.encode(signing_key_to_bytes(delegate.signing_key), armor.DELEGATE_SIGNING_KEY),
    )


def validate_delegate_key(master_verifying_key_armored: str, certificate_armored: str) -> str:
    """Verify an armored delegate certificate; returns its info."""
    master = load_verifying_key(master_verifying_key_armored, armor.MASTER_VERIFYING_KEY)
    certificate_bytes = armor.decode(certificate_armored, armor.DELEGATE_CERTIFICATE)
    return verify_delegate_certificate(master, certificate_bytes)
