"""
Ghostkey Ghost Key Authority.

A ghost key certificate is signed by a delegate key and embeds the delegate
certificate verbatim, so anyone holding the master verifying key can check
the whole chain offline:

    master --signs--> delegate certificate --embedded in--> ghost key certificate
                      delegate key ---------signs---------> ghost key certificate

The holder of a ghost key gets the certificate together with the ghost
signing key. The issuer keeps neither.
"""

import logging
from dataclasses import dataclass
from typing import Tuple, Union

from ghostkey import armor, signature
from ghostkey.config import GHOSTKEY_CERTIFICATE_VERSION
from ghostkey.delegate import (
    extract_delegate_verifying_key,
    require_matching_delegate_key,
    verify_delegate_certificate,
)
from ghostkey.encoding import GhostKeyCertificate
from ghostkey.errors import (
    ArmorError,
    DeserializationError,
    GhostkeyError,
    KeyCreationError,
    ValidationError,
)
from ghostkey.keys import (
    SigningKey,
    VerifyingKey,
    as_signing_key,
    as_verifying_key,
    generate_keypair,
    load_signing_key,
    load_verifying_key,
    signing_key_from_bytes,
    signing_key_to_bytes,
    verifying_key_from_bytes,
    verifying_key_to_bytes,
)

logger = logging.getLogger(__name__)

STAGE_CERTIFICATE = "certificate"
STAGE_DELEGATE = "delegate"
STAGE_GHOST = "ghost"


def issue_ghost_key(
    delegate_certificate_bytes: bytes, delegate_signing_key: Union[bytes, SigningKey]
) -> Tuple[GhostKeyCertificate, SigningKey]:
    """
    Generate a ghost key pair and certify it with a delegate key.

    Args:
        delegate_certificate_bytes: Encoded delegate certificate, embedded verbatim.
        delegate_signing_key: The delegate's signing key (object or 32-byte scalar).

    Returns:
        (certificate, ghost signing key). The caller must keep both; the
        certificate is useless to its holder without the signing key.

    Raises:
        DeserializationError: If the delegate certificate bytes are malformed.
        KeyCreationError: If the delegate signing key is malformed or does not
            belong to the delegate certificate.
    """
    delegate_key = as_signing_key(delegate_signing_key, role="delegate signing")
    require_matching_delegate_key(delegate_certificate_bytes, delegate_key)

    ghost = generate_keypair()
    unsigned = GhostKeyCertificate(
        delegate_certificate=bytes(delegate_certificate_bytes),
        ghostkey_verifying_key=ghost.verifying_key_bytes(),
    )
    sig = signature.sign(delegate_key, unsigned.signing_payload(), signature.DER)

    certificate = GhostKeyCertificate(
        version=unsigned.version,
        delegate_certificate=unsigned.delegate_certificate,
        ghostkey_verifying_key=unsigned.ghostkey_verifying_key,
        signature=sig,
    )
    logger.info("Issued ghost key certificate")
    return certificate, ghost.signing_key


def verify_ghost_key(
    master_verifying_key: Union[bytes, VerifyingKey],
    ghostkey_certificate: Union[GhostKeyCertificate, bytes],
) -> str:
    """
    Verify a ghost key certificate using only the master verifying key.

    Two independent checks must pass:

    1. the embedded delegate certificate verifies against the master key;
    2. the certificate signature verifies against the delegate key taken
       from that (now trusted) delegate certificate.

    Args:
        master_verifying_key: Master verifying key object or SEC1 bytes.
        ghostkey_certificate: A GhostKeyCertificate or its canonical encoding.

    Returns:
        The delegate certificate's info string.

    Raises:
        KeyCreationError: If the master verifying key itself is malformed.
        ValidationError: With stage "certificate", "delegate" or "ghost"
            naming the check that failed; the typed error is in ``cause``.
    """
    master = as_verifying_key(master_verifying_key, role="master verifying")

    try:
        if isinstance(ghostkey_certificate, GhostKeyCertificate):
            certificate = ghostkey_certificate
            if certificate.version != GHOSTKEY_CERTIFICATE_VERSION:
                raise DeserializationError(
                    GhostKeyCertificate.RECORD, f"unsupported version {certificate.version}"
                )
        else:
            certificate = GhostKeyCertificate.from_bytes(ghostkey_certificate)
    except DeserializationError as e:
        raise ValidationError(
            "The ghost key certificate is not in the expected format. "
            "It may be corrupted or invalid.",
            stage=STAGE_CERTIFICATE,
            cause=e,
        ) from e

    try:
        info = verify_delegate_certificate(master, certificate.delegate_certificate)
    except GhostkeyError as e:
        logger.error(f"Delegate chain broken: {e}")
        raise ValidationError(
            f"The delegate certificate embedded in the ghost key certificate is invalid: {e}",
            stage=STAGE_DELEGATE,
            cause=e,
        ) from e

    try:
        delegate_key = extract_delegate_verifying_key(certificate.delegate_certificate)
        verifying_key_from_bytes(certificate.ghostkey_verifying_key, role="ghost verifying")
        signature.verify(
            delegate_key,
            certificate.signing_payload(),
            certificate.signature,
            subject="ghost key certificate",
        )
    except GhostkeyError as e:
        raise ValidationError(
            f"The ghost key certificate signature is invalid: {e}",
            stage=STAGE_GHOST,
            cause=e,
        ) from e

    logger.info("Ghost key certificate verified")
    return info


@dataclass(frozen=True)
class GhostKey:
    """
    The artifact handed to the end user: a certificate and its signing key.

    Armored as the GHOSTKEY CERTIFICATE block followed by the GHOST KEY block.
    """

    certificate: GhostKeyCertificate
    signing_key: SigningKey

    @property
    def verifying_key(self) -> VerifyingKey:
        return self.signing_key.public_key()

    def certificate_armor(self) -> str:
        return armor.encode(self.certificate.to_bytes(), armor.GHOSTKEY_CERTIFICATE)

    def to_armor(self) -> str:
        key_block = armor.encode(signing_key_to_bytes(self.signing_key), armor.GHOST_KEY)
        return f"{self.certificate_armor()}\n{key_block}"

    def sign(self, message: bytes) -> str:
        """Sign message with the ghost key; returns an armored SIGNATURE."""
        return signature.sign_message(self.signing_key, message)

    @classmethod
    def from_armor(cls, text: str) -> "GhostKey":
        """
        Load a combined ghost key artifact.

        Raises:
            ArmorError: If either block is missing or malformed.
            DeserializationError: If the certificate is malformed.
            KeyCreationError: If the signing key is malformed or does not
                match the certificate.
        """
        certificate = GhostKeyCertificate.from_bytes(armor.decode(text, armor.GHOSTKEY_CERTIFICATE))
        signing_key = signing_key_from_bytes(armor.decode(text, armor.GHOST_KEY), role="ghost")
        if verifying_key_to_bytes(signing_key.public_key()) != verifying_key_to_bytes(
            verifying_key_from_bytes(certificate.ghostkey_verifying_key, role="ghost verifying")
        ):
            raise KeyCreationError("ghost", "signing key does not match the certificate")
        return cls(certificate=certificate, signing_key=signing_key)


# =============================================================================
# Armored helpers
# =============================================================================


def generate_ghost_key(delegate_certificate_armored: str, delegate_signing_key_armored: str) -> GhostKey:
    """Issue a ghost key from armored delegate files."""
    certificate_bytes = armor.decode(delegate_certificate_armored, armor.DELEGATE_CERTIFICATE)
    delegate_key = load_signing_key(delegate_signing_key_armored, armor.DELEGATE_SIGNING_KEY)
    certificate, signing_key = issue_ghost_key(certificate_bytes, delegate_key)
    return GhostKey(certificate=certificate, signing_key=signing_key)


def validate_ghost_key(master_verifying_key_armored: str, certificate_armored: str) -> str:
    """
    Verify an armored ghost key certificate; returns the delegate info.

    certificate_armored may also be a full ghost key artifact.
    """
    master = load_verifying_key(master_verifying_key_armored, armor.MASTER_VERIFYING_KEY)
    try:
        certificate_bytes = armor.decode(certificate_armored, armor.GHOSTKEY_CERTIFICATE)
    except ArmorError as e:
        raise ValidationError(
            "Failed to decode the provided ghost key certificate. "
            "Please ensure it's properly formatted.",
            stage=STAGE_CERTIFICATE,
            cause=e,
        ) from e
    return verify_ghost_key(master, certificate_bytes)
