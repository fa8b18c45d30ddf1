"""
Ghostkey ECDSA signatures.

Signatures are produced in one of two encodings:

* ``raw``: fixed-width r || s, 32 bytes each (64 bytes total)
* ``der``: the length-prefixed ASN.1 DER SEQUENCE of r and s

Stored signatures are decoded tolerantly: DER first, then the raw form.
Either way the decoded (r, s) must lie in [1, n-1], so bytes that merely
happen to parse are still rejected as malformed.
"""

import logging
from typing import Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from ghostkey import armor
from ghostkey.errors import SignatureError, SignatureVerificationError
from ghostkey.keys import CURVE_ORDER, SigningKey, VerifyingKey

logger = logging.getLogger(__name__)

RAW = "raw"
DER = "der"

SCALAR_SIZE = 32
RAW_SIGNATURE_SIZE = 2 * SCALAR_SIZE

_ALGORITHM = ec.ECDSA(hashes.SHA256())


def to_raw(r: int, s: int) -> bytes:
    return r.to_bytes(SCALAR_SIZE, "big") + s.to_bytes(SCALAR_SIZE, "big")


def to_der(r: int, s: int) -> bytes:
    return encode_dss_signature(r, s)


def sign(signing_key: SigningKey, message: bytes, encoding: str = DER) -> bytes:
    """
    Sign message with ECDSA P-256 / SHA-256.

    Args:
        signing_key: The private key.
        message: Bytes to sign (hashed with SHA-256 by ECDSA).
        encoding: ``"der"`` or ``"raw"``.
    """
    der = signing_key.sign(message, _ALGORITHM)
    if encoding == DER:
        return der
    if encoding == RAW:
        return to_raw(*decode_dss_signature(der))
    raise ValueError(f"Unknown signature encoding: {encoding}")


def _in_range(r: int, s: int) -> bool:
    return 0 < r < CURVE_ORDER and 0 < s < CURVE_ORDER


def decode(data: bytes) -> Tuple[int, int]:
    """
    Decode stored signature bytes into (r, s).

    Raises:
        SignatureError: If data is neither a strict DER signature nor a
            64-byte raw signature, or its scalars are out of range.
    """
    data = bytes(data)
    try:
        r, s = decode_dss_signature(data)
        if encode_dss_signature(r, s) != data:
            raise ValueError("non-canonical DER")
    except ValueError as e:
        logger.warning(f"Signature is not DER ({e}), trying raw encoding")
    else:
        if not _in_range(r, s):
            raise SignatureError("DER signature scalars out of range")
        return r, s

    if len(data) != RAW_SIGNATURE_SIZE:
        raise SignatureError(
            f"not DER and not {RAW_SIGNATURE_SIZE} raw bytes (got {len(data)} bytes)"
        )
    r = int.from_bytes(data[:SCALAR_SIZE], "big")
    s = int.from_bytes(data[SCALAR_SIZE:], "big")
    if not _in_range(r, s):
        raise SignatureError("raw signature scalars out of range")
    return r, s


def verify(
    verifying_key: VerifyingKey, message: bytes, signature: bytes, subject: str = "message"
) -> None:
    """
    Verify a stored signature over message.

    Raises:
        SignatureError: If the signature bytes are malformed.
        SignatureVerificationError: If the signature does not match.
    """
    r, s = decode(signature)
    try:
        verifying_key.verify(to_der(r, s), message, _ALGORITHM)
    except InvalidSignature as e:
        logger.error(f"Signature verification failed for {subject}")
        raise SignatureVerificationError(subject) from e
    logger.debug(f"Signature verified for {subject}")


# =============================================================================
# Detached message signatures
# =============================================================================


def sign_message(signing_key: SigningKey, message: bytes) -> str:
    """Sign message and return an armored SIGNATURE block."""
    return armor.encode(sign(signing_key, message, DER), armor.SIGNATURE)


def verify_message(verifying_key: VerifyingKey, message: bytes, armored_signature: str) -> None:
    """Verify an armored SIGNATURE block over message."""
    verify(verifying_key, message, armor.decode(armored_signature, armor.SIGNATURE))
