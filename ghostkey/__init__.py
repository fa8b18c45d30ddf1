"""
Ghostkey - anonymous, verifiable ghost key certificates.

A master key certifies delegate keys, delegate keys certify ghost keys, and
anyone holding the master verifying key can check a ghost key offline
without learning who it was issued to.
"""

__version__ = "0.1.0"

# Certificates
from .delegate import issue_delegate_certificate, verify_delegate_certificate
from .encoding import DelegateCertificate, GhostKeyCertificate
from .ghost import GhostKey, issue_ghost_key, verify_ghost_key

# Key management
from .keys import KeyPair, generate_keypair

# Errors
from .errors import (
    ArmorError,
    CertificateAlreadyIssued,
    DeserializationError,
    GhostkeyError,
    InsecurePermissionsError,
    KeyCreationError,
    KeyMaterialError,
    PaymentNotSuccessful,
    SignatureError,
    SignatureVerificationError,
    ValidationError,
)


# Issuance gateway (loaded on first use)
def __getattr__(name):
    """Lazy loading of the issuance gateway."""
    if name in (
        "IssuanceGateway",
        "IssuanceResult",
        "MemoryPaymentLedger",
        "PaymentLedger",
        "verify_issuance",
    ):
        from . import gateway

        return getattr(gateway, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "DelegateCertificate",
    "GhostKeyCertificate",
    "GhostKey",
    "KeyPair",
    "generate_keypair",
    "issue_delegate_certificate",
    "verify_delegate_certificate",
    "issue_ghost_key",
    "verify_ghost_key",
    "IssuanceGateway",
    "IssuanceResult",
    "MemoryPaymentLedger",
    "PaymentLedger",
    "verify_issuance",
    "GhostkeyError",
    "ArmorError",
    "DeserializationError",
    "KeyCreationError",
    "SignatureError",
    "SignatureVerificationError",
    "ValidationError",
    "InsecurePermissionsError",
    "KeyMaterialError",
    "PaymentNotSuccessful",
    "CertificateAlreadyIssued",
]
