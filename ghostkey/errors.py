"""
Ghostkey error types.

Every failure raised by the library is a subclass of GhostkeyError. Each
variant carries only the context needed to diagnose the problem; none of
them ever holds key material.
"""

from typing import Optional


class GhostkeyError(Exception):
    """Base class for all Ghostkey errors."""


class ArmorError(GhostkeyError):
    """An armored text envelope is malformed or carries the wrong label."""

    def __init__(
        self,
        reason: str,
        expected_label: Optional[str] = None,
        found_label: Optional[str] = None,
    ):
        self.reason = reason
        self.expected_label = expected_label
        self.found_label = found_label
        super().__init__(reason)


class DeserializationError(GhostkeyError):
    """Bytes do not decode to the expected canonical record."""

    def __init__(self, record: str, reason: str):
        self.record = record
        self.reason = reason
        super().__init__(f"Failed to decode {record}: {reason}")


class KeyCreationError(GhostkeyError):
    """Key bytes could not be turned into a usable key."""

    def __init__(self, role: str, reason: str):
        self.role = role
        self.reason = reason
        super().__init__(f"Invalid {role} key: {reason}")


class SignatureError(GhostkeyError):
    """Signature bytes decode under neither DER nor the raw fixed-width form."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Malformed signature: {reason}")


class SignatureVerificationError(GhostkeyError):
    """A well-formed signature failed the cryptographic check."""

    def __init__(self, subject: str):
        self.subject = subject
        super().__init__(f"Signature verification failed for {subject}")


class ValidationError(GhostkeyError):
    """
    User-facing summary of a failed certificate validation.

    Attributes:
        stage: Where validation stopped: "certificate" (the outer record is
            unreadable), "delegate" (the delegate chain is broken) or
            "ghost" (the ghost key signature is invalid).
        cause: The underlying typed error.
    """

    def __init__(self, message: str, stage: str, cause: Optional[GhostkeyError] = None):
        self.stage = stage
        self.cause = cause
        super().__init__(message)


class InsecurePermissionsError(GhostkeyError):
    """A private key file is readable or writable by group or others."""

    def __init__(self, path: str, mode: int):
        self.path = path
        self.mode = mode
        super().__init__(
            f"The signing key file '{path}' has permissions {oct(mode)}. It should not be "
            f"readable or writable by group or others. Use chmod 600 to fix it, or pass "
            f"--ignore-permissions to override this check."
        )


class KeyMaterialError(GhostkeyError, KeyError):
    """Issuance input or tier key material is missing or unusable."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.reason


class PaymentNotSuccessful(GhostkeyError):
    """The payment backing an issuance request has not succeeded."""

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not successful")


class CertificateAlreadyIssued(GhostkeyError):
    """A certificate was already issued against this payment."""

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Certificate already issued for payment {payment_id}")
