"""
Ghostkey Payment-Gated Issuance Gateway.

Once a payment is confirmed, the gateway signs the caller's key material
with the delegate key provisioned for the payment's tier and returns the
signature together with that tier's delegate certificate, a bundle anyone
can check offline against the master verifying key.

Note: this is not a blind signature. The signer sees the client key
material in the clear; a fresh nonce only guarantees that no two issuances
ever sign the same message.
"""

import base64
import binascii
import hashlib
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from ghostkey import armor, signature
from ghostkey.config import NONCE_SIZE, TIER_DIVISOR, GatewayConfig
from ghostkey.delegate import (
    extract_delegate_verifying_key,
    require_matching_delegate_key,
    verify_delegate_certificate,
)
from ghostkey.errors import (
    ArmorError,
    CertificateAlreadyIssued,
    GhostkeyError,
    KeyMaterialError,
    PaymentNotSuccessful,
)
from ghostkey.ghost import GhostKey, issue_ghost_key
from ghostkey.keys import SigningKey, VerifyingKey, as_verifying_key, load_signing_key
from ghostkey.storage import read_private_key, read_text

logger = logging.getLogger(__name__)


# =============================================================================
# Client key material
# =============================================================================


def _b64decode(value: str, what: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyMaterialError(f"Failed to decode {what}: invalid base64") from e


@dataclass(frozen=True)
class OpaqueClientKey:
    """Client key material sent as one base64 string."""

    value: str

    def to_bytes(self) -> bytes:
        return _b64decode(self.value, "client key")


@dataclass(frozen=True)
class CoordinateClientKey:
    """Client key material sent as base64 x and y coordinates."""

    x: str
    y: str

    def to_bytes(self) -> bytes:
        return _b64decode(self.x, "'x' coordinate") + _b64decode(self.y, "'y' coordinate")


ClientKeyMaterial = Union[OpaqueClientKey, CoordinateClientKey]


def parse_client_key(raw: Any) -> ClientKeyMaterial:
    """
    Classify caller-supplied key material.

    Accepts a base64 string, a mapping with string "x" and "y" entries, or
    an already parsed variant.

    Raises:
        KeyMaterialError: For any other shape.
    """
    if isinstance(raw, (OpaqueClientKey, CoordinateClientKey)):
        return raw
    if isinstance(raw, str):
        return OpaqueClientKey(raw)
    if isinstance(raw, Mapping):
        x, y = raw.get("x"), raw.get("y")
        if not isinstance(x, str):
            raise KeyMaterialError("Missing 'x' coordinate")
        if not isinstance(y, str):
            raise KeyMaterialError("Missing 'y' coordinate")
        return CoordinateClientKey(x=x, y=y)
    raise KeyMaterialError("Invalid client key format")


def tier_for_amount(amount: int) -> int:
    """Map an amount in the smallest currency unit to its tier (2099 -> 20)."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise KeyMaterialError(f"Amount must be an integer, got {type(amount).__name__}")
    if amount < 0:
        raise KeyMaterialError("Amount must not be negative")
    return amount // TIER_DIVISOR


def issuance_message(client_key_bytes: bytes, nonce: bytes) -> bytes:
    return hashlib.sha256(client_key_bytes + nonce).digest()


# =============================================================================
# Payment ledger (external collaborator)
# =============================================================================


class PaymentLedger(ABC):
    """Abstract interface to the payment provider."""

    @abstractmethod
    def confirm(self, payment_id: str) -> int:
        """
        Return the paid amount (smallest currency unit).

        Raises:
            PaymentNotSuccessful: If the payment has not succeeded.
            CertificateAlreadyIssued: If the payment was already consumed.
        """
        pass

    @abstractmethod
    def mark_issued(self, payment_id: str) -> None:
        """
        Atomically mark the payment as consumed.

        Raises:
            CertificateAlreadyIssued: If it was already consumed.
        """
        pass


class MemoryPaymentLedger(PaymentLedger):
    """
    In-memory payment ledger for testing and single-instance deployments.

    Example:
        >>> ledger = MemoryPaymentLedger()
        >>> ledger.record_payment("pi_123", amount=2000)
        >>> ledger.confirm("pi_123")
        2000
    """

    def __init__(self):
        self._payments: Dict[str, Tuple[int, bool]] = {}
        self._issued: set = set()
        self._lock = threading.Lock()

    def record_payment(self, payment_id: str, amount: int, succeeded: bool = True) -> None:
        with self._lock:
            self._payments[payment_id] = (amount, succeeded)

    def confirm(self, payment_id: str) -> int:
        with self._lock:
            if payment_id not in self._payments:
                raise PaymentNotSuccessful(payment_id)
            amount, succeeded = self._payments[payment_id]
            if not succeeded:
                raise PaymentNotSuccessful(payment_id)
            if payment_id in self._issued:
                raise CertificateAlreadyIssued(payment_id)
            return amount

    def mark_issued(self, payment_id: str) -> None:
        with self._lock:
            if payment_id in self._issued:
                raise CertificateAlreadyIssued(payment_id)
            self._issued.add(payment_id)

    def is_issued(self, payment_id: str) -> bool:
        with self._lock:
            return payment_id in self._issued


# =============================================================================
# Gateway
# =============================================================================


@dataclass(frozen=True)
class IssuanceResult:
    """
    Attributes:
        combined_signature: base64(signature || nonce); the signature is the
            64-byte raw form.
        delegate_certificate: The tier's armored delegate certificate.
        tier: The tier that signed.
    """

    combined_signature: str
    delegate_certificate: str
    tier: int


class IssuanceGateway:
    """
    Signs client key material with per-tier delegate keys.

    Tier files are read on every call and never cached; the gateway holds no
    mutable state of its own, so concurrent calls need no locking.

    Example:
        >>> gateway = IssuanceGateway(GatewayConfig(delegate_dir=Path("delegates")))
        >>> result = gateway.request_signature({"x": "...", "y": "..."}, 2000)
        >>> result.tier
        20
    """

    def __init__(self, config: GatewayConfig, payments: Optional[PaymentLedger] = None):
        self.config = config
        self.payments = payments

    def _load_tier(self, tier: int) -> Tuple[str, bytes, SigningKey]:
        certificate_path = self.config.certificate_path(tier)
        signing_key_path = self.config.signing_key_path(tier)
        logger.debug(f"Loading delegate files for tier {tier} from {self.config.delegate_dir}")
        try:
            certificate_armored = read_text(certificate_path)
            signing_key_text = read_private_key(signing_key_path, self.config.ignore_permissions)
        except OSError as e:
            logger.error(f"Failed to read delegate files for tier {tier}: {e.strerror}")
            raise KeyMaterialError(f"No delegate key provisioned for tier {tier}") from e
        except UnicodeDecodeError as e:
            logger.error(f"Delegate files for tier {tier} are not text")
            raise ArmorError(f"Delegate files for tier {tier} are not armored text") from e

        certificate_bytes = armor.decode(certificate_armored, armor.DELEGATE_CERTIFICATE)
        signing_key = load_signing_key(signing_key_text, armor.DELEGATE_SIGNING_KEY)
        require_matching_delegate_key(certificate_bytes, signing_key)
        return certificate_armored, certificate_bytes, signing_key

    def request_signature(self, client_key_material: Any, tier_amount: int) -> IssuanceResult:
        """
        Sign client key material with the delegate key of the amount's tier.

        Args:
            client_key_material: base64 string or {"x": ..., "y": ...} mapping.
            tier_amount: Paid amount in the smallest currency unit.

        Returns:
            IssuanceResult with base64(signature || nonce) and the tier's
            delegate certificate.

        Raises:
            KeyMaterialError: For malformed client key material, a bad amount
                or missing tier files.
            InsecurePermissionsError: If the tier signing key file is exposed.
            ArmorError, DeserializationError, KeyCreationError: If stored tier
                files are corrupt or the certificate does not match the
                tier signing key.
        """
        client_key_bytes = parse_client_key(client_key_material).to_bytes()
        tier = tier_for_amount(tier_amount)
        certificate, _, signing_key = self._load_tier(tier)

        nonce = secrets.token_bytes(self.config.nonce_size)
        sig = signature.sign(
            signing_key, issuance_message(client_key_bytes, nonce), signature.RAW
        )
        logger.info(f"Signed client key material for tier {tier}")
        return IssuanceResult(
            combined_signature=base64.b64encode(sig + nonce).decode("ascii"),
            delegate_certificate=certificate,
            tier=tier,
        )

    def issue_ghost_key(self, tier_amount: int) -> Tuple[GhostKey, int]:
        """
        Generate a complete ghost key for the amount's tier.

        Used when the issuer, rather than the client, creates the ghost key.
        The returned key is not retained.
        """
        tier = tier_for_amount(tier_amount)
        _, certificate_bytes, signing_key = self._load_tier(tier)
        certificate, ghost_signing_key = issue_ghost_key(certificate_bytes, signing_key)
        return GhostKey(certificate=certificate, signing_key=ghost_signing_key), tier

    def issue_for_payment(self, payment_id: str, client_key_material: Any) -> IssuanceResult:
        """
        Confirm a payment, sign, and mark the payment consumed.

        The payment is only marked once the signature exists, and marking is
        atomic, so a payment yields at most one result.

        Raises:
            PaymentNotSuccessful, CertificateAlreadyIssued: From the ledger.
        """
        if self.payments is None:
            raise ValueError("IssuanceGateway has no payment ledger configured")
        amount = self.payments.confirm(payment_id)
        result = self.request_signature(client_key_material, amount)
        self.payments.mark_issued(payment_id)
        logger.info(f"Issued signature for payment {payment_id} (tier {result.tier})")
        return result

    def handle_sign_request(self, request: Mapping[str, Any]) -> Tuple[int, Dict[str, Any]]:
        """
        Serve a sign-certificate request from the web front end.

        Args:
            request: {"payment_intent_id": str, "blinded_public_key": str | {"x", "y"}}

        Returns:
            (HTTP status, JSON body). Error bodies never echo key material.
        """
        payment_id = request.get("payment_intent_id")
        if not isinstance(payment_id, str) or "blinded_public_key" not in request:
            return 400, {"error": "Invalid request"}
        if self.payments is None:
            logger.error("Sign request received but no payment ledger is configured")
            return 500, {"error": "Failed to sign certificate"}

        try:
            result = self.issue_for_payment(payment_id, request["blinded_public_key"])
        except PaymentNotSuccessful:
            return 402, {"error": "Payment not successful"}
        except CertificateAlreadyIssued:
            return 409, {"error": "Certificate already signed"}
        except KeyMaterialError:
            return 400, {"error": "Invalid key material or amount"}
        except GhostkeyError as e:
            logger.error(f"Issuance failed for payment {payment_id}: {type(e).__name__}")
            return 500, {"error": "Failed to sign certificate"}

        return 200, {
            "blind_signature": result.combined_signature,
            "delegate_info": {"certificate": result.delegate_certificate, "amount": result.tier},
        }


def verify_issuance(
    master_verifying_key: Union[bytes, VerifyingKey],
    delegate_certificate_armored: str,
    client_key_material: Any,
    combined_signature: str,
    nonce_size: int = NONCE_SIZE,
) -> str:
    """
    Check a gateway bundle offline.

    Verifies the delegate certificate against the master key, then the
    signature over SHA-256(client key || nonce) against the delegate key.

    Returns:
        The delegate certificate's info.

    Raises:
        KeyMaterialError: If the client key or combined signature is malformed.
        SignatureError, SignatureVerificationError, plus any delegate
        certificate error.
    """
    master = as_verifying_key(master_verifying_key, role="master verifying")
    certificate_bytes = armor.decode(delegate_certificate_armored, armor.DELEGATE_CERTIFICATE)
    info = verify_delegate_certificate(master, certificate_bytes)

    combined = _b64decode(combined_signature, "combined signature")
    if len(combined) != signature.RAW_SIGNATURE_SIZE + nonce_size:
        raise KeyMaterialError("Combined signature has the wrong length")
    sig, nonce = combined[: signature.RAW_SIGNATURE_SIZE], combined[signature.RAW_SIGNATURE_SIZE :]

    client_key_bytes = parse_client_key(client_key_material).to_bytes()
    signature.verify(
        extract_delegate_verifying_key(certificate_bytes),
        issuance_message(client_key_bytes, nonce),
        sig,
        subject="issuance",
    )
    return info
