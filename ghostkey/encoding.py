"""
Ghostkey canonical encoding.

Records are serialized as MessagePack arrays with a fixed field order per
record kind. Byte strings use the length-prefixed ``bin`` family, text the
length-prefixed ``str`` family, and integers MessagePack's integer forms,
which makes the encoding deterministic: the same record always produces the
same bytes. There is no schema on the wire; both sides share it.

Signatures are always computed over ``signing_payload()``: the record
encoded with its signature field replaced by ``b""``.
"""

from dataclasses import dataclass, replace
from typing import Any, List

import msgpack

from ghostkey.config import GHOSTKEY_CERTIFICATE_VERSION
from ghostkey.errors import DeserializationError


def pack(fields: List[Any]) -> bytes:
    """Encode an ordered list of fields."""
    return msgpack.packb(fields, use_bin_type=True)


def unpack(data: bytes, record: str, arity: int) -> List[Any]:
    """
    Decode an encoded record into its ordered field list.

    Raises:
        DeserializationError: If data is not a single MessagePack array of
            exactly ``arity`` elements.
    """
    if not isinstance(data, (bytes, bytearray)):
        raise DeserializationError(record, f"expected bytes, got {type(data).__name__}")
    try:
        fields = msgpack.unpackb(bytes(data), raw=False, use_list=True, strict_map_key=True)
    except (ValueError, msgpack.UnpackException) as e:
        raise DeserializationError(record, str(e) or type(e).__name__) from e

    if not isinstance(fields, list):
        raise DeserializationError(record, f"expected an array, got {type(fields).__name__}")
    if len(fields) != arity:
        raise DeserializationError(record, f"expected {arity} fields, got {len(fields)}")
    return fields


def _expect_bytes(value: Any, record: str, name: str) -> bytes:
    if not isinstance(value, bytes):
        raise DeserializationError(record, f"field '{name}' must be bytes")
    return value


def _expect_str(value: Any, record: str, name: str) -> str:
    if not isinstance(value, str):
        raise DeserializationError(record, f"field '{name}' must be a string")
    return value


def _expect_u8(value: Any, record: str, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 0xFF:
        raise DeserializationError(record, f"field '{name}' must be an integer in [0, 255]")
    return value


@dataclass(frozen=True)
class DelegateCertificate:
    """
    Master-signed binding of a delegate verifying key to an attestation.

    Attributes:
        verifying_key: SEC1-encoded delegate verifying key.
        info: Attestation string, e.g. a tier, amount and currency.
        signature: Master signature over signing_payload().
    """

    verifying_key: bytes
    info: str
    signature: bytes = b""

    RECORD = "delegate certificate"

    def to_bytes(self) -> bytes:
        return pack([self.verifying_key, self.info, self.signature])

    def signing_payload(self) -> bytes:
        return replace(self, signature=b"").to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "DelegateCertificate":
        fields = unpack(data, cls.RECORD, 3)
        return cls(
            verifying_key=_expect_bytes(fields[0], cls.RECORD, "verifying_key"),
            info=_expect_str(fields[1], cls.RECORD, "info"),
            signature=_expect_bytes(fields[2], cls.RECORD, "signature"),
        )


@dataclass(frozen=True)
class GhostKeyCertificate:
    """
    Delegate-signed binding of a ghost verifying key.

    The delegate certificate is embedded verbatim so the ghost certificate
    can be verified with nothing but the master verifying key.
    """

    delegate_certificate: bytes
    ghostkey_verifying_key: bytes
    signature: bytes = b""
    version: int = GHOSTKEY_CERTIFICATE_VERSION

    RECORD = "ghost key certificate"

    def to_bytes(self) -> bytes:
        return pack(
            [self.version, self.delegate_certificate, self.ghostkey_verifying_key, self.signature]
        )

    def signing_payload(self) -> bytes:
        return replace(self, signature=b"").to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "GhostKeyCertificate":
        fields = unpack(data, cls.RECORD, 4)
        version = _expect_u8(fields[0], cls.RECORD, "version")
        if version != GHOSTKEY_CERTIFICATE_VERSION:
            raise DeserializationError(cls.RECORD, f"unsupported version {version}")
        return cls(
            version=version,
            delegate_certificate=_expect_bytes(fields[1], cls.RECORD, "delegate_certificate"),
            ghostkey_verifying_key=_expect_bytes(fields[2], cls.RECORD, "ghostkey_verifying_key"),
            signature=_expect_bytes(fields[3], cls.RECORD, "signature"),
        )
