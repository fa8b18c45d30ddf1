"""
Ghostkey Armor - labeled, line-wrapped base64 envelopes for binary artifacts.

Every persisted artifact (keys, certificates, signatures) is stored as:

    -----BEGIN <LABEL>-----
    <base64, wrapped at 64 columns>
    -----END <LABEL>-----

A single text may hold several blocks (the ghost key artifact carries its
certificate and its signing key); decode() picks the block it was asked for.
"""

import base64
import binascii
import logging
import re
from typing import List

from ghostkey.config import ARMOR_LINE_WIDTH
from ghostkey.errors import ArmorError

logger = logging.getLogger(__name__)

MASTER_SIGNING_KEY = "MASTER SIGNING KEY"
MASTER_VERIFYING_KEY = "MASTER VERIFYING KEY"
DELEGATE_SIGNING_KEY = "DELEGATE SIGNING KEY"
DELEGATE_CERTIFICATE = "DELEGATE CERTIFICATE"
GHOST_KEY = "GHOST KEY"
GHOSTKEY_CERTIFICATE = "GHOSTKEY CERTIFICATE"
SIGNATURE = "SIGNATURE"

_BEGIN = re.compile(r"^-----BEGIN (.+)-----$")
_END = re.compile(r"^-----END (.+)-----$")


def encode(data: bytes, label: str) -> str:
    """
    Wrap binary data in an armored text envelope.

    Base64 lines are wrapped at a fixed 64 columns.

    Args:
        data: The bytes to armor.
        label: Artifact label placed in the BEGIN/END lines.

    Returns:
        The armored text, ending with a newline.
    """
    if not label or "-----" in label or "\n" in label:
        raise ArmorError(f"Invalid armor label: {label!r}")

    encoded = base64.b64encode(data).decode("ascii")
    lines = [encoded[i : i + ARMOR_LINE_WIDTH] for i in range(0, len(encoded), ARMOR_LINE_WIDTH)]
    body = "\n".join(lines)
    if body:
        body += "\n"
    return f"-----BEGIN {label}-----\n{body}-----END {label}-----\n"


def labels(text: str) -> List[str]:
    """Return the labels of every BEGIN line in text, in order."""
    found = []
    for line in text.splitlines():
        match = _BEGIN.match(line.strip())
        if match:
            found.append(match.group(1))
    return found


def decode(text: str, expected_label: str) -> bytes:
    """
    Extract the bytes armored under expected_label.

    Args:
        text: Armored text, possibly containing several blocks.
        expected_label: The artifact kind the caller expects.

    Returns:
        The decoded payload.

    Raises:
        ArmorError: If markers are missing or unbalanced, no block carries
            expected_label, or the payload is not valid base64.
    """
    lines = [line.strip() for line in text.splitlines()]

    found_labels = []
    start = None
    for i, line in enumerate(lines):
        match = _BEGIN.match(line)
        if not match:
            continue
        found_labels.append(match.group(1))
        if match.group(1) == expected_label:
            start = i
            break

    if start is None:
        if not found_labels:
            raise ArmorError("Missing BEGIN marker", expected_label=expected_label)
        logger.debug(f"Armor label mismatch: expected {expected_label}, found {found_labels}")
        raise ArmorError(
            f"Expected {expected_label}, found {', '.join(found_labels)}",
            expected_label=expected_label,
            found_label=found_labels[0],
        )

    body = []
    for line in lines[start + 1 :]:
        end = _END.match(line)
        if end:
            if end.group(1) != expected_label:
                raise ArmorError(
                    f"END label {end.group(1)} does not match BEGIN label {expected_label}",
                    expected_label=expected_label,
                    found_label=end.group(1),
                )
            break
        if line.startswith("-----"):
            raise ArmorError(
                f"Unexpected marker inside {expected_label} block", expected_label=expected_label
            )
        body.append(line)
    else:
        raise ArmorError(f"Missing END marker for {expected_label}", expected_label=expected_label)

    try:
        return base64.b64decode("".join(body), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ArmorError(f"Invalid base64 in {expected_label}: {e}", expected_label=expected_label) from e
