"""
Ghostkey Command Line Interface.

Provides commands for managing master and delegate keys, issuing and
validating ghost keys, and signing and verifying messages.
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ghostkey import armor, signature
from ghostkey.config import (
    DEFAULT_TIERS,
    DELEGATE_CERTIFICATE_TEMPLATE,
    DELEGATE_SIGNING_KEY_TEMPLATE,
    print_config,
)
from ghostkey.delegate import (
    extract_delegate_verifying_key,
    generate_delegate_key,
    validate_delegate_key,
)
from ghostkey.encoding import GhostKeyCertificate
from ghostkey.errors import GhostkeyError
from ghostkey.ghost import GhostKey, generate_ghost_key, validate_ghost_key
from ghostkey.keys import (
    SigningKey,
    VerifyingKey,
    derive_verifying_key,
    generate_master_key,
    load_signing_key,
    load_verifying_key,
    verifying_key_from_bytes,
    verifying_key_to_jwk,
)
from ghostkey.storage import read_private_key, read_text, write_artifact

logger = logging.getLogger(__name__)

MASTER_SIGNING_KEY_FILE = "master_signing_key.pem"
MASTER_VERIFYING_KEY_FILE = "master_verifying_key.pem"
DELEGATE_CERTIFICATE_FILE = "delegate_certificate.pem"
DELEGATE_SIGNING_KEY_FILE = "delegate_signing_key.pem"
GHOST_KEY_FILE = "ghost_key.pem"
GHOSTKEY_CERTIFICATE_FILE = "ghostkey_certificate.pem"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _refuse_existing(*paths: Path) -> None:
    existing = [str(p) for p in paths if p.exists()]
    if existing:
        raise FileExistsError(f"Refusing to overwrite existing file(s): {', '.join(existing)}")


def _read_message(args: argparse.Namespace) -> bytes:
    if args.message is not None:
        return args.message.encode("utf-8")
    return Path(args.message_file).read_bytes()


def _load_any_signing_key(text: str) -> SigningKey:
    """Pick the signing key out of a master, delegate or ghost key file."""
    found = armor.labels(text)
    if armor.GHOST_KEY in found:
        return GhostKey.from_armor(text).signing_key
    if armor.DELEGATE_SIGNING_KEY in found:
        return load_signing_key(text, armor.DELEGATE_SIGNING_KEY)
    return load_signing_key(text, armor.MASTER_SIGNING_KEY)


def _load_any_verifying_key(text: str, master_text: Optional[str]) -> VerifyingKey:
    """
    Pick the verifying key out of a master key, delegate certificate or ghost
    key certificate file, validating certificates first when a master key is given.
    """
    found = armor.labels(text)
    if armor.GHOSTKEY_CERTIFICATE in found:
        if master_text is not None:
            info = validate_ghost_key(master_text, text)
            logger.info(f"Ghost key certificate validated (info: {info})")
        certificate = GhostKeyCertificate.from_bytes(armor.decode(text, armor.GHOSTKEY_CERTIFICATE))
        return verifying_key_from_bytes(certificate.ghostkey_verifying_key, role="ghost verifying")
    if armor.DELEGATE_CERTIFICATE in found:
        if master_text is not None:
            info = validate_delegate_key(master_text, text)
            logger.info(f"Delegate certificate validated (info: {info})")
        return extract_delegate_verifying_key(armor.decode(text, armor.DELEGATE_CERTIFICATE))
    return load_verifying_key(text, armor.MASTER_VERIFYING_KEY)


# =============================================================================
# Commands
# =============================================================================


def cmd_generate_master_key(args: argparse.Namespace) -> int:
    """Generate a master key pair."""
    output_dir = Path(args.output_dir)
    signing_path = output_dir / MASTER_SIGNING_KEY_FILE
    verifying_path = output_dir / MASTER_VERIFYING_KEY_FILE
    _refuse_existing(signing_path, verifying_path)

    signing_key, verifying_key = generate_master_key()
    write_artifact(signing_path, signing_key, private=True)
    write_artifact(verifying_path, verifying_key)

    print(f"Master signing key:   {signing_path}")
    print(f"Master verifying key: {verifying_path}")
    return 0


def cmd_generate_verifying_key(args: argparse.Namespace) -> int:
    """Recompute the master verifying key from the master signing key."""
    output_path = Path(args.output_file)
    _refuse_existing(output_path)

    signing_key = read_private_key(args.master_signing_key_file, args.ignore_permissions)
    write_artifact(output_path, derive_verifying_key(signing_key))

    print(f"Master verifying key: {output_path}")
    return 0


def cmd_generate_delegate_key(args: argparse.Namespace) -> int:
    """Generate and certify one delegate key."""
    output_dir = Path(args.output_dir)
    certificate_path = output_dir / DELEGATE_CERTIFICATE_FILE
    signing_key_path = output_dir / DELEGATE_SIGNING_KEY_FILE
    _refuse_existing(certificate_path, signing_key_path)

    master = read_private_key(args.master_signing_key_file, args.ignore_permissions)
    certificate, signing_key = generate_delegate_key(master, args.info)
    write_artifact(signing_key_path, signing_key, private=True)
    write_artifact(certificate_path, certificate)

    print(f"Delegate certificate: {certificate_path}")
    print(f"Delegate signing key: {signing_key_path}")
    return 0


def cmd_generate_delegate_keys(args: argparse.Namespace) -> int:
    """Provision one delegate key per donation tier."""
    signing_keys_dir = Path(args.signing_keys_dir)
    cert_dir = Path(args.cert_dir) if args.cert_dir else signing_keys_dir
    amounts = args.amounts or list(DEFAULT_TIERS)

    targets = [
        (
            amount,
            cert_dir / DELEGATE_CERTIFICATE_TEMPLATE.format(tier=amount),
            signing_keys_dir / DELEGATE_SIGNING_KEY_TEMPLATE.format(tier=amount),
        )
        for amount in amounts
    ]
    if not args.overwrite:
        _refuse_existing(*[p for _, cert, key in targets for p in (cert, key)])

    master = read_private_key(args.master_signing_key_file, args.ignore_permissions)
    signing_keys_dir.mkdir(parents=True, exist_ok=True)
    os.chmod(signing_keys_dir, 0o700)

    for amount, certificate_path, signing_key_path in targets:
        created = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        info = json.dumps(
            {"action": "freenet-donation", "amount": amount, "delegate-key-created": created},
            separators=(",", ":"),
        )
        certificate, signing_key = generate_delegate_key(master, info)
        write_artifact(signing_key_path, signing_key, private=True, overwrite=args.overwrite)
        write_artifact(certificate_path, certificate, overwrite=args.overwrite)
        print(f"Generated delegate key for amount {amount}")

    return 0


def cmd_validate_delegate_key(args: argparse.Namespace) -> int:
    """Validate a delegate certificate against the master verifying key."""
    info = validate_delegate_key(
        read_text(args.master_verifying_key_file), read_text(args.delegate_certificate_file)
    )
    print("Delegate certificate is valid")
    print(f"Info: {info}")
    return 0


def cmd_generate_ghost_key(args: argparse.Namespace) -> int:
    """Issue a ghost key from a delegate certificate and signing key."""
    output_dir = Path(args.output_dir)
    ghost_key_path = output_dir / GHOST_KEY_FILE
    certificate_path = output_dir / GHOSTKEY_CERTIFICATE_FILE
    _refuse_existing(ghost_key_path, certificate_path)

    ghost_key = generate_ghost_key(
        read_text(args.delegate_certificate_file),
        read_private_key(args.delegate_signing_key_file, args.ignore_permissions),
    )
    write_artifact(ghost_key_path, ghost_key.to_armor(), private=True)
    write_artifact(certificate_path, ghost_key.certificate_armor())

    print(f"Ghost key:             {ghost_key_path}")
    print(f"Ghost key certificate: {certificate_path}")
    return 0


def cmd_validate_ghost_key(args: argparse.Namespace) -> int:
    """Validate a ghost key certificate against the master verifying key."""
    info = validate_ghost_key(
        read_text(args.master_verifying_key_file), read_text(args.ghost_certificate_file)
    )
    print("Ghost key certificate is valid")
    print(f"Info: {info}")
    return 0


def cmd_sign_message(args: argparse.Namespace) -> int:
    """Sign a message with a master, delegate or ghost signing key."""
    if args.output_file:
        _refuse_existing(Path(args.output_file))

    message = _read_message(args)
    signing_key = _load_any_signing_key(
        read_private_key(args.signing_key_file, args.ignore_permissions)
    )
    armored = signature.sign_message(signing_key, message)

    if args.output_file:
        write_artifact(args.output_file, armored)
        print(f"Signature: {args.output_file}")
    else:
        print(armored, end="")
    return 0


def cmd_verify_signature(args: argparse.Namespace) -> int:
    """Verify a detached signature."""
    master_text = (
        read_text(args.master_verifying_key_file) if args.master_verifying_key_file else None
    )
    verifying_key = _load_any_verifying_key(read_text(args.verifying_key_file), master_text)
    signature.verify_message(verifying_key, _read_message(args), read_text(args.signature_file))
    print("Signature is valid")
    return 0


def cmd_export_jwk(args: argparse.Namespace) -> int:
    """Print a verifying key as a public JWK."""
    verifying_key = _load_any_verifying_key(read_text(args.verifying_key_file), None)
    print(verifying_key_to_jwk(verifying_key))
    return 0


def cmd_show_config(args: argparse.Namespace) -> int:
    print_config()
    return 0


COMMANDS = {
    "generate-master-key": cmd_generate_master_key,
    "generate-verifying-key": cmd_generate_verifying_key,
    "generate-delegate-key": cmd_generate_delegate_key,
    "generate-delegate-keys": cmd_generate_delegate_keys,
    "validate-delegate-key": cmd_validate_delegate_key,
    "generate-ghost-key": cmd_generate_ghost_key,
    "validate-ghost-key": cmd_validate_ghost_key,
    "sign-message": cmd_sign_message,
    "verify-signature": cmd_verify_signature,
    "export-jwk": cmd_export_jwk,
    "show-config": cmd_show_config,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ghostkey",
        description="Ghostkey CLI - anonymous, verifiable ghost key certificates",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # generate-master-key
    p = subparsers.add_parser("generate-master-key", help="Generate a master key pair")
    p.add_argument("--output-dir", required=True, help="Directory for the master key files")

    # generate-verifying-key
    p = subparsers.add_parser(
        "generate-verifying-key", help="Derive the master verifying key from the signing key"
    )
    p.add_argument("--master-signing-key-file", required=True, help="Master signing key file")
    p.add_argument("--output-file", required=True, help="Output file for the verifying key")
    p.add_argument("--ignore-permissions", action="store_true", help="Skip key file permission check")

    # generate-delegate-key
    p = subparsers.add_parser("generate-delegate-key", help="Generate a certified delegate key")
    p.add_argument("--master-signing-key-file", required=True, help="Master signing key file")
    p.add_argument("--info", required=True, help="Information to bind to the delegate key")
    p.add_argument("--output-dir", required=True, help="Directory for the delegate key files")
    p.add_argument("--ignore-permissions", action="store_true", help="Skip key file permission check")

    # generate-delegate-keys
    p = subparsers.add_parser(
        "generate-delegate-keys", help="Generate one delegate key per donation amount"
    )
    p.add_argument("--master-signing-key-file", required=True, help="Master signing key file")
    p.add_argument("--signing-keys-dir", required=True, help="Directory for delegate signing keys")
    p.add_argument("--cert-dir", help="Directory for delegate certificates (default: signing keys dir)")
    p.add_argument("--amounts", type=int, nargs="+", help="Donation amounts (default: 5 20 50 100)")
    p.add_argument("--overwrite", action="store_true", help="Replace existing files")
    p.add_argument("--ignore-permissions", action="store_true", help="Skip key file permission check")

    # validate-delegate-key
    p = subparsers.add_parser("validate-delegate-key", help="Validate a delegate certificate")
    p.add_argument("--master-verifying-key-file", required=True, help="Master verifying key file")
    p.add_argument("--delegate-certificate-file", required=True, help="Delegate certificate file")

    # generate-ghost-key
    p = subparsers.add_parser("generate-ghost-key", help="Issue a ghost key")
    p.add_argument("--delegate-certificate-file", required=True, help="Delegate certificate file")
    p.add_argument("--delegate-signing-key-file", required=True, help="Delegate signing key file")
    p.add_argument("--output-dir", required=True, help="Directory for the ghost key files")
    p.add_argument("--ignore-permissions", action="store_true", help="Skip key file permission check")

    # validate-ghost-key
    p = subparsers.add_parser("validate-ghost-key", help="Validate a ghost key certificate")
    p.add_argument("--master-verifying-key-file", required=True, help="Master verifying key file")
    p.add_argument(
        "--ghost-certificate-file", required=True, help="Ghost key certificate (or ghost key) file"
    )

    # sign-message
    p = subparsers.add_parser("sign-message", help="Sign a message")
    p.add_argument("--signing-key-file", required=True, help="Master, delegate or ghost key file")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--message", help="Message to sign")
    group.add_argument("--message-file", help="File containing the message to sign")
    p.add_argument("--output-file", help="Write the signature here instead of stdout")
    p.add_argument("--ignore-permissions", action="store_true", help="Skip key file permission check")

    # verify-signature
    p = subparsers.add_parser("verify-signature", help="Verify a message signature")
    p.add_argument(
        "--verifying-key-file",
        required=True,
        help="Master verifying key, delegate certificate or ghost key certificate file",
    )
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--message", help="Message that was signed")
    group.add_argument("--message-file", help="File containing the message that was signed")
    p.add_argument("--signature-file", required=True, help="Signature file")
    p.add_argument(
        "--master-verifying-key-file", help="Validate the certificate against this master key first"
    )

    # export-jwk
    p = subparsers.add_parser("export-jwk", help="Print a verifying key as a JWK")
    p.add_argument(
        "--verifying-key-file",
        required=True,
        help="Master verifying key, delegate certificate or ghost key certificate file",
    )

    # show-config
    subparsers.add_parser("show-config", help="Print the current configuration")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        return 0

    try:
        return command(args)
    except GhostkeyError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
