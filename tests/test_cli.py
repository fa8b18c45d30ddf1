"""
Tests for the ghostkey command line interface.
"""

import json
import os
import stat

import pytest

from ghostkey import armor
from ghostkey.cli import main
from ghostkey.encoding import DelegateCertificate


def file_mode(path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


@pytest.fixture
def master_dir(tmp_path):
    """Run generate-master-key into a fresh directory."""
    directory = tmp_path / "master"
    assert main(["generate-master-key", "--output-dir", str(directory)]) == 0
    return directory


@pytest.fixture
def delegate_out(tmp_path, master_dir):
    """Run generate-delegate-key for the $20 tier."""
    directory = tmp_path / "delegate"
    assert main([
        "generate-delegate-key",
        "--master-signing-key-file", str(master_dir / "master_signing_key.pem"),
        "--info", "tier=20;currency=usd",
        "--output-dir", str(directory),
    ]) == 0
    return directory


@pytest.fixture
def ghost_out(tmp_path, delegate_out):
    """Run generate-ghost-key from the delegate files."""
    directory = tmp_path / "ghost"
    assert main([
        "generate-ghost-key",
        "--delegate-certificate-file", str(delegate_out / "delegate_certificate.pem"),
        "--delegate-signing-key-file", str(delegate_out / "delegate_signing_key.pem"),
        "--output-dir", str(directory),
    ]) == 0
    return directory


class TestMasterKeyCommands:
    """generate-master-key and generate-verifying-key."""

    def test_generate_master_key(self, master_dir):
        signing = master_dir / "master_signing_key.pem"
        verifying = master_dir / "master_verifying_key.pem"

        assert armor.labels(signing.read_text()) == [armor.MASTER_SIGNING_KEY]
        assert armor.labels(verifying.read_text()) == [armor.MASTER_VERIFYING_KEY]
        assert file_mode(signing) == 0o600

    def test_refuses_to_overwrite(self, master_dir, capsys):
        before = (master_dir / "master_signing_key.pem").read_text()

        assert main(["generate-master-key", "--output-dir", str(master_dir)]) == 1
        assert "Error" in capsys.readouterr().err
        assert (master_dir / "master_signing_key.pem").read_text() == before

    def test_generate_verifying_key(self, master_dir, tmp_path):
        output = tmp_path / "derived.pem"

        assert main([
            "generate-verifying-key",
            "--master-signing-key-file", str(master_dir / "master_signing_key.pem"),
            "--output-file", str(output),
        ]) == 0
        assert output.read_text() == (master_dir / "master_verifying_key.pem").read_text()

    def test_insecure_master_key(self, master_dir, tmp_path, capsys):
        os.chmod(master_dir / "master_signing_key.pem", 0o644)

        assert main([
            "generate-delegate-key",
            "--master-signing-key-file", str(master_dir / "master_signing_key.pem"),
            "--info", "tier=5",
            "--output-dir", str(tmp_path / "out"),
        ]) == 1
        assert "chmod 600" in capsys.readouterr().err
        assert not (tmp_path / "out" / "delegate_signing_key.pem").exists()


class TestDelegateCommands:
    """generate-delegate-key(s) and validate-delegate-key."""

    def test_generate_delegate_key(self, delegate_out):
        assert file_mode(delegate_out / "delegate_signing_key.pem") == 0o600
        assert armor.labels((delegate_out / "delegate_certificate.pem").read_text()) == [
            armor.DELEGATE_CERTIFICATE
        ]

    def test_validate_delegate_key(self, master_dir, delegate_out, capsys):
        capsys.readouterr()
        assert main([
            "validate-delegate-key",
            "--master-verifying-key-file", str(master_dir / "master_verifying_key.pem"),
            "--delegate-certificate-file", str(delegate_out / "delegate_certificate.pem"),
        ]) == 0
        assert "tier=20;currency=usd" in capsys.readouterr().out

    def test_validate_against_other_master(self, tmp_path, delegate_out, capsys):
        other = tmp_path / "other-master"
        main(["generate-master-key", "--output-dir", str(other)])

        assert main([
            "validate-delegate-key",
            "--master-verifying-key-file", str(other / "master_verifying_key.pem"),
            "--delegate-certificate-file", str(delegate_out / "delegate_certificate.pem"),
        ]) == 1
        assert "Error" in capsys.readouterr().err

    def test_generate_delegate_keys(self, master_dir, tmp_path):
        keys_dir = tmp_path / "keys"
        cert_dir = tmp_path / "certs"
        args = [
            "generate-delegate-keys",
            "--master-signing-key-file", str(master_dir / "master_signing_key.pem"),
            "--signing-keys-dir", str(keys_dir),
            "--cert-dir", str(cert_dir),
            "--amounts", "5", "20",
        ]

        assert main(args) == 0
        for amount in (5, 20):
            assert file_mode(keys_dir / f"delegate_signing_key_{amount}.pem") == 0o600
            certificate = DelegateCertificate.from_bytes(
                armor.decode(
                    (cert_dir / f"delegate_certificate_{amount}.pem").read_text(),
                    armor.DELEGATE_CERTIFICATE,
                )
            )
            info = json.loads(certificate.info)
            assert info["action"] == "freenet-donation"
            assert info["amount"] == amount
            assert "delegate-key-created" in info
        assert file_mode(keys_dir) == 0o700

        # Existing files are kept unless --overwrite is given
        before = (keys_dir / "delegate_signing_key_5.pem").read_text()
        assert main(args) == 1
        assert (keys_dir / "delegate_signing_key_5.pem").read_text() == before
        assert main(args + ["--overwrite"]) == 0
        assert (keys_dir / "delegate_signing_key_5.pem").read_text() != before

    def test_generate_delegate_keys_default_tiers(self, master_dir, tmp_path):
        keys_dir = tmp_path / "keys"
        assert main([
            "generate-delegate-keys",
            "--master-signing-key-file", str(master_dir / "master_signing_key.pem"),
            "--signing-keys-dir", str(keys_dir),
        ]) == 0
        assert sorted(p.name for p in keys_dir.glob("delegate_certificate_*.pem")) == [
            "delegate_certificate_100.pem",
            "delegate_certificate_20.pem",
            "delegate_certificate_5.pem",
            "delegate_certificate_50.pem",
        ]


class TestGhostKeyCommands:
    """generate-ghost-key and validate-ghost-key."""

    def test_generate_ghost_key(self, ghost_out):
        ghost_key = ghost_out / "ghost_key.pem"

        assert file_mode(ghost_key) == 0o600
        assert armor.labels(ghost_key.read_text()) == [armor.GHOSTKEY_CERTIFICATE, armor.GHOST_KEY]
        assert armor.labels((ghost_out / "ghostkey_certificate.pem").read_text()) == [
            armor.GHOSTKEY_CERTIFICATE
        ]

    @pytest.mark.parametrize("filename", ["ghostkey_certificate.pem", "ghost_key.pem"])
    def test_validate_ghost_key(self, master_dir, ghost_out, capsys, filename):
        capsys.readouterr()
        assert main([
            "validate-ghost-key",
            "--master-verifying-key-file", str(master_dir / "master_verifying_key.pem"),
            "--ghost-certificate-file", str(ghost_out / filename),
        ]) == 0
        assert "tier=20;currency=usd" in capsys.readouterr().out

    def test_validate_garbage(self, master_dir, tmp_path, capsys):
        garbage = tmp_path / "garbage.pem"
        garbage.write_text("not a certificate")

        assert main([
            "validate-ghost-key",
            "--master-verifying-key-file", str(master_dir / "master_verifying_key.pem"),
            "--ghost-certificate-file", str(garbage),
        ]) == 1
        assert "Error" in capsys.readouterr().err

    def test_missing_input_file(self, master_dir, tmp_path, capsys):
        assert main([
            "validate-ghost-key",
            "--master-verifying-key-file", str(master_dir / "master_verifying_key.pem"),
            "--ghost-certificate-file", str(tmp_path / "missing.pem"),
        ]) == 1
        assert "Error" in capsys.readouterr().err


class TestMessageCommands:
    """sign-message and verify-signature."""

    def sign(self, key_file, signature_file, message="hello") -> int:
        return main([
            "sign-message",
            "--signing-key-file", str(key_file),
            "--message", message,
            "--output-file", str(signature_file),
        ])

    def verify(self, verifying_file, signature_file, message="hello", master=None) -> int:
        args = [
            "verify-signature",
            "--verifying-key-file", str(verifying_file),
            "--message", message,
            "--signature-file", str(signature_file),
        ]
        if master is not None:
            args += ["--master-verifying-key-file", str(master)]
        return main(args)

    def test_ghost_key_signature(self, master_dir, ghost_out, tmp_path):
        sig = tmp_path / "message.sig"

        assert self.sign(ghost_out / "ghost_key.pem", sig) == 0
        assert armor.labels(sig.read_text()) == [armor.SIGNATURE]
        assert self.verify(
            ghost_out / "ghostkey_certificate.pem", sig, master=master_dir / "master_verifying_key.pem"
        ) == 0

    def test_tampered_message(self, ghost_out, tmp_path, capsys):
        sig = tmp_path / "message.sig"
        self.sign(ghost_out / "ghost_key.pem", sig)

        assert self.verify(ghost_out / "ghostkey_certificate.pem", sig, message="hellO") == 1
        assert "Error" in capsys.readouterr().err

    def test_master_key_signature(self, master_dir, tmp_path):
        sig = tmp_path / "message.sig"
        assert self.sign(master_dir / "master_signing_key.pem", sig) == 0
        assert self.verify(master_dir / "master_verifying_key.pem", sig) == 0

    def test_delegate_key_signature(self, master_dir, delegate_out, tmp_path):
        sig = tmp_path / "message.sig"
        assert self.sign(delegate_out / "delegate_signing_key.pem", sig) == 0
        assert self.verify(
            delegate_out / "delegate_certificate.pem", sig, master=master_dir / "master_verifying_key.pem"
        ) == 0

    def test_certificate_from_other_master(self, tmp_path, ghost_out):
        other = tmp_path / "other-master"
        main(["generate-master-key", "--output-dir", str(other)])
        sig = tmp_path / "message.sig"
        self.sign(ghost_out / "ghost_key.pem", sig)

        assert self.verify(
            ghost_out / "ghostkey_certificate.pem", sig, master=other / "master_verifying_key.pem"
        ) == 1

    def test_message_file(self, master_dir, tmp_path):
        message = tmp_path / "message.bin"
        message.write_bytes(b"\x00\x01binary message")
        sig = tmp_path / "message.sig"

        assert main([
            "sign-message",
            "--signing-key-file", str(master_dir / "master_signing_key.pem"),
            "--message-file", str(message),
            "--output-file", str(sig),
        ]) == 0
        assert main([
            "verify-signature",
            "--verifying-key-file", str(master_dir / "master_verifying_key.pem"),
            "--message-file", str(message),
            "--signature-file", str(sig),
        ]) == 0

    def test_signature_to_stdout(self, master_dir, capsys):
        capsys.readouterr()
        assert main([
            "sign-message",
            "--signing-key-file", str(master_dir / "master_signing_key.pem"),
            "--message", "hello",
        ]) == 0
        assert armor.labels(capsys.readouterr().out) == [armor.SIGNATURE]

    def test_insecure_key_permissions(self, ghost_out, tmp_path, capsys):
        os.chmod(ghost_out / "ghost_key.pem", 0o644)
        sig = tmp_path / "message.sig"

        assert self.sign(ghost_out / "ghost_key.pem", sig) == 1
        assert "--ignore-permissions" in capsys.readouterr().err
        assert main([
            "sign-message",
            "--signing-key-file", str(ghost_out / "ghost_key.pem"),
            "--message", "hello",
            "--output-file", str(sig),
            "--ignore-permissions",
        ]) == 0


class TestMiscCommands:
    """export-jwk, show-config and the bare invocation."""

    def test_export_jwk(self, master_dir, capsys):
        capsys.readouterr()
        assert main(["export-jwk", "--verifying-key-file", str(master_dir / "master_verifying_key.pem")]) == 0

        exported = json.loads(capsys.readouterr().out)
        assert exported["kty"] == "EC"
        assert exported["crv"] == "P-256"

    def test_show_config(self, capsys):
        assert main(["show-config"]) == 0
        assert "NONCE_SIZE" in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()
