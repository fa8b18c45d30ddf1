"""
Shared pytest fixtures for Ghostkey tests.
"""

import base64
from pathlib import Path
from typing import Tuple

import pytest

from ghostkey import armor
from ghostkey.config import GatewayConfig
from ghostkey.delegate import issue_delegate_certificate
from ghostkey.encoding import DelegateCertificate
from ghostkey.gateway import IssuanceGateway, MemoryPaymentLedger
from ghostkey.keys import KeyPair, generate_keypair
from ghostkey.storage import write_artifact

TIER_20_INFO = "tier=20;currency=usd"


@pytest.fixture
def master_keypair() -> KeyPair:
    """Generate a fresh master keypair."""
    return generate_keypair()


@pytest.fixture
def delegate_keypair() -> KeyPair:
    """Generate a fresh delegate keypair."""
    return generate_keypair()


@pytest.fixture
def delegate_certificate(master_keypair: KeyPair, delegate_keypair: KeyPair) -> DelegateCertificate:
    """A delegate certificate for the $20 tier, signed by the master key."""
    return issue_delegate_certificate(
        master_keypair.signing_key, delegate_keypair.verifying_key, TIER_20_INFO
    )


@pytest.fixture
def master_verifying_key_armored(master_keypair: KeyPair) -> str:
    return armor.encode(master_keypair.verifying_key_bytes(), armor.MASTER_VERIFYING_KEY)


def provision_tier(
    delegate_dir: Path, tier: int, certificate: DelegateCertificate, delegate: KeyPair
) -> Tuple[Path, Path]:
    """Write one tier's delegate files the way the gateway expects them."""
    config = GatewayConfig(delegate_dir=delegate_dir)
    certificate_path = write_artifact(
        config.certificate_path(tier),
        armor.encode(certificate.to_bytes(), armor.DELEGATE_CERTIFICATE),
    )
    signing_key_path = write_artifact(
        config.signing_key_path(tier),
        armor.encode(delegate.signing_key_bytes(), armor.DELEGATE_SIGNING_KEY),
        private=True,
    )
    return certificate_path, signing_key_path


@pytest.fixture
def delegate_dir(tmp_path: Path, delegate_certificate, delegate_keypair) -> Path:
    """A delegate directory provisioned for tier 20."""
    directory = tmp_path / "delegates"
    provision_tier(directory, 20, delegate_certificate, delegate_keypair)
    return directory


@pytest.fixture
def payments() -> MemoryPaymentLedger:
    """Create an in-memory payment ledger."""
    return MemoryPaymentLedger()


@pytest.fixture
def gateway(delegate_dir: Path, payments: MemoryPaymentLedger) -> IssuanceGateway:
    """Create a gateway over the tier 20 delegate directory."""
    return IssuanceGateway(GatewayConfig(delegate_dir=delegate_dir), payments=payments)


@pytest.fixture
def client_key() -> str:
    """Base64 client key material (an uncompressed point from a fresh key)."""
    return base64.b64encode(generate_keypair().verifying_key_bytes()).decode("ascii")


@pytest.fixture
def tier_info() -> str:
    """Info string bound into the tier 20 delegate certificate."""
    return TIER_20_INFO


@pytest.fixture
def provision():
    """Expose provision_tier() to tests that lay out extra tiers."""
    return provision_tier
