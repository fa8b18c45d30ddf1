# ghostkey/config.py
"""
Centralized configuration for Ghostkey.

Defaults are read once from environment variables at import time. Components
never consult the environment themselves: the gateway receives an explicit
GatewayConfig at construction.

Usage:
    from ghostkey.config import GatewayConfig

    gateway = IssuanceGateway(GatewayConfig(delegate_dir=Path("/srv/delegates")))

Environment Variables:
    GHOSTKEY_DELEGATE_DIR: Directory holding per-tier delegate files
        (default: ~/.config/ghostkey/delegates)
    GHOSTKEY_NONCE_SIZE: Issuance nonce length in bytes (default: 32)
    GHOSTKEY_DEFAULT_TIERS: Comma-separated tiers provisioned by
        generate-delegate-keys (default: 5,20,50,100)
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Tuple

# =============================================================================
# Storage Configuration
# =============================================================================

DEFAULT_DELEGATE_DIR: Final[str] = os.getenv(
    "GHOSTKEY_DELEGATE_DIR",
    os.path.join(os.path.expanduser("~"), ".config", "ghostkey", "delegates"),
)

DELEGATE_CERTIFICATE_TEMPLATE: Final[str] = "delegate_certificate_{tier}.pem"
DELEGATE_SIGNING_KEY_TEMPLATE: Final[str] = "delegate_signing_key_{tier}.pem"

# =============================================================================
# Encoding Configuration
# =============================================================================

ARMOR_LINE_WIDTH: Final[int] = 64

GHOSTKEY_CERTIFICATE_VERSION: Final[int] = 1

# =============================================================================
# Issuance Configuration
# =============================================================================

NONCE_SIZE: Final[int] = int(os.getenv("GHOSTKEY_NONCE_SIZE", "32"))

# Smallest currency units per tier step (cents -> dollars)
TIER_DIVISOR: Final[int] = 100

DEFAULT_TIERS: Final[Tuple[int, ...]] = tuple(
    int(t) for t in os.getenv("GHOSTKEY_DEFAULT_TIERS", "5,20,50,100").split(",") if t.strip()
)


@dataclass(frozen=True)
class GatewayConfig:
    """
    Configuration for the issuance gateway.

    Attributes:
        delegate_dir: Directory containing delegate_certificate_<tier>.pem and
            delegate_signing_key_<tier>.pem files.
        nonce_size: Number of random bytes bound into each issuance.
        ignore_permissions: Skip the private key file permission check.
    """

    delegate_dir: Path
    nonce_size: int = NONCE_SIZE
    ignore_permissions: bool = False

    def __post_init__(self):
        if self.nonce_size < 16:
            raise ValueError("nonce_size must be at least 16 bytes")

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """Build a config from the environment-derived defaults."""
        return cls(delegate_dir=Path(DEFAULT_DELEGATE_DIR))

    def certificate_path(self, tier: int) -> Path:
        return self.delegate_dir / DELEGATE_CERTIFICATE_TEMPLATE.format(tier=tier)

    def signing_key_path(self, tier: int) -> Path:
        return self.delegate_dir / DELEGATE_SIGNING_KEY_TEMPLATE.format(tier=tier)


# =============================================================================
# Configuration Summary (for debugging)
# =============================================================================


def print_config() -> None:
    """Print current configuration (useful for debugging)."""
    print("Ghostkey Configuration:")
    print(f"  DEFAULT_DELEGATE_DIR: {DEFAULT_DELEGATE_DIR}")
    print(f"  ARMOR_LINE_WIDTH:     {ARMOR_LINE_WIDTH}")
    print(f"  NONCE_SIZE:           {NONCE_SIZE}")
    print(f"  DEFAULT_TIERS:        {', '.join(str(t) for t in DEFAULT_TIERS)}")


if __name__ == "__main__":
    print_config()
