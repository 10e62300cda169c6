"""
feeshare/config.py

Configuration constants and data classes for feeshare.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from solders.keypair import Keypair

logger = logging.getLogger("feeshare.config")


# Native currency units
LAMPORTS_PER_SOL = 1_000_000_000

# RPC endpoints
MAINNET_RPC = "https://api.mainnet-beta.solana.com"
DEVNET_RPC = "https://api.devnet.solana.com"

# Basis points
BPS_DENOMINATOR = 10_000

# Fee split (must total BPS_DENOMINATOR)
AGENT_SHARE_BPS = 7000              # token creator (agent)
PLATFORM_SHARE_BPS = 3000           # platform treasury

# Distribution thresholds (lamports)
MIN_DISTRIBUTABLE_LAMPORTS = 10_000_000             # 0.01 SOL, per-call floor
AUTO_DISTRIBUTE_THRESHOLD_LAMPORTS = 1_000_000_000  # 1 SOL, scheduled runs

# Scheduler timing
TICK_INTERVAL_SECONDS = 600.0       # every 10 minutes
DISTRIBUTION_DELAY_SECONDS = 1.0    # between assets in a scheduled run
BATCH_DELAY_SECONDS = 0.5           # between mints in an explicit batch

# Transaction retry
MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 2.0
CONFIRM_POLL_SECONDS = 0.5

# Buyback
SLIPPAGE_BPS = 500                  # 5%
BUY_SETTLE_DELAY_SECONDS = 1.0
BURN_ADDRESS = "1nc1nerator11111111111111111111111111111111"

# Environment variable names
ENV_PREFIX = "FEESHARE_"
ENV_RPC_URL = ENV_PREFIX + "RPC_URL"
ENV_PLATFORM_KEY = ENV_PREFIX + "PLATFORM_WALLET_PRIVATE_KEY"
ENV_TREASURY = ENV_PREFIX + "TREASURY_WALLET"
ENV_ASSETS_FILE = ENV_PREFIX + "ASSETS_FILE"
ENV_AUDIT_LOG = ENV_PREFIX + "AUDIT_LOG"
ENV_TICK_INTERVAL = ENV_PREFIX + "TICK_INTERVAL"


class ConfigError(Exception):
    """Raised for missing or invalid configuration."""
    pass


@dataclass
class FeeShareConfig:
    """
    Complete configuration for the fee-sharing engine.

    Usage:
        config = FeeShareConfig.from_env()
        config.validate()

        keypair = config.platform_keypair()
    """

    # Chain access
    rpc_url: str = MAINNET_RPC
    platform_wallet_private_key: str = ""
    treasury_wallet: str = ""

    # Split
    agent_share_bps: int = AGENT_SHARE_BPS
    platform_share_bps: int = PLATFORM_SHARE_BPS

    # Thresholds
    min_distributable_lamports: int = MIN_DISTRIBUTABLE_LAMPORTS
    auto_distribute_threshold_lamports: int = AUTO_DISTRIBUTE_THRESHOLD_LAMPORTS

    # Timing
    tick_interval_seconds: float = TICK_INTERVAL_SECONDS
    distribution_delay_seconds: float = DISTRIBUTION_DELAY_SECONDS
    batch_delay_seconds: float = BATCH_DELAY_SECONDS

    # Retry
    max_retries: int = MAX_RETRIES
    retry_delay_seconds: float = RETRY_DELAY_SECONDS

    # Buyback
    slippage_bps: int = SLIPPAGE_BPS
    buy_settle_delay_seconds: float = BUY_SETTLE_DELAY_SECONDS
    burn_address: str = BURN_ADDRESS

    # Collaborators
    assets_file: Optional[str] = None
    audit_log_path: Optional[str] = None

    def __post_init__(self):
        self._keypair: Optional["Keypair"] = None

    @classmethod
    def from_env(cls) -> "FeeShareConfig":
        """Create configuration from FEESHARE_* environment variables."""
        interval = os.environ.get(ENV_TICK_INTERVAL)
        try:
            tick_interval = float(interval) if interval else TICK_INTERVAL_SECONDS
        except ValueError:
            raise ConfigError(f"Invalid {ENV_TICK_INTERVAL}: {interval}")

        return cls(
            rpc_url=os.environ.get(ENV_RPC_URL, MAINNET_RPC),
            platform_wallet_private_key=os.environ.get(ENV_PLATFORM_KEY, ""),
            treasury_wallet=os.environ.get(ENV_TREASURY, ""),
            assets_file=os.environ.get(ENV_ASSETS_FILE) or None,
            audit_log_path=os.environ.get(ENV_AUDIT_LOG) or None,
            tick_interval_seconds=tick_interval,
        )

    def validate(self) -> None:
        """
        Check invariants that must hold before any chain write.

        Raises:
            ConfigError: If the split, treasury or timing settings are invalid
        """
        from .rpc.client import is_valid_address

        if self.agent_share_bps < 0 or self.platform_share_bps < 0:
            raise ConfigError("Share basis points must be non-negative")
        total = self.agent_share_bps + self.platform_share_bps
        if total != BPS_DENOMINATOR:
            raise ConfigError(
                f"Agent and platform shares must sum to {BPS_DENOMINATOR} bps, got {total}"
            )
        if not is_valid_address(self.treasury_wallet):
            raise ConfigError(f"Invalid treasury wallet: {self.treasury_wallet!r}")
        if not is_valid_address(self.burn_address):
            raise ConfigError(f"Invalid burn address: {self.burn_address!r}")
        if self.max_retries < 1:
            raise ConfigError("max_retries must be at least 1")
        if self.tick_interval_seconds <= 0:
            raise ConfigError("tick_interval_seconds must be positive")
        if not 0 <= self.slippage_bps < BPS_DENOMINATOR:
            raise ConfigError(f"Invalid slippage: {self.slippage_bps} bps")

    def platform_keypair(self) -> "Keypair":
        """Load the platform signing keypair once and reuse it."""
        if self._keypair is None:
            from solders.keypair import Keypair

            if not self.platform_wallet_private_key:
                raise ConfigError(f"{ENV_PLATFORM_KEY} is not set")
            try:
                self._keypair = Keypair.from_base58_string(self.platform_wallet_private_key)
            except Exception:
                raise ConfigError("Invalid platform wallet private key")
            logger.info(f"Loaded platform wallet {self._keypair.pubkey()}")
        return self._keypair

    def to_dict(self) -> dict:
        """Non-secret view of the configuration."""
        return {
            "rpc_url": self.rpc_url,
            "treasury_wallet": self.treasury_wallet,
            "agent_share_bps": self.agent_share_bps,
            "platform_share_bps": self.platform_share_bps,
            "min_distributable_lamports": self.min_distributable_lamports,
            "auto_distribute_threshold_lamports": self.auto_distribute_threshold_lamports,
            "tick_interval_seconds": self.tick_interval_seconds,
            "max_retries": self.max_retries,
            "retry_delay_seconds": self.retry_delay_seconds,
            "slippage_bps": self.slippage_bps,
            "burn_address": self.burn_address,
        }
