"""
Configuration Module for the Solana transaction sender

Configuration management using Pydantic v2 BaseSettings.
All settings are loaded from environment variables (or a .env file) with
validation and type safety.

The broadcast engine never reads settings on its own: the CLI resolves them
once and hands the relevant sections to the gateway, race and supervisor.

Usage:
    from solana_tx_sender.config import get_settings
    settings = get_settings()
    print(settings.broadcast.resend_interval_ms)
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import (
    AnyHttpUrl,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from solders.transaction_status import TransactionConfirmationStatus


# =============================================================================
# ENUMS
# =============================================================================

class LogLevel(str, Enum):
    """Logging level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Network(str, Enum):
    """Solana network options."""
    MAINNET = "mainnet-beta"
    DEVNET = "devnet"
    TESTNET = "testnet"


class ConfirmationLevel(str, Enum):
    """Commitment level a transaction must reach to count as confirmed."""
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @property
    def rank(self) -> int:
        return _CONFIRMATION_RANK[self]

    @classmethod
    def from_status(
        cls, status: Optional[TransactionConfirmationStatus]
    ) -> Optional["ConfirmationLevel"]:
        """Map a signature status reported by the node onto a level."""
        for observed, level in _STATUS_LEVELS:
            if status == observed:
                return level
        return None

    def is_reached_by(self, status: Optional[TransactionConfirmationStatus]) -> bool:
        level = ConfirmationLevel.from_status(status)
        return level is not None and level.rank >= self.rank


_CONFIRMATION_RANK = {
    ConfirmationLevel.PROCESSED: 0,
    ConfirmationLevel.CONFIRMED: 1,
    ConfirmationLevel.FINALIZED: 2,
}

_STATUS_LEVELS = (
    (TransactionConfirmationStatus.Processed, ConfirmationLevel.PROCESSED),
    (TransactionConfirmationStatus.Confirmed, ConfirmationLevel.CONFIRMED),
    (TransactionConfirmationStatus.Finalized, ConfirmationLevel.FINALIZED),
)


# =============================================================================
# BASE CONFIGURATION
# =============================================================================

class BaseConfig(BaseSettings):
    """Base configuration with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


# =============================================================================
# SOLANA RPC CONFIGURATION
# =============================================================================

class SolanaRPCSettings(BaseConfig):
    """Solana RPC connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SOLANA_",
        env_file=".env",
        extra="ignore",
    )

    network: Network = Field(
        default=Network.MAINNET,
        description="Solana network to connect to",
    )

    rpc_url: AnyHttpUrl = Field(
        default="https://api.mainnet-beta.solana.com",
        description="RPC endpoint URL",
    )

    commitment: ConfirmationLevel = Field(
        default=ConfirmationLevel.CONFIRMED,
        description="Commitment used for reads and simulation",
    )

    timeout: int = Field(
        default=30,
        ge=5,
        le=120,
        description="RPC request timeout in seconds",
    )

    explorer_host: str = Field(
        default="solana.com",
        description="Explorer host used in https://explorer.<host>/tx/<signature>",
    )

    @property
    def endpoint(self) -> str:
        return str(self.rpc_url).rstrip("/")


# =============================================================================
# BROADCAST ENGINE CONFIGURATION
# =============================================================================

class BroadcastSettings(BaseConfig):
    """Resend loop and confirmation watch configuration."""

    model_config = SettingsConfigDict(
        env_prefix="BROADCAST_",
        env_file=".env",
        extra="ignore",
    )

    resend_interval_ms: int = Field(
        default=2000,
        ge=10,
        le=60000,
        description="Interval between retransmissions of an unconfirmed transaction",
    )

    confirmation_level: ConfirmationLevel = Field(
        default=ConfirmationLevel.CONFIRMED,
        description="Commitment level passed to the confirmation watch",
    )

    skip_preflight_on_resend: bool = Field(
        default=True,
        description="Bypass RPC-side simulation on resends",
    )

    status_poll_interval_ms: int = Field(
        default=400,
        ge=10,
        le=10000,
        description="Signature status polling interval of the confirmation watch",
    )

    max_status_poll_failures: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Consecutive status poll failures before the watch gives up",
    )

    max_resubscribe_attempts: int = Field(
        default=0,
        ge=0,
        le=10,
        description="Replacement watches allowed after a watch error (0 = none)",
    )

    timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Wall-clock deadline for the whole race (unset = expiry height only)",
    )

    @field_validator("timeout_seconds", mode="before")
    @classmethod
    def empty_timeout(cls, v: Any) -> Any:
        if v == "":
            return None
        return v

    @property
    def resend_interval(self) -> float:
        return self.resend_interval_ms / 1000

    @property
    def status_poll_interval(self) -> float:
        return self.status_poll_interval_ms / 1000


# =============================================================================
# WALLET CONFIGURATION
# =============================================================================

class WalletSettings(BaseConfig):
    """Signing key configuration."""

    model_config = SettingsConfigDict(
        env_prefix="WALLET_",
        env_file=".env",
        extra="ignore",
    )

    private_key: Optional[SecretStr] = Field(
        default=None,
        description="Base58 encoded 64-byte secret key",
    )


# =============================================================================
# JUPITER CONFIGURATION
# =============================================================================

class JupiterSettings(BaseConfig):
    """Jupiter swap API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="JUPITER_",
        env_file=".env",
        extra="ignore",
    )

    api_url: AnyHttpUrl = Field(
        default="https://quote-api.jup.ag/v6",
        description="Jupiter API base URL",
    )

    input_mint: str = Field(
        default="So11111111111111111111111111111111111111112",
        description="Mint swapped from (SOL)",
    )

    output_mint: str = Field(
        default="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
        description="Mint swapped to (USDC)",
    )

    amount: int = Field(
        default=1000,
        gt=0,
        description="Input amount in base units",
    )

    slippage_bps: int = Field(
        default=50,
        ge=1,
        le=5000,
        description="Slippage tolerance in basis points",
    )

    priority_fee_lamports: int = Field(
        default=1,
        ge=0,
        le=10000000,
        description="Priority fee in lamports",
    )

    timeout: int = Field(
        default=30,
        ge=5,
        le=120,
        description="API request timeout in seconds",
    )

    @property
    def base_url(self) -> str:
        return str(self.api_url).rstrip("/")

    @model_validator(mode="after")
    def validate_mints(self) -> "JupiterSettings":
        """Reject a swap from a mint into itself."""
        if self.input_mint == self.output_mint:
            raise ValueError("input_mint and output_mint must differ")
        return self


# =============================================================================
# SELF TRANSFER CONFIGURATION
# =============================================================================

class TransferSettings(BaseConfig):
    """Self SOL transfer configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TRANSFER_",
        env_file=".env",
        extra="ignore",
    )

    lamports: int = Field(
        default=5000,
        gt=0,
        description="Lamports moved by the self transfer",
    )

    compute_unit_limit: int = Field(
        default=500,
        ge=150,
        le=1_400_000,
        description="Compute unit budget",
    )

    priority_fee_lamports: int = Field(
        default=1,
        ge=0,
        le=1000,
        description="Priority fee; price is 1_000_000 * this many micro-lamports per CU",
    )

    @property
    def compute_unit_price(self) -> int:
        return 1_000_000 * self.priority_fee_lamports


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

class LoggingSettings(BaseConfig):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )

    format: str = Field(
        default="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        description="Log message format",
    )

    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log date format",
    )

    file_enabled: bool = Field(
        default=False,
        description="Enable file logging",
    )

    file_path: Path = Field(
        default=Path("logs/sender.log"),
        description="Log file path",
    )

    file_max_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10 MB
        ge=1024,
        description="Max log file size in bytes",
    )

    file_backup_count: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Number of backup log files",
    )


# =============================================================================
# APPLICATION SETTINGS (MAIN)
# =============================================================================

class Settings(BaseConfig):
    """
    Main application settings aggregating all configuration sections.

    Usage:
        settings = get_settings()
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(
        default="Solana Transaction Sender",
        description="Application name",
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )

    solana: SolanaRPCSettings = Field(default_factory=SolanaRPCSettings)
    broadcast: BroadcastSettings = Field(default_factory=BroadcastSettings)
    wallet: WalletSettings = Field(default_factory=WalletSettings)
    jupiter: JupiterSettings = Field(default_factory=JupiterSettings)
    transfer: TransferSettings = Field(default_factory=TransferSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    def mask_secrets(self) -> dict[str, Any]:
        """
        Return settings dict with sensitive values masked.
        Safe for logging and debugging.
        """
        def mask_value(v: Any) -> Any:
            if isinstance(v, SecretStr):
                secret = v.get_secret_value()
                if len(secret) > 8:
                    return f"{secret[:4]}...{secret[-4:]}"
                return "***"
            elif isinstance(v, dict):
                return {k: mask_value(val) for k, val in v.items()}
            elif isinstance(v, (list, set, tuple)):
                return type(v)(mask_value(item) for item in v)
            return v

        return mask_value(self.model_dump())


# =============================================================================
# SINGLETON & CACHING
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Cached settings singleton
    """
    return Settings()


# =============================================================================
# CLI UTILITIES
# =============================================================================

def print_settings_summary(mask_secrets: bool = True) -> None:
    """Print a summary of current settings."""
    settings = get_settings()

    print("=" * 60)
    print(f"  {settings.app_name} v{settings.app_version}")
    print("=" * 60)

    data = settings.mask_secrets() if mask_secrets else settings.model_dump()

    sections = [
        ("Solana RPC", "solana"),
        ("Broadcast", "broadcast"),
        ("Wallet", "wallet"),
        ("Jupiter", "jupiter"),
        ("Self Transfer", "transfer"),
        ("Logging", "logging"),
    ]

    for title, key in sections:
        print(f"\n{title}:")
        print("-" * 40)
        for k, v in data.get(key, {}).items():
            print(f"  {k}: {v}")


def validate_settings() -> tuple[bool, list[str]]:
    """
    Validate all settings and return status with any errors.

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors = []

    try:
        settings = Settings()

        if settings.wallet.private_key is None:
            errors.append("WALLET_PRIVATE_KEY is required to sign transactions")

        broadcast = settings.broadcast
        if broadcast.status_poll_interval_ms > broadcast.resend_interval_ms:
            errors.append(
                "BROADCAST_STATUS_POLL_INTERVAL_MS should not exceed "
                "BROADCAST_RESEND_INTERVAL_MS"
            )

    except Exception as e:
        errors.append(f"Settings validation failed: {str(e)}")

    return len(errors) == 0, errors


def generate_env_template() -> str:
    """Generate a .env template with all available settings."""
    template = """# =============================================================================
# Solana Transaction Sender Configuration
# Copy this file to .env and fill in your values
# =============================================================================

# -----------------------------------------------------------------------------
# Solana RPC Configuration
# -----------------------------------------------------------------------------
SOLANA_NETWORK=mainnet-beta
SOLANA_RPC_URL=https://api.mainnet-beta.solana.com
SOLANA_COMMITMENT=confirmed
SOLANA_TIMEOUT=30
SOLANA_EXPLORER_HOST=solana.com

# -----------------------------------------------------------------------------
# Broadcast Engine Configuration
# -----------------------------------------------------------------------------
BROADCAST_RESEND_INTERVAL_MS=2000
BROADCAST_CONFIRMATION_LEVEL=confirmed
BROADCAST_SKIP_PREFLIGHT_ON_RESEND=true
BROADCAST_STATUS_POLL_INTERVAL_MS=400
BROADCAST_MAX_STATUS_POLL_FAILURES=5
BROADCAST_MAX_RESUBSCRIBE_ATTEMPTS=0
BROADCAST_TIMEOUT_SECONDS=

# -----------------------------------------------------------------------------
# Wallet Configuration
# -----------------------------------------------------------------------------
WALLET_PRIVATE_KEY=your_base58_private_key_here

# -----------------------------------------------------------------------------
# Jupiter Configuration
# -----------------------------------------------------------------------------
JUPITER_API_URL=https://quote-api.jup.ag/v6
JUPITER_INPUT_MINT=So11111111111111111111111111111111111111112
JUPITER_OUTPUT_MINT=EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v
JUPITER_AMOUNT=1000
JUPITER_SLIPPAGE_BPS=50
JUPITER_PRIORITY_FEE_LAMPORTS=1
JUPITER_TIMEOUT=30

# -----------------------------------------------------------------------------
# Self Transfer Configuration
# -----------------------------------------------------------------------------
TRANSFER_LAMPORTS=5000
TRANSFER_COMPUTE_UNIT_LIMIT=500
TRANSFER_PRIORITY_FEE_LAMPORTS=1

# -----------------------------------------------------------------------------
# Logging Configuration
# -----------------------------------------------------------------------------
LOG_LEVEL=INFO
LOG_FILE_ENABLED=false
LOG_FILE_PATH=logs/sender.log
LOG_FILE_MAX_BYTES=10485760
LOG_FILE_BACKUP_COUNT=5
"""
    return template


__all__ = [
    "Settings",
    "SolanaRPCSettings",
    "BroadcastSettings",
    "WalletSettings",
    "JupiterSettings",
    "TransferSettings",
    "LoggingSettings",
    "LogLevel",
    "Network",
    "ConfirmationLevel",
    "get_settings",
    "validate_settings",
    "print_settings_summary",
    "generate_env_template",
]
