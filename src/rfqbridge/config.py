"""Application configuration using pydantic-settings.

Program ids, ledger ids and vault thresholds for the settlement program, plus
the off-ledger signer key used to sign RFQ orders.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/rfqbridge.db",
        description="Database connection URL for the settlement ledger",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode (SQL echo)")
    dry_run: bool = Field(
        default=True, description="Relay messages through the in-memory endpoint"
    )

    # ======================
    # Programs
    # ======================
    program_id: str = Field(
        default="EzNZw3u9WzFHPNKnrPzvN4Rju3eBvTEWve8YdqiYVqrC",
        description="Settlement program id (owner of every derived address)",
    )
    endpoint_program_id: str = Field(
        default="76y77prsiCMvXMjuoZ5VRrhG5qYBrUMYTE5WgHqgjEn6",
        description="Messaging endpoint program id",
    )
    uln_program_id: str = Field(
        default="7a4WjyR8VZ7yZz5XJAKm39BUGn5iT9CKcv2pmG9tdXVH",
        description="ULN message library program id",
    )
    executor_program_id: str = Field(
        default="6doghB248px58JSSwG4qejQ46kFMW4AMj7vzJnWZHNZn",
        description="Executor program id used by the ULN library",
    )
    dvn_program_id: Optional[str] = Field(
        default=None, description="DVN program id (defaults to the executor program)"
    )
    price_feed_program_id: Optional[str] = Field(
        default=None, description="Price feed program id (defaults to the executor program)"
    )

    # ======================
    # Ledger ids
    # ======================
    solana_chain_id: int = Field(default=40168, description="Endpoint id of this ledger")
    default_chain_id: int = Field(
        default=40267, description="Endpoint id deposits are reported to"
    )

    # ======================
    # Vaults
    # ======================
    native_vault_min_threshold: int = Field(
        default=900_000, description="Lamports a native vault always keeps (rent exemption)"
    )
    default_airdrop_amount: int = Field(
        default=10_000, description="Lamports airdropped when a message requests it"
    )
    queue_removal_penalty_bps: int = Field(
        default=0,
        ge=0,
        le=10_000,
        description="Share of a removed pending swap diverted to the airdrop vault (bps)",
    )
    completed_swap_ttl_seconds: int = Field(
        default=0,
        ge=0,
        description="Seconds added to now when a finalized swap records its expiry",
    )
    pending_swap_rent: int = Field(
        default=0,
        ge=0,
        description="Lamports the airdrop vault locks in each pending swap entry",
    )

    # ======================
    # RPC
    # ======================
    rpc_url: str = Field(
        default="https://api.devnet.solana.com", description="Solana JSON-RPC URL"
    )
    rpc_timeout: float = Field(default=30.0, description="RPC request timeout in seconds")

    # ======================
    # Signing
    # ======================
    swap_signer_private_key: Optional[str] = Field(
        default=None,
        description="secp256k1 key (hex) that signs orders, optionally Fernet-encrypted",
    )
    master_key: Optional[str] = Field(
        default=None, description="Fernet key used to decrypt the signer key"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_signer(self) -> bool:
        """Check if an order signing key is configured."""
        return bool(self.swap_signer_private_key)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "database_url": self._redact_url(self.database_url),
            "programs": {
                "program": self.program_id,
                "endpoint": self.endpoint_program_id,
                "uln": self.uln_program_id,
                "executor": self.executor_program_id,
                "dvn": self.dvn_program_id or "(executor)",
                "price_feed": self.price_feed_program_id or "(executor)",
            },
            "chains": {
                "local": self.solana_chain_id,
                "default": self.default_chain_id,
            },
            "vaults": {
                "native_min_threshold": self.native_vault_min_threshold,
                "airdrop_amount": self.default_airdrop_amount,
                "removal_penalty_bps": self.queue_removal_penalty_bps,
            },
            "rpc_url": self.rpc_url,
            "swap_signer_private_key": "***" if self.swap_signer_private_key else "(not set)",
            "master_key": "***" if self.master_key else "(not set)",
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
