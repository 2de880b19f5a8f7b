"""
CCA tracker configuration

- Settings: environment-driven configuration (Pydantic)
- validate_sync_config(): pre-flight check run before any chain or storage call
"""

from __future__ import annotations
from pydantic_settings import BaseSettings
from typing import Optional, Dict, Any


# =========================
# Environment-driven settings
# =========================
class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # --- DATABASE ---
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""

    # --- CHAIN RPC ---
    BASE_RPC_URL: str = ""
    MAINNET_RPC_URL: str = ""  # ENS tier is skipped when empty

    # --- TRIGGER AUTH ---
    CRON_SECRET: str = ""

    # --- AUCTION ---
    CCA_CONTRACT: str = "0x7e867b47a94df05188c08575e8B9a52F3F69c469"
    USDC_CONTRACT: str = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
    CCA_GENESIS_BLOCK: Optional[int] = None
    INITIAL_LOOKBACK_BLOCKS: int = 10000  # used only when no genesis block is set

    # --- SYNC LOOP ---
    SYNC_CHUNK_SIZE: int = 10  # Alchemy free tier getLogs limit
    SYNC_MAX_CHUNKS_PER_CALL: int = 100
    SYNC_LEASE_SECONDS: int = 300
    LEDGER_PAGE_SIZE: int = 1000

    # --- RPC RETRY / PACING ---
    RPC_MAX_RETRIES: int = 3
    RPC_RETRY_BASE_DELAY: float = 1.0
    RPC_REQUESTS_PER_SECOND: float = 20.0
    TIMESTAMP_BATCH_SIZE: int = 10
    TIMESTAMP_BATCH_DELAY: float = 0.2
    BLOCK_TIME_SECONDS: float = 2.0

    # --- ENRICHMENT ---
    ENRICH_BATCH_SIZE: int = 20
    ENRICH_PAUSE_EVERY: int = 5
    ENRICH_PAUSE_SECONDS: float = 1.0

    # --- ENV / LOGGING ---
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # --- API SERVER ---
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "allow"

    def validate_sync_config(self) -> Dict[str, Any]:
        """
        Validate the configuration required by a sync invocation.

        Returns:
            Dictionary with validation results:
            - valid: Whether a sync can run
            - errors: List of error messages
            - warnings: List of warning messages
        """
        errors = []
        warnings = []

        if not self.SUPABASE_URL:
            errors.append("Missing SUPABASE_URL")
        if not self.SUPABASE_SERVICE_ROLE_KEY:
            errors.append("Missing SUPABASE_SERVICE_ROLE_KEY")
        if not self.BASE_RPC_URL:
            errors.append("Missing BASE_RPC_URL")

        if self.SYNC_CHUNK_SIZE < 1:
            errors.append(f"SYNC_CHUNK_SIZE must be >= 1, got {self.SYNC_CHUNK_SIZE}")
        if self.SYNC_MAX_CHUNKS_PER_CALL < 1:
            errors.append(f"SYNC_MAX_CHUNKS_PER_CALL must be >= 1, got {self.SYNC_MAX_CHUNKS_PER_CALL}")

        if not self.MAINNET_RPC_URL:
            warnings.append("MAINNET_RPC_URL not set - ENS fallback lookups disabled")
        if self.CCA_GENESIS_BLOCK is None:
            warnings.append(
                f"CCA_GENESIS_BLOCK not set - first run starts {self.INITIAL_LOOKBACK_BLOCKS} blocks behind head"
            )

        return {
            "valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
        }


# Global settings instance
settings = Settings()

__all__ = ["Settings", "settings"]
