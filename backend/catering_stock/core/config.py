"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly.
"""

from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - defaults to relative path for Docker, override via env for local dev
    database_url: str = "sqlite:///./data/catering_stock.db"

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True

    # Ledger
    currency_symbol: str = "₺"  # Shown in bulk movement notes
    quantity_scale: int = 4  # Decimal places kept for stock quantities
    bulk_id_bits: int = 62  # Size of generated bulk movement ids

    @field_validator("quantity_scale")
    @classmethod
    def validate_quantity_scale(cls, v: int) -> int:
        if v < 0 or v > 6:
            raise ValueError("quantity_scale must be between 0 and 6")
        return v

    @field_validator("bulk_id_bits")
    @classmethod
    def validate_bulk_id_bits(cls, v: int) -> int:
        # Ids are stored in a signed BIGINT and negated for reversal groups
        if v < 16 or v > 62:
            raise ValueError("bulk_id_bits must be between 16 and 62")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
