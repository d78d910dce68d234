"""Application configuration via pydantic-settings.

Values come from the environment or a ``.env`` file and are validated once at
startup, so a bad policy name or an empty escrow address stops the process
before it serves a request.

Usage:
    from nft_escrow.config import get_settings
    settings = get_settings()
    print(settings.escrow_deposit_policy)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nft_escrow.domain.enums import CancelPolicy, DepositPolicy


class Settings(BaseSettings):
    """Central configuration for the NFT escrow."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database ---
    database_url: str = Field(
        default="sqlite+aiosqlite:///./nft_escrow.db",
        description="SQLAlchemy async URL; postgresql+asyncpg:// in production",
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Asset registry ---
    registry_mode: Literal["simulated", "http"] = Field(
        default="simulated",
        description="'simulated' keeps ownership in memory; 'http' talks to registry_url",
    )
    registry_url: str = "http://localhost:8545"
    registry_timeout_seconds: float = Field(default=10.0, gt=0)

    # --- Escrow policy ---
    escrow_address: str = Field(
        default="0x" + "E5C0" * 10,
        description="Identity under which the escrow holds deposited items",
    )
    escrow_deposit_policy: DepositPolicy = DepositPolicy.EXPLICIT
    escrow_cancel_policy: CancelPolicy = CancelPolicy.EITHER_PARTY
    escrow_auto_settle: bool = Field(
        default=True,
        description="Settle as soon as a trade becomes eligible instead of waiting for settle()",
    )

    @field_validator("escrow_address")
    @classmethod
    def _escrow_address_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("escrow_address must not be empty")
        return value

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
