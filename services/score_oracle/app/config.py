"""Environment configuration for the score oracle."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from libs.env import get_database_url, get_rpc_url

from .schemas import ScoreCategory


class Settings(BaseSettings):
    """Settings loaded from ``SCORE_ORACLE_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SCORE_ORACLE_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    service_name: str = Field("score-oracle", description="Service identifier used for logging")
    rpc_url: str = Field(default_factory=lambda: get_rpc_url(env_var="SCORE_ORACLE_RPC_URL"))
    private_key: str = Field("", repr=False, description="Key signing sendRequest transactions")
    subscription_id: int = 5186
    dev_contract_address: str = "0x9103650b6Cd763F00458D634D55f4FE15A2d328e"
    social_contract_address: str = "0xfA145E64eee885Db2190580B1bF2C9373a6D78CA"
    community_contract_address: str = ""
    defi_contract_address: str = "0x5593b14639b27cdcc9e75e0e6ba4ab2319aa15f9"
    poll_interval_seconds: float = 10.0
    max_poll_attempts: int = 30
    confirmation_timeout_seconds: float = 120.0
    database_url: str = Field(
        default_factory=lambda: get_database_url(env_var="SCORE_ORACLE_DATABASE_URL")
    )

    def contract_addresses(self) -> dict[ScoreCategory, str]:
        """Configured addresses, categories without one are left out."""

        addresses: dict[ScoreCategory, str] = {}
        for category in ScoreCategory:
            address = getattr(self, f"{category.value}_contract_address")
            if address:
                addresses[category] = address
        return addresses


@lru_cache
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
