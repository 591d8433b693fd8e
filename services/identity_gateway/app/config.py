"""Environment configuration for the identity gateway."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from libs.env import get_database_url, get_redis_url


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Static OAuth wiring for one identity provider."""

    client_id: str
    client_secret: str
    redirect_uri: str
    scope: str
    auth_url: str
    token_url: str
    api_base_url: str


class Settings(BaseSettings):
    """Settings loaded from ``IDENTITY_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    service_name: str = Field("identity-gateway", description="Service identifier used for logging")
    public_base_url: str = Field(
        "http://localhost:8000",
        description="Externally reachable base URL used to build OAuth redirect URIs",
    )
    verify_page_url: str = Field(
        "http://localhost:3000/verify",
        description="Frontend page receiving the outcome of a verification",
    )

    github_client_id: str = ""
    github_client_secret: str = Field("", repr=False)
    github_scope: str = "read:user user:email"
    github_auth_url: str = "https://github.com/login/oauth/authorize"
    github_token_url: str = "https://github.com/login/oauth/access_token"
    github_api_base_url: str = "https://api.github.com"

    discord_client_id: str = ""
    discord_client_secret: str = Field("", repr=False)
    discord_scope: str = "identify email guilds"
    discord_auth_url: str = "https://discord.com/api/oauth2/authorize"
    discord_token_url: str = "https://discord.com/api/oauth2/token"
    discord_api_base_url: str = "https://discord.com/api/v10"

    twitter_client_id: str = ""
    twitter_client_secret: str = Field("", repr=False)
    twitter_scope: str = "tweet.read users.read offline.access"
    twitter_auth_url: str = "https://twitter.com/i/oauth2/authorize"
    twitter_token_url: str = "https://api.twitter.com/2/oauth2/token"
    twitter_api_base_url: str = "https://api.twitter.com/2"

    correlation_backend: Literal["memory", "redis"] = Field(
        "memory",
        description="Where pending authorization attempts are remembered (memory|redis)",
    )
    redis_url: str = Field(default_factory=lambda: get_redis_url(env_var="IDENTITY_REDIS_URL"))
    state_ttl_seconds: float = 600.0
    strict_state_validation: bool = Field(
        True,
        description="Reject callbacks whose nonce was not issued by this gateway",
    )
    embed_proof_secret: bool = Field(
        False,
        description="Carry the PKCE verifier inside the state token for stateless deployments",
    )
    http_timeout_seconds: float = 10.0
    database_url: str = Field(
        default_factory=lambda: get_database_url(env_var="IDENTITY_DATABASE_URL")
    )

    def redirect_uri(self, provider: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/auth/{provider}/callback"

    def provider_configs(self) -> dict[str, ProviderConfig]:
        configs: dict[str, ProviderConfig] = {}
        for name in ("github", "discord", "twitter"):
            configs[name] = ProviderConfig(
                client_id=getattr(self, f"{name}_client_id"),
                client_secret=getattr(self, f"{name}_client_secret"),
                redirect_uri=self.redirect_uri(name),
                scope=getattr(self, f"{name}_scope"),
                auth_url=getattr(self, f"{name}_auth_url"),
                token_url=getattr(self, f"{name}_token_url"),
                api_base_url=getattr(self, f"{name}_api_base_url"),
            )
        return configs


@lru_cache
def get_settings() -> Settings:
    return Settings()


__all__ = ["ProviderConfig", "Settings", "get_settings"]
