"""Raw response shapes returned by the provider APIs.

Only the fields the gateway reads are declared; everything else in the
upstream payload is ignored.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ProviderPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class TokenResponse(_ProviderPayload):
    access_token: str
    token_type: Optional[str] = None
    scope: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None


class GitHubUser(_ProviderPayload):
    id: int
    login: str
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    html_url: Optional[str] = None
    bio: Optional[str] = None
    public_repos: int = 0
    followers: int = 0
    following: int = 0
    created_at: Optional[datetime] = None


class GitHubEmail(_ProviderPayload):
    email: str
    primary: bool = False
    verified: bool = False


class DiscordUser(_ProviderPayload):
    id: str
    username: str
    global_name: Optional[str] = None
    discriminator: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None
    verified: bool = False
    premium_type: Optional[int] = None
    mfa_enabled: bool = False


class DiscordGuild(_ProviderPayload):
    id: str
    name: Optional[str] = None


class TwitterPublicMetrics(_ProviderPayload):
    followers_count: int = 0
    following_count: int = 0
    tweet_count: int = 0
    listed_count: int = 0


class TwitterUser(_ProviderPayload):
    id: str
    username: str
    name: Optional[str] = None
    profile_image_url: Optional[str] = None
    description: Optional[str] = None
    verified: bool = False
    public_metrics: TwitterPublicMetrics = Field(default_factory=TwitterPublicMetrics)


class TwitterMe(_ProviderPayload):
    data: TwitterUser


GitHubEmails = List[GitHubEmail]
DiscordGuilds = List[DiscordGuild]


__all__ = [
    "DiscordGuild",
    "DiscordGuilds",
    "DiscordUser",
    "GitHubEmail",
    "GitHubEmails",
    "GitHubUser",
    "TokenResponse",
    "TwitterMe",
    "TwitterPublicMetrics",
    "TwitterUser",
]
