from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from ..errors import IdentityFetchFailed
from ..models import NormalizedIdentity
from .base import ProviderAdapter, non_negative, round_half_up
from .payloads import DiscordGuild, DiscordUser

_GUILDS = TypeAdapter(list[DiscordGuild])


def normalize_discord(
    user: DiscordUser, guilds: Optional[Sequence[DiscordGuild]] = None
) -> NormalizedIdentity:
    avatar_url = None
    if user.avatar:
        avatar_url = f"https://cdn.discordapp.com/avatars/{user.id}/{user.avatar}.png"
    return NormalizedIdentity(
        external_id=user.id,
        username=user.username,
        display_name=user.global_name or user.username,
        email=user.email,
        avatar_url=avatar_url,
        profile_url=f"https://discord.com/users/{user.id}",
        verified=user.verified,
        metadata={
            "discriminator": user.discriminator,
            "premiumType": user.premium_type or 0,
            "mfaEnabled": user.mfa_enabled,
            "guildCount": len(guilds) if guilds is not None else 0,
        },
    )


class DiscordAdapter(ProviderAdapter):
    """Family B: plain authorization code flow with a guild membership read."""

    name = "discord"
    display_name = "Discord"
    score_cap = 400

    async def fetch_normalized_identity(self, access_token: str) -> NormalizedIdentity:
        payload = await self._get_json(self._url("/users/@me"), access_token)
        try:
            user = DiscordUser.model_validate(payload)
        except ValidationError as exc:
            raise IdentityFetchFailed(self.display_name, 200, "unexpected profile payload") from exc

        guilds: Optional[list[DiscordGuild]] = None
        raw_guilds = await self._get_optional_json(self._url("/users/@me/guilds"), access_token)
        if raw_guilds is not None:
            try:
                guilds = _GUILDS.validate_python(raw_guilds)
            except ValidationError:
                guilds = None
        return normalize_discord(user, guilds)

    def compute_reputation_points(self, identity: NormalizedIdentity) -> int:
        metadata = identity.metadata
        score = 0.0
        if identity.verified:
            score += 100
        score += min(non_negative(metadata.get("guildCount")) * 10, 200)
        if non_negative(metadata.get("premiumType")) > 0:
            score += 50
        if metadata.get("mfaEnabled") is True:
            score += 25
        return round_half_up(min(score, self.score_cap))

    def account_fields(self, identity: NormalizedIdentity) -> Dict[str, Any]:
        metadata = identity.metadata
        return {
            "discord_username": identity.username,
            "is_verified_discord": True,
            "discord_id": identity.external_id,
            "discord_email": identity.email,
            "discord_avatar": identity.avatar_url,
            "discord_profile_url": identity.profile_url,
            "discord_verified": identity.verified,
            "discord_discriminator": metadata.get("discriminator"),
            "discord_guild_count": int(non_negative(metadata.get("guildCount"))),
            "discord_premium_type": int(non_negative(metadata.get("premiumType"))),
            "discord_mfa_enabled": bool(metadata.get("mfaEnabled")),
        }


__all__ = ["DiscordAdapter", "normalize_discord"]
