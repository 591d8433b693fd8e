from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from ..errors import IdentityFetchFailed
from ..models import NormalizedIdentity
from .base import ProviderAdapter, non_negative, round_half_up
from .payloads import TwitterMe, TwitterUser

logger = logging.getLogger(__name__)

_USER_FIELDS = "id,username,name,profile_image_url,public_metrics,verified,description"


def normalize_twitter(user: TwitterUser) -> NormalizedIdentity:
    metrics = user.public_metrics
    return NormalizedIdentity(
        external_id=user.id,
        username=user.username,
        display_name=user.name or user.username,
        avatar_url=user.profile_image_url,
        profile_url=f"https://twitter.com/{user.username}",
        verified=user.verified,
        metadata={
            "followersCount": metrics.followers_count,
            "followingCount": metrics.following_count,
            "tweetCount": metrics.tweet_count,
            "listedCount": metrics.listed_count,
            "description": user.description,
        },
    )


class TwitterAdapter(ProviderAdapter):
    """Family C: PKCE protected flow, single profile read."""

    name = "twitter"
    display_name = "Twitter"
    score_cap = 500
    uses_pkce = True

    def _token_request(
        self, code: str, proof_secret: Optional[str]
    ) -> tuple[Dict[str, str], Optional[httpx.BasicAuth]]:
        data = {
            "client_id": self._config.client_id,
            "code": code,
            "redirect_uri": self._config.redirect_uri,
            "grant_type": "authorization_code",
        }
        if proof_secret:
            data["code_verifier"] = proof_secret
        else:
            logger.error(
                "Exchanging a twitter code without a PKCE verifier, the provider will reject it",
                extra={"provider": self.name},
            )
        auth = None
        if self._config.client_secret:
            auth = httpx.BasicAuth(self._config.client_id, self._config.client_secret)
        return data, auth

    async def fetch_normalized_identity(self, access_token: str) -> NormalizedIdentity:
        url = f"{self._url('/users/me')}?user.fields={_USER_FIELDS}"
        payload = await self._get_json(url, access_token)
        try:
            me = TwitterMe.model_validate(payload)
        except ValidationError as exc:
            raise IdentityFetchFailed(self.display_name, 200, "unexpected profile payload") from exc
        return normalize_twitter(me.data)

    def compute_reputation_points(self, identity: NormalizedIdentity) -> int:
        metadata = identity.metadata
        followers = non_negative(metadata.get("followersCount"))
        following = non_negative(metadata.get("followingCount")) or 1.0
        score = 0.0
        if identity.verified:
            score += 150
        score += min(followers * 0.5, 200)
        score += min(non_negative(metadata.get("tweetCount")) * 0.1, 100)
        ratio = followers / following
        if ratio > 1:
            score += min(ratio * 10, 100)
        return round_half_up(min(score, self.score_cap))

    def account_fields(self, identity: NormalizedIdentity) -> Dict[str, Any]:
        return {"twitter_username": identity.username, "is_verified_twitter": True}


__all__ = ["TwitterAdapter", "normalize_twitter"]
