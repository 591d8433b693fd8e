from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from ..errors import IdentityFetchFailed
from ..models import NormalizedIdentity
from .base import ProviderAdapter, non_negative, round_half_up
from .payloads import GitHubEmail, GitHubUser

_SECONDS_PER_YEAR = 365 * 24 * 60 * 60
_EMAILS = TypeAdapter(list[GitHubEmail])


def _primary_email(emails: Sequence[GitHubEmail]) -> Optional[str]:
    for email in emails:
        if email.primary and email.verified:
            return email.email
    for email in emails:
        if email.verified:
            return email.email
    return emails[0].email if emails else None


def normalize_github(user: GitHubUser, emails: Sequence[GitHubEmail] = ()) -> NormalizedIdentity:
    return NormalizedIdentity(
        external_id=str(user.id),
        username=user.login,
        display_name=user.name or user.login,
        email=user.email or _primary_email(emails),
        avatar_url=user.avatar_url,
        profile_url=user.html_url or f"https://github.com/{user.login}",
        # A GitHub account that completed OAuth is considered verified.
        verified=True,
        metadata={
            "publicRepos": user.public_repos,
            "followers": user.followers,
            "following": user.following,
            "createdAt": user.created_at.isoformat() if user.created_at else None,
            "bio": user.bio,
        },
    )


def _parse_created_at(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class GitHubAdapter(ProviderAdapter):
    """Family A: plain authorization code flow with an e-mail secondary read."""

    name = "github"
    display_name = "GitHub"
    score_cap = 800
    api_headers = {"Accept": "application/vnd.github+json"}

    async def fetch_normalized_identity(self, access_token: str) -> NormalizedIdentity:
        payload = await self._get_json(self._url("/user"), access_token)
        try:
            user = GitHubUser.model_validate(payload)
        except ValidationError as exc:
            raise IdentityFetchFailed(self.display_name, 200, "unexpected profile payload") from exc

        emails: list[GitHubEmail] = []
        if not user.email:
            raw_emails = await self._get_optional_json(self._url("/user/emails"), access_token)
            if raw_emails is not None:
                try:
                    emails = _EMAILS.validate_python(raw_emails)
                except ValidationError:
                    emails = []
        return normalize_github(user, emails)

    def compute_reputation_points(self, identity: NormalizedIdentity) -> int:
        metadata = identity.metadata
        score = 100.0
        score += min(non_negative(metadata.get("publicRepos")) * 5, 200)
        score += min(non_negative(metadata.get("followers")) * 2, 150)
        created_at = _parse_created_at(metadata.get("createdAt"))
        if created_at is not None:
            age_seconds = max((self._now() - created_at).total_seconds(), 0.0)
            score += min(age_seconds / _SECONDS_PER_YEAR * 50, 200)
        return round_half_up(min(score, self.score_cap))

    def account_fields(self, identity: NormalizedIdentity) -> Dict[str, Any]:
        return {"github_username": identity.username, "is_verified_github": True}


__all__ = ["GitHubAdapter", "normalize_github"]
