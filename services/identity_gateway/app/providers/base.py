"""Shared behaviour of the OAuth provider adapters."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional
from urllib.parse import quote, urlencode

import httpx
from pydantic import ValidationError

from ..config import ProviderConfig
from ..errors import (
    ExchangeFailed,
    IdentityFetchFailed,
    MissingParameters,
    ProviderNotConfigured,
)
from ..models import NormalizedIdentity
from ..state_token import TokenLayout
from .payloads import TokenResponse

logger = logging.getLogger(__name__)

Now = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def non_negative(value: Any) -> float:
    """Coerce a metadata value to a usable count, garbage becomes zero."""

    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except OverflowError:
        # Integers beyond float range saturate, every term is capped anyway.
        return math.inf if value > 0 else 0.0
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or number < 0:
        return 0.0
    return number


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ProviderAdapter(ABC):
    """Authorization URL, token exchange, profile reads and scoring for one provider."""

    name: ClassVar[str]
    display_name: ClassVar[str]
    score_cap: ClassVar[int]
    uses_pkce: ClassVar[bool] = False
    api_headers: ClassVar[Dict[str, str]] = {"Accept": "application/json"}

    def __init__(
        self,
        config: ProviderConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        now: Now = _utcnow,
    ) -> None:
        self._config = config
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._client_owned = http_client is None
        self._now = now

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def token_layout(self) -> TokenLayout:
        return TokenLayout.PKCE if self.uses_pkce else TokenLayout.PLAIN

    async def aclose(self) -> None:
        if self._client_owned:
            await self._client.aclose()

    def ensure_configured(self) -> None:
        if not self._config.client_id:
            raise ProviderNotConfigured(self.name)
        redirect_uri = self._config.redirect_uri
        if not redirect_uri or not redirect_uri.startswith(("http://", "https://")):
            raise ProviderNotConfigured(self.name, "invalid redirect uri")

    def build_authorization_url(
        self, state_token: str, proof_challenge: Optional[str] = None
    ) -> str:
        self.ensure_configured()
        params = {
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "scope": self._config.scope,
            "state": state_token,
            "response_type": "code",
        }
        if self.uses_pkce:
            if not proof_challenge:
                raise MissingParameters(f"{self.name} requires a PKCE code challenge")
            params["code_challenge"] = proof_challenge
            params["code_challenge_method"] = "S256"
        return f"{self._config.auth_url}?{urlencode(params, quote_via=quote)}"

    def _token_request(
        self, code: str, proof_secret: Optional[str]
    ) -> tuple[Dict[str, str], Optional[httpx.BasicAuth]]:
        data = {
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "code": code,
            "redirect_uri": self._config.redirect_uri,
            "grant_type": "authorization_code",
        }
        return data, None

    def _exchange_failed(self, status_code: Optional[int], body: str) -> ExchangeFailed:
        logger.warning(
            "%s token exchange failed with status %s",
            self.display_name,
            status_code if status_code is not None else "transport",
            extra={"provider": self.name, "response_body": body[:500]},
        )
        return ExchangeFailed(self.name, status_code, body)

    async def exchange_code_for_token(self, code: str, proof_secret: Optional[str] = None) -> str:
        data, auth = self._token_request(code, proof_secret)
        try:
            response = await self._client.post(
                self._config.token_url,
                data=data,
                auth=auth,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise self._exchange_failed(None, str(exc)) from exc
        if response.status_code >= 400:
            raise self._exchange_failed(response.status_code, response.text)
        try:
            payload = response.json()
        except ValueError as exc:
            raise self._exchange_failed(response.status_code, response.text) from exc
        # GitHub reports a rejected code with a 200 and an ``error`` field.
        if isinstance(payload, dict) and payload.get("error"):
            detail = payload.get("error_description") or payload["error"]
            raise self._exchange_failed(response.status_code, str(detail))
        try:
            token = TokenResponse.model_validate(payload)
        except ValidationError as exc:
            raise self._exchange_failed(response.status_code, "missing access_token") from exc
        return token.access_token

    async def _get_json(self, url: str, access_token: str) -> Any:
        headers = {**self.api_headers, "Authorization": f"Bearer {access_token}"}
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise IdentityFetchFailed(self.display_name, None, str(exc)) from exc
        if response.status_code >= 400:
            raise IdentityFetchFailed(self.display_name, response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise IdentityFetchFailed(
                self.display_name, response.status_code, "invalid json"
            ) from exc

    async def _get_optional_json(self, url: str, access_token: str) -> Any | None:
        """Secondary reads degrade to ``None`` instead of failing the attempt."""

        try:
            return await self._get_json(url, access_token)
        except IdentityFetchFailed as exc:
            logger.warning(
                "Secondary %s read failed, continuing without it",
                self.name,
                extra={"provider": self.name, "status_code": exc.status_code},
            )
            return None

    def _url(self, path: str) -> str:
        return f"{self._config.api_base_url.rstrip('/')}{path}"

    @abstractmethod
    async def fetch_normalized_identity(self, access_token: str) -> NormalizedIdentity:
        ...

    @abstractmethod
    def compute_reputation_points(self, identity: NormalizedIdentity) -> int:
        ...

    @abstractmethod
    def account_fields(self, identity: NormalizedIdentity) -> Dict[str, Any]:
        """Columns written to the wallet user once the account is verified."""


__all__ = ["ProviderAdapter", "non_negative", "round_half_up"]
