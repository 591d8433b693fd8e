"""OAuth2 flows for GitHub, Discord and Twitter."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from libs.accounts import AccountRepository, UserNotFound, is_wallet_address

from ..config import Settings
from ..deps import get_account_repository, get_orchestrator, get_settings_dependency
from ..errors import MalformedToken, ProviderNotConfigured, UnsupportedProvider
from ..models import AuthorizationResponse
from ..orchestrator import Outcome, VerificationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["oauth"])


def _verify_page_redirect(settings: Settings, params: dict[str, str]) -> RedirectResponse:
    separator = "&" if "?" in settings.verify_page_url else "?"
    return RedirectResponse(
        f"{settings.verify_page_url}{separator}{urlencode(params)}",
        status_code=status.HTTP_307_TEMPORARY_REDIRECT,
    )


@router.get("/{provider}/start", response_model=AuthorizationResponse)
async def oauth_start(
    provider: str,
    public_key: Optional[str] = Query(None, alias="publicKey"),
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
) -> AuthorizationResponse:
    if public_key is not None and not is_wallet_address(public_key):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid publicKey")
    try:
        request = await orchestrator.begin(provider, public_key)
    except UnsupportedProvider as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unsupported provider") from exc
    except ProviderNotConfigured as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Provider not configured"
        ) from exc
    except MalformedToken as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return AuthorizationResponse(
        provider=request.provider, authorization_url=request.url, state=request.state
    )


async def _persist(repository: AccountRepository, outcome: Outcome) -> None:
    if not outcome.caller_identity or not outcome.account_fields:
        return
    await repository.register_user(outcome.caller_identity)
    await repository.update_user(outcome.caller_identity, outcome.account_fields)


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    settings: Settings = Depends(get_settings_dependency),
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
    repository: AccountRepository = Depends(get_account_repository),
) -> RedirectResponse:
    outcome = await orchestrator.handle_callback(provider, code, state, error)
    if not outcome.ok:
        return _verify_page_redirect(
            settings, {"platform": provider, "error": outcome.reason or "server_error"}
        )

    try:
        await _persist(repository, outcome)
    except (SQLAlchemyError, UserNotFound, ValueError):
        logger.exception("Could not store verified %s account", provider)
        return _verify_page_redirect(settings, {"platform": provider, "error": "server_error"})

    username = outcome.identity.username if outcome.identity else ""
    return _verify_page_redirect(
        settings,
        {
            "platform": provider,
            "success": "true",
            "username": username,
            "score": str(outcome.points),
        },
    )


__all__ = ["router"]
