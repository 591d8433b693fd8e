"""Drives one verification attempt from authorization to scored identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from libs.observability import bind_caller, record_verification_outcome

from . import state_token
from .errors import (
    InvalidState,
    MissingParameters,
    ProviderError,
    VerificationError,
)
from .models import NormalizedIdentity
from .providers import ProviderAdapter, ProviderRegistry
from .security import derive_code_challenge, generate_code_verifier, generate_nonce
from .state import CorrelationStore

logger = logging.getLogger(__name__)


class VerificationStep(str, Enum):
    INITIATED = "initiated"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_FETCHED = "identity_fetched"
    SCORE_COMPUTED = "score_computed"
    PERSIST_REQUESTED = "persist_requested"


@dataclass(frozen=True, slots=True)
class AuthorizationRequest:
    provider: str
    url: str
    state: str


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of a callback: either a scored identity or a failure reason."""

    ok: bool
    provider: str
    step: VerificationStep
    identity: Optional[NormalizedIdentity] = None
    points: Optional[int] = None
    caller_identity: Optional[str] = None
    reason: Optional[str] = None
    account_fields: Optional[Dict[str, Any]] = None

    @classmethod
    def succeeded(
        cls,
        provider: str,
        identity: NormalizedIdentity,
        points: int,
        caller_identity: Optional[str],
        account_fields: Dict[str, Any],
    ) -> "Outcome":
        return cls(
            ok=True,
            provider=provider,
            step=VerificationStep.PERSIST_REQUESTED,
            identity=identity,
            points=points,
            caller_identity=caller_identity,
            account_fields=account_fields,
        )

    @classmethod
    def failed(
        cls,
        provider: str,
        reason: str,
        *,
        step: VerificationStep = VerificationStep.INITIATED,
        caller_identity: Optional[str] = None,
    ) -> "Outcome":
        return cls(
            ok=False,
            provider=provider,
            step=step,
            reason=reason,
            caller_identity=caller_identity,
        )


class VerificationOrchestrator:
    """Sequences state handling and adapter calls; never persists anything itself."""

    def __init__(
        self,
        registry: ProviderRegistry,
        store: CorrelationStore,
        *,
        strict_state_validation: bool = True,
        embed_proof_secret: bool = False,
    ) -> None:
        self._registry = registry
        self._store = store
        self._strict = strict_state_validation
        # Without an authoritative store the verifier has to travel in the state.
        self._embed_proof_secret = embed_proof_secret or not strict_state_validation

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    async def begin(
        self, provider: str, caller_identity: Optional[str] = None
    ) -> AuthorizationRequest:
        adapter = self._registry.resolve(provider)
        adapter.ensure_configured()
        nonce = generate_nonce()
        verifier: Optional[str] = None
        challenge: Optional[str] = None
        if adapter.uses_pkce:
            verifier = generate_code_verifier()
            challenge = derive_code_challenge(verifier)
        token = state_token.encode(
            caller_identity,
            nonce,
            verifier if self._embed_proof_secret else None,
        )
        await self._store.put(provider, nonce, verifier)
        url = adapter.build_authorization_url(token, challenge)
        logger.info(
            "Authorization started for %s",
            provider,
            extra={"provider": provider, "has_caller": caller_identity is not None},
        )
        return AuthorizationRequest(provider=provider, url=url, state=token)

    async def handle_callback(
        self,
        provider: str,
        code: Optional[str] = None,
        state: Optional[str] = None,
        provider_error: Optional[str] = None,
    ) -> Outcome:
        caller_identity = state_token.extract_caller_identity(state)
        with bind_caller(caller_identity):
            outcome = await self._handle_callback(
                provider, code, state, provider_error, caller_identity
            )
        record_verification_outcome(provider, success=outcome.ok)
        if not outcome.ok:
            logger.warning(
                "Verification with %s failed at %s: %s",
                provider,
                outcome.step.value,
                outcome.reason,
                extra={"provider": provider},
            )
        return outcome

    async def _handle_callback(
        self,
        provider: str,
        code: Optional[str],
        state: Optional[str],
        provider_error: Optional[str],
        caller_identity: Optional[str],
    ) -> Outcome:
        step = VerificationStep.INITIATED
        try:
            if provider_error:
                raise ProviderError(provider, provider_error)
            if not code or not state:
                raise MissingParameters()
            adapter = self._registry.resolve(provider)
            step = VerificationStep.CODE_RECEIVED

            decoded = state_token.decode(state, adapter.token_layout)
            caller_identity = decoded.caller_identity
            proof_secret = await self._consume(adapter, decoded)

            access_token = await adapter.exchange_code_for_token(code, proof_secret)
            step = VerificationStep.TOKEN_EXCHANGED

            identity = await adapter.fetch_normalized_identity(access_token)
            step = VerificationStep.IDENTITY_FETCHED

            points = adapter.compute_reputation_points(identity)
            step = VerificationStep.SCORE_COMPUTED
        except VerificationError as exc:
            reason = str(exc) if exc.expose_message else exc.reason
            return Outcome.failed(provider, reason, step=step, caller_identity=caller_identity)
        except httpx.HTTPError as exc:
            return Outcome.failed(provider, str(exc), step=step, caller_identity=caller_identity)
        except Exception:
            logger.exception("Unexpected failure during %s verification", provider)
            return Outcome.failed(
                provider, "server_error", step=step, caller_identity=caller_identity
            )

        logger.info(
            "Verified %s account %s",
            provider,
            identity.username,
            extra={"provider": provider, "points": points},
        )
        return Outcome.succeeded(
            provider, identity, points, caller_identity, adapter.account_fields(identity)
        )

    async def _consume(
        self, adapter: ProviderAdapter, decoded: state_token.DecodedState
    ) -> Optional[str]:
        entry = await self._store.consume(adapter.name, decoded.nonce)
        if entry is None:
            if self._strict:
                raise InvalidState()
            logger.warning(
                "State for %s was not issued here or has expired, continuing",
                adapter.name,
                extra={"provider": adapter.name},
            )
            return decoded.proof_secret
        return entry.proof_secret or decoded.proof_secret


__all__ = [
    "AuthorizationRequest",
    "Outcome",
    "VerificationOrchestrator",
    "VerificationStep",
]
