"""Failure taxonomy for identity verification."""

from __future__ import annotations


class VerificationError(Exception):
    """Base class for every failure surfaced by a verification attempt.

    ``reason`` is the short machine readable code forwarded to the frontend
    when the attempt ends in a redirect.
    """

    reason = "verification_failed"
    expose_message = False

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.reason)


class MalformedToken(VerificationError):
    reason = "malformed_state"


class MissingParameters(VerificationError):
    reason = "missing_parameters"


class InvalidState(VerificationError):
    """The nonce was never issued, already consumed or has expired."""

    reason = "invalid_state"


class UnsupportedProvider(VerificationError):
    reason = "unsupported_provider"

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


class ProviderNotConfigured(VerificationError):
    reason = "provider_not_configured"
    expose_message = True

    def __init__(self, provider: str, detail: str = "missing client credentials") -> None:
        super().__init__(f"{provider} is not configured: {detail}")
        self.provider = provider


class ProviderError(VerificationError):
    """The provider redirected back with an ``error`` parameter."""

    def __init__(self, provider: str, error: str) -> None:
        super().__init__(error)
        self.provider = provider
        self.reason = error


class ExchangeFailed(VerificationError):
    reason = "exchange_failed"
    expose_message = True

    def __init__(self, provider: str, status_code: int | None, body: str) -> None:
        status_label = status_code if status_code is not None else "transport"
        super().__init__(f"Token exchange failed: {status_label}")
        self.provider = provider
        self.status_code = status_code
        self.body = body


class IdentityFetchFailed(VerificationError):
    reason = "identity_fetch_failed"
    expose_message = True

    def __init__(self, provider: str, status_code: int | None, detail: str = "") -> None:
        status_label = status_code if status_code is not None else "transport"
        message = f"{provider} API error: {status_label}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


__all__ = [
    "ExchangeFailed",
    "IdentityFetchFailed",
    "InvalidState",
    "MalformedToken",
    "MissingParameters",
    "ProviderError",
    "ProviderNotConfigured",
    "UnsupportedProvider",
    "VerificationError",
]
