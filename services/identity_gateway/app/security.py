"""Random material and PKCE helpers used when starting an authorization."""

from __future__ import annotations

import base64
import secrets
from hashlib import sha256


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_nonce() -> str:
    return secrets.token_urlsafe(24)


def generate_code_verifier() -> str:
    """Return a 43 character verifier, the RFC 7636 minimum length."""

    return secrets.token_urlsafe(32)


def derive_code_challenge(verifier: str) -> str:
    """S256 transform of ``verifier``: unpadded base64url of its SHA-256 digest."""

    if not verifier:
        raise ValueError("verifier must not be empty")
    return _b64url(sha256(verifier.encode("ascii")).digest())


__all__ = ["derive_code_challenge", "generate_code_verifier", "generate_nonce"]
