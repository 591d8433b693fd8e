"""Encoding of the OAuth ``state`` parameter.

The state token is the only value that survives the round trip through the
provider, so it carries the wallet address of the caller alongside the
nonce used for CSRF protection. Layout::

    [publicKey:<address>|]<nonce>[|<proof secret>]

The optional last segment is only understood for providers using PKCE.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import MalformedToken

DELIMITER = "|"
CALLER_PREFIX = "publicKey:"

_CALLER_SEGMENT = re.compile(r"^publicKey:[^|]+$")
_CALLER_IN_TOKEN = re.compile(r"^publicKey:([^|]+)\|")


class TokenLayout(str, Enum):
    PLAIN = "plain"
    PKCE = "pkce"


@dataclass(frozen=True, slots=True)
class DecodedState:
    caller_identity: Optional[str]
    nonce: str
    proof_secret: Optional[str] = None


def _check_segment(name: str, value: str) -> None:
    if not value:
        raise MalformedToken(f"{name} must not be empty")
    if DELIMITER in value:
        raise MalformedToken(f"{name} must not contain {DELIMITER!r}")


def encode(
    caller_identity: Optional[str], nonce: str, proof_secret: Optional[str] = None
) -> str:
    _check_segment("nonce", nonce)
    if nonce.startswith("publicKey"):
        raise MalformedToken("nonce collides with the caller prefix")
    segments: list[str] = []
    if caller_identity is not None:
        _check_segment("caller identity", caller_identity)
        segments.append(f"{CALLER_PREFIX}{caller_identity}")
    segments.append(nonce)
    if proof_secret is not None:
        _check_segment("proof secret", proof_secret)
        segments.append(proof_secret)
    return DELIMITER.join(segments)


def decode(token: str, layout: TokenLayout = TokenLayout.PLAIN) -> DecodedState:
    """Split ``token`` back into its parts, raising :class:`MalformedToken`."""

    if not token:
        raise MalformedToken("state is empty")
    parts = token.split(DELIMITER)
    if any(not part for part in parts):
        raise MalformedToken("state contains an empty segment")

    caller_identity: Optional[str] = None
    if parts[0].startswith("publicKey"):
        if not _CALLER_SEGMENT.match(parts[0]):
            raise MalformedToken("caller segment does not match publicKey:<address>")
        caller_identity = parts[0][len(CALLER_PREFIX):]
        parts = parts[1:]

    if layout is TokenLayout.PKCE:
        if len(parts) == 1:
            return DecodedState(caller_identity, parts[0])
        if len(parts) == 2:
            return DecodedState(caller_identity, parts[0], parts[1])
    elif len(parts) == 1:
        return DecodedState(caller_identity, parts[0])
    raise MalformedToken(f"unexpected number of state segments for {layout.value} layout")


def extract_caller_identity(token: Optional[str]) -> Optional[str]:
    """Best effort lookup of the wallet address, never raises."""

    if not token:
        return None
    match = _CALLER_IN_TOKEN.match(token)
    return match.group(1) if match else None


__all__ = [
    "CALLER_PREFIX",
    "DELIMITER",
    "DecodedState",
    "TokenLayout",
    "decode",
    "encode",
    "extract_caller_identity",
]
