"""Shared storage primitives for wallet users and persisted scores."""

from .repository import AccountRepository, UserNotFound, is_wallet_address, normalize_public_key

__all__ = [
    "AccountRepository",
    "UserNotFound",
    "is_wallet_address",
    "normalize_public_key",
]
