"""Pydantic schemas and enums exposed by the score oracle."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from libs.accounts import is_wallet_address


class ScoreCategory(str, Enum):
    DEV = "dev"
    SOCIAL = "social"
    COMMUNITY = "community"
    DEFI = "defi"

    @property
    def platform(self) -> Optional[str]:
        """Identity platform that must be verified first, ``None`` when open to all."""

        return _CATEGORY_PLATFORMS[self]


_CATEGORY_PLATFORMS: Dict[ScoreCategory, Optional[str]] = {
    ScoreCategory.DEV: "github",
    ScoreCategory.SOCIAL: "twitter",
    ScoreCategory.COMMUNITY: "discord",
    ScoreCategory.DEFI: None,
}


class SyncStatus(str, Enum):
    SYNCED = "synced"
    OUT_OF_SYNC = "out-of-sync"
    DATABASE_ONLY = "database-only"
    CHAIN_ONLY = "chain-only"
    NONE = "none"


class ScoreRequestState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    POLLING = "polling"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        ScoreRequestState.RESOLVED,
        ScoreRequestState.TIMED_OUT,
        ScoreRequestState.ERRORED,
        ScoreRequestState.CANCELLED,
    }
)


class _Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _WalletRequest(_Schema):
    public_key: str

    @field_validator("public_key")
    @classmethod
    def _check_wallet(cls, value: str) -> str:
        value = value.strip()
        if not is_wallet_address(value):
            raise ValueError("publicKey must be a 0x-prefixed 20 byte address")
        return value


class RegisterRequest(_WalletRequest):
    pass


class ScoreUpdateRequest(_WalletRequest):
    score: int
    source: str = "manual"


class ScoreRequestCreate(_WalletRequest):
    args: List[str] = Field(..., min_length=1)


class UserRead(_Schema):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    public_key: str
    github_username: Optional[str] = None
    is_verified_github: bool = False
    twitter_username: Optional[str] = None
    is_verified_twitter: bool = False
    discord_username: Optional[str] = None
    is_verified_discord: bool = False
    created_at: Optional[datetime] = None


class ScoreRecordRead(_Schema):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    public_key: str
    category: ScoreCategory
    score_value: int
    source: str
    updated_at: Optional[datetime] = None


class CategoryScore(_Schema):
    category: ScoreCategory
    database_value: Optional[int] = None
    chain_value: Optional[int] = None
    chain_error: Optional[str] = None
    status: SyncStatus
    updated_at: Optional[datetime] = None


class SyncResult(_Schema):
    category: ScoreCategory
    previous_value: Optional[int] = None
    current_value: Optional[int] = None
    status: SyncStatus
    source: str


class CategorySyncResult(_Schema):
    synced: bool
    old_score: Optional[int] = None
    new_score: Optional[int] = None
    error: Optional[str] = None


class SyncReport(_Schema):
    public_key: str
    results: Dict[ScoreCategory, CategorySyncResult]
    scores: Dict[ScoreCategory, int]
    overall: int
    synced_at: datetime


class SyncOverview(_Schema):
    public_key: str
    categories: Dict[ScoreCategory, CategoryScore]
    needs_sync: bool


class ScoreRequestStatus(_Schema):
    category: ScoreCategory
    caller: str
    state: ScoreRequestState
    score: Optional[int] = None
    error: Optional[str] = None
    tx_hash: Optional[str] = None
    request_id: Optional[str] = None
    attempts: int = 0
    max_attempts: int
    submitted_at: Optional[datetime] = None
    updated_at: datetime
    sync: Optional[SyncResult] = None
    sync_error: Optional[str] = None


__all__ = [
    "CategoryScore",
    "CategorySyncResult",
    "RegisterRequest",
    "ScoreCategory",
    "ScoreRecordRead",
    "ScoreRequestCreate",
    "ScoreRequestState",
    "ScoreRequestStatus",
    "ScoreUpdateRequest",
    "SyncOverview",
    "SyncReport",
    "SyncResult",
    "SyncStatus",
    "UserRead",
]
