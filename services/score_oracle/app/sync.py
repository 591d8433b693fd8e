"""Reconcile scores observed on-chain with the values kept in the database."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from infra import ScoreRecord, User
from libs.accounts import AccountRepository, UserNotFound

from .chain import ScoreContract
from .errors import (
    ContractNotConfigured,
    PlatformNotVerified,
    ScoreOracleError,
    SyncWriteFailed,
)
from .schemas import (
    CategoryScore,
    CategorySyncResult,
    ScoreCategory,
    SyncOverview,
    SyncReport,
    SyncResult,
    SyncStatus,
)

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 1000


def compute_sync_status(
    database_value: Optional[int], chain_value: Optional[int]
) -> SyncStatus:
    """Compare both sides, a chain value of ``0`` means nothing was computed."""

    on_chain = chain_value if chain_value else None
    if database_value is not None and on_chain is not None:
        return SyncStatus.SYNCED if database_value == on_chain else SyncStatus.OUT_OF_SYNC
    if database_value is not None:
        return SyncStatus.DATABASE_ONLY
    if on_chain is not None:
        return SyncStatus.CHAIN_ONLY
    return SyncStatus.NONE


def validate_score(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("Score must be an integer")
    if not MIN_SCORE <= value <= MAX_SCORE:
        raise ValueError(f"Score must be between {MIN_SCORE} and {MAX_SCORE}")
    return value


def is_platform_verified(user: User, category: ScoreCategory) -> bool:
    platform = category.platform
    if platform is None:
        return True
    return bool(getattr(user, f"is_verified_{platform}", False))


class ReconciliationSync:
    def __init__(
        self,
        repository: AccountRepository,
        contracts: Mapping[ScoreCategory, ScoreContract],
    ) -> None:
        self._repository = repository
        self._contracts = dict(contracts)

    async def _read_chain(self, caller: str, category: ScoreCategory) -> Optional[int]:
        contract = self._contracts.get(category)
        if contract is None:
            raise ContractNotConfigured(category.value)
        value = await contract.get_score(caller)
        return value if value > 0 else None

    async def _database_value(self, caller: str, category: ScoreCategory) -> Optional[int]:
        record = await self._repository.get_score(caller, category.value)
        return record.score_value if record is not None else None

    async def _write(
        self, caller: str, category: ScoreCategory, value: int, *, source: str
    ) -> ScoreRecord:
        try:
            return await self._repository.upsert_score(caller, category.value, value, source=source)
        except SQLAlchemyError as exc:
            raise SyncWriteFailed(f"Could not store {category.value} score: {exc}") from exc

    async def _require_user(self, caller: str) -> User:
        user = await self._repository.find_user(caller)
        if user is None:
            raise UserNotFound(caller)
        return user

    async def on_resolved(self, caller: str, category: ScoreCategory, score: int) -> SyncResult:
        """Persist a score the engine just observed on-chain."""

        try:
            previous = await self._database_value(caller, category)
            await self._repository.register_user(caller)
        except SQLAlchemyError as exc:
            raise SyncWriteFailed(f"Could not prepare {category.value} score write: {exc}") from exc
        record = await self._write(caller, category, score, source="sync")
        logger.info(
            "Stored %s score from chain",
            category.value,
            extra={"category": category.value, "score": record.score_value},
        )
        return SyncResult(
            category=category,
            previous_value=previous,
            current_value=record.score_value,
            status=compute_sync_status(record.score_value, score),
            source="sync",
        )

    async def update_score(
        self, caller: str, category: ScoreCategory, value: int, *, source: str = "manual"
    ) -> ScoreRecord:
        validate_score(value)
        await self._require_user(caller)
        return await self._write(caller, category, value, source=source)

    async def read_category(self, caller: str, category: ScoreCategory) -> CategoryScore:
        record = await self._repository.get_score(caller, category.value)
        database_value = record.score_value if record is not None else None
        chain_value: Optional[int] = None
        chain_error: Optional[str] = None
        try:
            chain_value = await self._read_chain(caller, category)
        except ScoreOracleError as exc:
            chain_error = str(exc)
        return CategoryScore(
            category=category,
            database_value=database_value,
            chain_value=chain_value,
            chain_error=chain_error,
            status=compute_sync_status(database_value, chain_value),
            updated_at=record.updated_at if record is not None else None,
        )

    async def sync_from_chain(self, caller: str, category: ScoreCategory) -> SyncResult:
        user = await self._require_user(caller)
        if not is_platform_verified(user, category):
            raise PlatformNotVerified(category.value, category.platform or "")
        previous = await self._database_value(caller, category)
        chain_value = await self._read_chain(caller, category)
        if chain_value is None:
            return SyncResult(
                category=category,
                previous_value=previous,
                current_value=previous,
                status=compute_sync_status(previous, None),
                source="sync",
            )
        record = await self._write(caller, category, chain_value, source="sync")
        return SyncResult(
            category=category,
            previous_value=previous,
            current_value=record.score_value,
            status=compute_sync_status(record.score_value, chain_value),
            source="sync",
        )

    async def sync_all(self, caller: str) -> SyncReport:
        """Pull every category the user is eligible for, failures are per category."""

        user = await self._require_user(caller)
        results: Dict[ScoreCategory, CategorySyncResult] = {}
        scores: Dict[ScoreCategory, int] = {}
        for category in ScoreCategory:
            previous = await self._database_value(caller, category)
            scores[category] = previous or 0
            if not is_platform_verified(user, category):
                results[category] = CategorySyncResult(
                    synced=False,
                    old_score=previous,
                    error=f"{category.platform} not verified",
                )
                continue
            try:
                chain_value = await self._read_chain(caller, category)
                if chain_value is None:
                    results[category] = CategorySyncResult(synced=False, old_score=previous)
                    continue
                record = await self._write(caller, category, chain_value, source="sync")
            except ScoreOracleError as exc:
                logger.warning("Could not sync %s score: %s", category.value, exc)
                results[category] = CategorySyncResult(
                    synced=False, old_score=previous, error=str(exc)
                )
                continue
            scores[category] = record.score_value
            results[category] = CategorySyncResult(
                synced=True, old_score=previous, new_score=record.score_value
            )
        overall = round(sum(scores.values()) / len(ScoreCategory))
        return SyncReport(
            public_key=user.public_key,
            results=results,
            scores=scores,
            overall=overall,
            synced_at=datetime.now(timezone.utc),
        )

    async def sync_status(self, caller: str) -> SyncOverview:
        user = await self._require_user(caller)
        categories = {
            category: await self.read_category(caller, category) for category in ScoreCategory
        }
        needs_sync = any(
            entry.status in (SyncStatus.OUT_OF_SYNC, SyncStatus.CHAIN_ONLY)
            for entry in categories.values()
        )
        return SyncOverview(
            public_key=user.public_key, categories=categories, needs_sync=needs_sync
        )


__all__ = [
    "MAX_SCORE",
    "MIN_SCORE",
    "ReconciliationSync",
    "SyncStatus",
    "compute_sync_status",
    "is_platform_verified",
    "validate_score",
]
