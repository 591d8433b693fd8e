"""Persistence helpers for wallet users and their score records."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Mapping
from typing import Any, Sequence, TypeVar

from sqlalchemy import inspect, select
from sqlalchemy.orm import Session, sessionmaker

from infra import ScoreRecord, User

T = TypeVar("T")

_WALLET_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")

_USER_COLUMNS = frozenset(column.key for column in inspect(User).columns) - {
    "id",
    "public_key",
    "created_at",
    "updated_at",
}


class UserNotFound(LookupError):
    """Raised when an update targets a wallet that never registered."""

    def __init__(self, public_key: str) -> None:
        super().__init__(f"User not found: {public_key}")
        self.public_key = public_key


def is_wallet_address(value: str) -> bool:
    return bool(_WALLET_ADDRESS.match(value))


def normalize_public_key(public_key: str) -> str:
    """Addresses are compared case-insensitively."""

    return public_key.strip().lower()


class AccountRepository:
    """Keyed CRUD over users and score records.

    Every call opens its own session and returns detached instances so
    callers can keep them after the session is closed. Blocking database
    work runs in a worker thread to keep the event loop responsive.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    async def _run(self, func: Callable[[Session], T]) -> T:
        def _call() -> T:
            with self._session_factory() as session:
                return func(session)

        return await asyncio.to_thread(_call)

    async def find_user(self, public_key: str) -> User | None:
        key = normalize_public_key(public_key)

        def _find(session: Session) -> User | None:
            user = session.scalar(select(User).where(User.public_key == key))
            if user is not None:
                session.expunge(user)
            return user

        return await self._run(_find)

    async def register_user(self, public_key: str) -> User:
        """Create the user when missing and return it either way."""

        key = normalize_public_key(public_key)

        def _register(session: Session) -> User:
            user = session.scalar(select(User).where(User.public_key == key))
            if user is None:
                user = User(public_key=key)
                session.add(user)
                session.commit()
                session.refresh(user)
            session.expunge(user)
            return user

        return await self._run(_register)

    async def update_user(self, public_key: str, fields: Mapping[str, Any]) -> User:
        unknown = set(fields) - _USER_COLUMNS
        if unknown:
            raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")
        key = normalize_public_key(public_key)

        def _update(session: Session) -> User:
            user = session.scalar(select(User).where(User.public_key == key))
            if user is None:
                raise UserNotFound(key)
            for name, value in fields.items():
                setattr(user, name, value)
            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user

        return await self._run(_update)

    async def get_score(self, public_key: str, category: str) -> ScoreRecord | None:
        key = normalize_public_key(public_key)

        def _get(session: Session) -> ScoreRecord | None:
            record = session.scalar(
                select(ScoreRecord).where(
                    ScoreRecord.public_key == key,
                    ScoreRecord.category == category,
                )
            )
            if record is not None:
                session.expunge(record)
            return record

        return await self._run(_get)

    async def list_scores(self, public_key: str) -> Sequence[ScoreRecord]:
        key = normalize_public_key(public_key)

        def _list(session: Session) -> Sequence[ScoreRecord]:
            records = (
                session.execute(
                    select(ScoreRecord)
                    .where(ScoreRecord.public_key == key)
                    .order_by(ScoreRecord.category)
                )
                .scalars()
                .all()
            )
            for record in records:
                session.expunge(record)
            return records

        return await self._run(_list)

    async def upsert_score(
        self, public_key: str, category: str, score_value: int, *, source: str
    ) -> ScoreRecord:
        """Write the score for ``(public_key, category)``, last write wins."""

        key = normalize_public_key(public_key)

        def _upsert(session: Session) -> ScoreRecord:
            user = session.scalar(select(User).where(User.public_key == key))
            if user is None:
                raise UserNotFound(key)
            record = session.scalar(
                select(ScoreRecord).where(
                    ScoreRecord.public_key == key,
                    ScoreRecord.category == category,
                )
            )
            if record is None:
                record = ScoreRecord(public_key=key, category=category)
                session.add(record)
            record.score_value = score_value
            record.source = source
            session.commit()
            session.refresh(record)
            session.expunge(record)
            return record

        return await self._run(_upsert)


__all__ = ["AccountRepository", "UserNotFound", "is_wallet_address", "normalize_public_key"]
