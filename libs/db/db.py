"""Database helpers shared across services."""
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from infra import ReputationBase
from libs.env import get_database_url

_IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:", "sqlite+pysqlite://"}


def _connect_args(database_url: str) -> dict[str, object]:
    return {"check_same_thread": False} if database_url.startswith("sqlite") else {}


def build_engine(database_url: str) -> Engine:
    """Create an engine, sharing a single connection for in-memory SQLite."""

    if database_url in _IN_MEMORY_URLS:
        return create_engine(
            database_url,
            connect_args=_connect_args(database_url),
            poolclass=StaticPool,
            future=True,
        )
    return create_engine(database_url, connect_args=_connect_args(database_url), future=True)


def create_session_factory(database_url: str | None = None) -> sessionmaker[Session]:
    """Return a session factory bound to ``database_url`` with tables created."""

    engine = build_engine(database_url or get_database_url())
    ReputationBase.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

