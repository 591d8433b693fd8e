"""SQLAlchemy models for wallet users, linked platforms and persisted scores."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class User(Base):
    """Wallet-identified user and the identity platforms linked to it."""

    __tablename__ = "reputation_users"

    id: int = Column(Integer, primary_key=True)
    public_key: str = Column(String(64), nullable=False, unique=True, index=True)

    github_username: Optional[str] = Column(String(128))
    is_verified_github: bool = Column(Boolean, nullable=False, default=False)

    twitter_username: Optional[str] = Column(String(128))
    is_verified_twitter: bool = Column(Boolean, nullable=False, default=False)

    discord_username: Optional[str] = Column(String(128))
    is_verified_discord: bool = Column(Boolean, nullable=False, default=False)
    discord_id: Optional[str] = Column(String(64))
    discord_email: Optional[str] = Column(String(255))
    discord_avatar: Optional[str] = Column(String(255))
    discord_profile_url: Optional[str] = Column(String(255))
    discord_verified: Optional[bool] = Column(Boolean)
    discord_discriminator: Optional[str] = Column(String(8))
    discord_guild_count: Optional[int] = Column(Integer)
    discord_premium_type: Optional[int] = Column(Integer)
    discord_mfa_enabled: Optional[bool] = Column(Boolean)

    created_at: datetime = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: datetime = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class ScoreRecord(Base):
    """Last known score of a user for one score category."""

    __tablename__ = "reputation_scores"

    id: int = Column(Integer, primary_key=True)
    public_key: str = Column(String(64), nullable=False, index=True)
    category: str = Column(String(32), nullable=False)
    score_value: int = Column(Integer, nullable=False)
    source: str = Column(String(32), nullable=False, default="manual")
    updated_at: datetime = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (UniqueConstraint("public_key", "category", name="uq_reputation_score"),)


__all__ = ["Base", "User", "ScoreRecord"]
