"""Infrastructure helpers for the monorepo."""

from .reputation_models import Base as ReputationBase
from .reputation_models import ScoreRecord, User

__all__ = [
    "ReputationBase",
    "ScoreRecord",
    "User",
]
