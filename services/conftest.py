import os
from pathlib import Path

TEST_DB = os.getenv("TEST_DATABASE_PATH", "/tmp/reputation_platform_tests.db")
os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{TEST_DB}")
os.environ.setdefault("IDENTITY_CORRELATION_BACKEND", "memory")
os.environ.setdefault("SCORE_ORACLE_PRIVATE_KEY", "")

# Ensure database file exists
if os.environ["DATABASE_URL"].startswith("sqlite"):
    Path(TEST_DB).touch()

import pytest  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from libs.accounts import AccountRepository  # noqa: E402
from libs.db.db import create_session_factory  # noqa: E402


@pytest.fixture()
def session_factory() -> sessionmaker[Session]:
    return create_session_factory("sqlite://")


@pytest.fixture()
def account_repository(session_factory: sessionmaker[Session]) -> AccountRepository:
    return AccountRepository(session_factory)
