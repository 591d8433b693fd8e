"""Integration test for verifying Alembic migrations can run end-to-end."""

from __future__ import annotations

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from infra import ReputationBase

ALEMBIC_CONFIG_PATH = Path(__file__).resolve().parents[2] / "infra/migrations/alembic.ini"


@pytest.mark.slow
def test_migrations_upgrade_head_matches_models(tmp_path, monkeypatch):
    """Run the Alembic migrations against SQLite and compare with the ORM tables."""
    database_url = f"sqlite:///{tmp_path / 'alembic.sqlite'}"
    monkeypatch.setenv("ALEMBIC_DATABASE_URL", database_url)
    config = Config(str(ALEMBIC_CONFIG_PATH))

    command.upgrade(config, "head")

    inspector = inspect(create_engine(database_url))
    for table in ReputationBase.metadata.sorted_tables:
        columns = {column["name"] for column in inspector.get_columns(table.name)}
        assert columns == {column.name for column in table.columns}, table.name

    unique = inspector.get_unique_constraints("reputation_scores")
    assert [sorted(c["column_names"]) for c in unique] == [["category", "public_key"]]

    command.downgrade(config, "base")
    remaining = set(inspect(create_engine(database_url)).get_table_names())
    assert remaining.isdisjoint({"reputation_users", "reputation_scores"})
