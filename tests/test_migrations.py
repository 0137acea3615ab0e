from __future__ import annotations

from pathlib import Path

from sqlalchemy import DateTime, create_engine, inspect
from sqlmodel import SQLModel

from collabtask.domain import models  # noqa: F401
from collabtask.infra.migrate import run_upgrade_head


def test_upgrade_head_creates_schema(tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    run_upgrade_head(url)

    tables = set(inspect(create_engine(url)).get_table_names())
    assert {
        "events",
        "action_logs",
        "users",
        "teams",
        "team_members",
        "tasks",
        "shared_tasks",
        "subtasks",
        "comments",
        "attachments",
    } <= tables


def test_migrated_columns_match_models(tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    run_upgrade_head(url)

    inspector = inspect(create_engine(url))
    for name, table in SQLModel.metadata.tables.items():
        migrated = {column["name"] for column in inspector.get_columns(name)}
        assert migrated == set(table.columns.keys()), name


def test_model_datetime_columns_are_timezone_aware() -> None:
    naive = [
        f"{table.name}.{column.name}"
        for table in SQLModel.metadata.tables.values()
        for column in table.columns
        if isinstance(column.type, DateTime) and not column.type.timezone
    ]
    assert naive == []
