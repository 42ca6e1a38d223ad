from __future__ import annotations

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from lessonsync.db.base import Base
from lessonsync.db.session import engine

import lessonsync.models  # noqa: F401

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "teacher": {"id", "tenant_id", "is_active", "first_name", "last_name", "time_blocks"},
    "student": {"id", "tenant_id", "is_active", "first_name", "last_name", "teacher_assignments"},
}


def _ensure_json_list_column(bind: Engine, table_name: str, column_name: str) -> None:
    with bind.begin() as connection:
        inspector = inspect(connection)
        if table_name not in set(inspector.get_table_names()):
            return
        column_names = {item["name"] for item in inspector.get_columns(table_name)}
        if column_name in column_names:
            return

        if connection.dialect.name == "postgresql":
            connection.execute(
                text(
                    f"ALTER TABLE {table_name} "
                    f"ADD COLUMN {column_name} JSONB NOT NULL DEFAULT '[]'::jsonb"
                )
            )
            return

        connection.execute(
            text(
                f"ALTER TABLE {table_name} "
                f"ADD COLUMN {column_name} JSON NOT NULL DEFAULT '[]'"
            )
        )


def _assert_required_columns(bind: Engine) -> None:
    with bind.begin() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = [name for name in REQUIRED_COLUMNS if name not in table_names]
        if missing_tables:
            raise RuntimeError(f"Missing required tables: {', '.join(sorted(missing_tables))}")

        missing_columns: list[str] = []
        for table_name, required in REQUIRED_COLUMNS.items():
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            for column_name in sorted(required - existing):
                missing_columns.append(f"{table_name}.{column_name}")
        if missing_columns:
            raise RuntimeError(f"Missing required columns: {', '.join(missing_columns)}")


def ensure_runtime_schema_compatibility(bind: Engine | None = None) -> None:
    bind = bind or engine
    try:
        # Ensure missing tables are present before additive compatibility patches.
        Base.metadata.create_all(bind=bind)
        _ensure_json_list_column(bind, "teacher", "time_blocks")
        _ensure_json_list_column(bind, "student", "teacher_assignments")
        _assert_required_columns(bind)
    except Exception as exc:
        logger.exception("Runtime schema compatibility bootstrap failed")
        raise RuntimeError("Runtime schema compatibility bootstrap failed") from exc
