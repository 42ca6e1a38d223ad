import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.pool import StaticPool

from lessonsync.db import bootstrap


def _raise_error(message: str):
    raise RuntimeError(message)


def test_runtime_schema_bootstrap_raises_on_validation_failure(engine, monkeypatch):
    monkeypatch.setattr(
        bootstrap,
        "_assert_required_columns",
        lambda bind: _raise_error("missing required schema"),
    )

    with pytest.raises(RuntimeError, match="Runtime schema compatibility bootstrap failed"):
        bootstrap.ensure_runtime_schema_compatibility(engine)


def test_runtime_schema_bootstrap_is_repeatable(engine):
    bootstrap.ensure_runtime_schema_compatibility(engine)
    bootstrap.ensure_runtime_schema_compatibility(engine)

    tables = set(inspect(engine).get_table_names())
    assert {"teacher", "student"} <= tables


def test_legacy_teacher_table_gains_time_blocks_column():
    legacy = create_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    with legacy.begin() as connection:
        connection.execute(
            text(
                "CREATE TABLE teacher ("
                "id VARCHAR(36) PRIMARY KEY, tenant_id VARCHAR(100) NOT NULL, "
                "is_active BOOLEAN NOT NULL, first_name VARCHAR(100) NOT NULL, "
                "last_name VARCHAR(100) NOT NULL, created_at DATETIME, updated_at DATETIME)"
            )
        )
        connection.execute(
            text(
                "INSERT INTO teacher (id, tenant_id, is_active, first_name, last_name) "
                "VALUES ('t-1', 'test-tenant', 1, 'Miriam', 'Levi')"
            )
        )

    bootstrap.ensure_runtime_schema_compatibility(legacy)

    columns = {item["name"] for item in inspect(legacy).get_columns("teacher")}
    assert "time_blocks" in columns
    with legacy.connect() as connection:
        assert connection.execute(text("SELECT time_blocks FROM teacher")).scalar_one() == "[]"
    legacy.dispose()
