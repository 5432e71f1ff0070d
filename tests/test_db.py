import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("VECTOR_BACKEND", "scan")

import pytest
from sqlalchemy import create_engine, inspect

import mind.config as config
from mind.db import DB, init_db, schema_status


@pytest.fixture
def fresh_sqlite(tmp_path, monkeypatch):
    db_path = tmp_path / "nested" / "aimind.db"
    monkeypatch.setattr(config, "DB_BACKEND", "sqlite")
    monkeypatch.setattr(config, "VECTOR_BACKEND", "scan")
    monkeypatch.setattr(config, "DATABASE_URL", None)
    monkeypatch.setattr(config, "SQLITE_PATH", str(db_path))
    monkeypatch.setattr(config, "DB_BACKEND_EFFECTIVE", "sqlite")
    monkeypatch.setattr(config, "VECTOR_BACKEND_EFFECTIVE", "scan")
    monkeypatch.setattr(DB, "engine", None)
    monkeypatch.setattr(DB, "SessionLocal", None)
    yield db_path
    if DB.engine is not None:
        DB.engine.dispose()


def test_schema_status_on_empty_database(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    try:
        status = schema_status(engine)
    finally:
        engine.dispose()

    assert status["schema_revision"] is None
    assert status["schema_expected"] == "0001_initial_schema"
    assert status["schema_up_to_date"] is False


def test_init_db_migrates_fresh_sqlite_file(fresh_sqlite, monkeypatch):
    monkeypatch.setattr(config, "AUTO_MIGRATE_ON_STARTUP", True)

    init_db()

    assert fresh_sqlite.exists()
    assert schema_status(DB.engine)["schema_up_to_date"] is True
    tables = set(inspect(DB.engine).get_table_names())
    assert {"entities", "observations", "relations", "notes", "subconscious", "vectors"} <= tables


def test_init_db_refuses_outdated_schema_without_auto_migrate(fresh_sqlite, monkeypatch):
    monkeypatch.setattr(config, "AUTO_MIGRATE_ON_STARTUP", False)

    with pytest.raises(RuntimeError, match="schema out of date"):
        init_db()
