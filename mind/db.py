"""
Engine, session factory and schema management for AI Mind.

The schema is owned by Alembic (``alembic/versions``); startup either
upgrades to head or refuses to run against an older schema.
"""

from __future__ import annotations

import os

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

import mind.config as config

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
ALEMBIC_INI = os.path.join(PROJECT_ROOT, "alembic.ini")
ALEMBIC_DIR = os.path.join(PROJECT_ROOT, "alembic")


class DB:
    """Database state holder (avoids global scoping issues)."""

    engine = None
    SessionLocal = None


def alembic_config() -> Config:
    cfg = Config(ALEMBIC_INI)
    cfg.set_main_option("script_location", ALEMBIC_DIR)
    cfg.set_main_option("sqlalchemy.url", config.DATABASE_URL or "")
    return cfg


def schema_status(engine) -> dict:
    """Current vs. expected Alembic revision for ``engine``."""
    expected = ScriptDirectory.from_config(alembic_config()).get_current_head()
    with engine.connect() as conn:
        current = MigrationContext.configure(conn).get_current_revision()
    return {
        "schema_revision": current,
        "schema_expected": expected,
        "schema_up_to_date": current == expected,
    }


def create_db_engine(url: str):
    if config.DB_BACKEND_EFFECTIVE == "sqlite":
        if config.SQLITE_PATH and url.endswith(config.SQLITE_PATH):
            os.makedirs(os.path.dirname(config.SQLITE_PATH) or ".", exist_ok=True)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def _ensure_pgvector_extension(engine) -> None:
    if not (
        config.AUTO_CREATE_EXTENSIONS
        and config.DB_BACKEND_EFFECTIVE == "postgres"
        and config.VECTOR_BACKEND_EFFECTIVE == "pgvector"
    ):
        return
    config.logger.info("Ensuring pgvector extension...")
    with engine.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))


def _ensure_schema_up_to_date(engine) -> None:
    status = schema_status(engine)
    if status["schema_up_to_date"]:
        return
    if not config.AUTO_MIGRATE_ON_STARTUP:
        raise RuntimeError(
            f"Database schema out of date (current={status['schema_revision']}, "
            f"expected={status['schema_expected']}). Run 'alembic upgrade head'."
        )
    command.upgrade(alembic_config(), "head")
    if not schema_status(engine)["schema_up_to_date"]:
        raise RuntimeError("Database migration did not reach expected revision")


def init_db() -> None:
    """Connect, ensure extensions and bring the schema to head."""
    config.validate_and_prepare_config()

    config.logger.info("Connecting to database...")
    DB.engine = create_db_engine(config.DATABASE_URL)
    DB.SessionLocal = sessionmaker(bind=DB.engine)

    _ensure_pgvector_extension(DB.engine)
    _ensure_schema_up_to_date(DB.engine)

    config.logger.info("Database initialized")
