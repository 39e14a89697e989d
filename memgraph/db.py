"""
Engine/session state and Alembic schema checks.

Services never build engines themselves; they open sessions from
``DB.SessionLocal`` so tests and the app can swap the whole backend at once.
"""

from __future__ import annotations

import os
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

import memgraph.config as config

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class DB:
    """Database state holder (avoids global scoping issues)."""

    engine = None
    SessionLocal = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str):
    """Engine with the per-backend settings every caller needs.

    SQLite gets cross-thread connections (the key touch runs on its own
    thread) and foreign key enforcement, so ``ON DELETE CASCADE`` behaves
    as it does on postgres.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(database_url, pool_pre_ping=True)


def bind(engine) -> None:
    DB.engine = engine
    DB.SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def _get_alembic_config(database_url: Optional[str] = None) -> Config:
    alembic_cfg = Config(os.path.join(PROJECT_ROOT, "alembic.ini"))
    alembic_cfg.set_main_option("script_location", os.path.join(PROJECT_ROOT, "alembic"))
    # configparser interpolation treats % specially
    alembic_cfg.set_main_option("sqlalchemy.url", (database_url or config.DATABASE_URL).replace("%", "%%"))
    return alembic_cfg


def _url_of(engine) -> str:
    return engine.url.render_as_string(hide_password=False)


def _get_schema_revisions(engine) -> tuple[Optional[str], Optional[str]]:
    script = ScriptDirectory.from_config(_get_alembic_config(_url_of(engine)))
    with engine.connect() as conn:
        current_revision = MigrationContext.configure(conn).get_current_revision()
    return current_revision, script.get_current_head()


def _ensure_schema_up_to_date(engine) -> None:
    current_rev, head_rev = _get_schema_revisions(engine)
    if current_rev == head_rev:
        return

    if not config.AUTO_MIGRATE_ON_STARTUP:
        raise RuntimeError(
            f"Database schema out of date (current={current_rev}, expected={head_rev}). "
            "Run 'alembic upgrade head' or set AUTO_MIGRATE_ON_STARTUP=true for dev."
        )

    config.logger.info("schema_migrating", extra={"from_revision": current_rev, "to_revision": head_rev})
    command.upgrade(_get_alembic_config(_url_of(engine)), "head")
    new_current, _ = _get_schema_revisions(engine)
    if new_current != head_rev:
        raise RuntimeError("Database migration did not reach expected revision")


def init_db(database_url: Optional[str] = None) -> None:
    """Bind the engine for ``database_url`` (default from config) and bring the schema to head."""
    config.validate_and_prepare_config()
    database_url = database_url or config.DATABASE_URL

    config.logger.info("Connecting to database...", extra={"backend": config.DB_BACKEND})
    bind(build_engine(database_url))
    _ensure_schema_up_to_date(DB.engine)
    config.logger.info("Database initialized")


def dispose_db() -> None:
    if DB.engine is not None:
        DB.engine.dispose()
    DB.engine = None
    DB.SessionLocal = None
