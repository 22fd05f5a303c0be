"""SQLite engine setup, lightweight column migrations and sessions."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

# Import models so SQLModel registers them
from perdia.storage import models as _models  # noqa: F401

_engines: dict[str, Engine] = {}

# Columns added after the first schema; create_all never alters existing tables
_ADDED_COLUMNS: dict[str, list[tuple[str, str]]] = {
    "article": [
        ("published_url", "TEXT DEFAULT ''"),
        ("reviewed_by", "TEXT DEFAULT ''"),
        ("reviewed_at", "DATETIME"),
        ("scraped_at", "DATETIME"),
    ],
    "articleversion": [
        ("ai_model_used", "TEXT DEFAULT ''"),
        ("revised_by", "TEXT DEFAULT ''"),
    ],
}


def _migrate_if_needed(db_path: Path) -> None:
    """Add missing columns to tables created by an older schema."""
    if not db_path.exists():
        return

    conn = sqlite3.connect(str(db_path))
    try:
        for table, columns in _ADDED_COLUMNS.items():
            present = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
            if not present:
                continue  # create_all will build it from scratch
            for name, ddl in columns:
                if name not in present:
                    conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")
        conn.commit()
    finally:
        conn.close()


def _on_connect(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path: Path) -> Engine:
    """Return the cached engine for ``db_path``, creating the schema on first use."""
    key = str(db_path)
    engine = _engines.get(key)
    if engine is None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        _migrate_if_needed(db_path)
        engine = create_engine(f"sqlite:///{db_path}", echo=False)
        event.listen(engine, "connect", _on_connect)
        SQLModel.metadata.create_all(engine)
        _engines[key] = engine
    return engine


def get_session(db_path: Path) -> Session:
    """Open a session whose objects stay readable after commit and close."""
    return Session(get_engine(db_path), expire_on_commit=False)
