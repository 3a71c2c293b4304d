"""Application store — SQLite-backed persistence for application records."""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import fields as dc_fields
from pathlib import Path
from typing import Any

from appwatch.apps.models import Application
from appwatch.config import settings

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "name", "protocol", "host", "port", "path", "tag", "icon",
    "health_path", "health_type", "resource_type", "resource_id", "resource_node",
}


class AppNotFoundError(LookupError):
    """Raised when an application id does not exist."""

    def __init__(self, app_id: int) -> None:
        self.app_id = app_id
        super().__init__(f"Application {app_id} not found")


class AppStore:
    """SQLite-backed application records."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path or settings.apps_db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS apps (
                    id            INTEGER PRIMARY KEY AUTOINCREMENT,
                    name          TEXT NOT NULL,
                    protocol      TEXT NOT NULL DEFAULT 'http',
                    host          TEXT NOT NULL,
                    port          INTEGER NOT NULL,
                    path          TEXT NOT NULL DEFAULT '/',
                    tag           TEXT NOT NULL DEFAULT '',
                    icon          TEXT NOT NULL DEFAULT 'activity',
                    health_path   TEXT NOT NULL DEFAULT '/health',
                    health_type   TEXT NOT NULL DEFAULT 'http',
                    resource_type TEXT,
                    resource_id   TEXT,
                    resource_node TEXT,
                    created_at    REAL NOT NULL,
                    updated_at    REAL NOT NULL
                )
            """)

    # ── CRUD ──────────────────────────────────────────────────────────────

    def create(self, app: Application) -> Application:
        """Validate and insert a new application; the store assigns its id."""
        app.validate()
        app.created_at = time.time()
        app.updated_at = app.created_at
        row = app.to_dict()
        row.pop("id")
        with self._conn() as conn:
            cursor = conn.execute("""
                INSERT INTO apps (name, protocol, host, port, path, tag, icon,
                                  health_path, health_type, resource_type,
                                  resource_id, resource_node, created_at, updated_at)
                VALUES (:name, :protocol, :host, :port, :path, :tag, :icon,
                        :health_path, :health_type, :resource_type,
                        :resource_id, :resource_node, :created_at, :updated_at)
            """, row)
            app.id = cursor.lastrowid
        logger.info("Created app %d (%s)", app.id, app.name)
        return app

    def get(self, app_id: int) -> Application | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM apps WHERE id = ?", (app_id,)).fetchone()
        return Application.from_row(dict(row)) if row else None

    def list_all(self) -> list[Application]:
        """All applications, oldest first."""
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM apps ORDER BY id").fetchall()
        return [Application.from_row(dict(r)) for r in rows]

    def update(self, app_id: int, **changes: Any) -> Application:
        """Apply ``changes`` to an application after validating the result."""
        app = self.get(app_id)
        if app is None:
            raise AppNotFoundError(app_id)

        updates = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
        if not updates:
            return app

        known = {f.name for f in dc_fields(Application)}
        merged = {**app.to_dict(), **updates}
        candidate = Application(**{k: v for k, v in merged.items() if k in known})
        candidate.validate()

        updates["updated_at"] = time.time()
        set_clause = ", ".join(f"{k} = :{k}" for k in updates)
        updates["id"] = app_id
        with self._conn() as conn:
            conn.execute(f"UPDATE apps SET {set_clause} WHERE id = :id", updates)
        return self.get(app_id)  # type: ignore[return-value]

    def delete(self, app_id: int) -> None:
        with self._conn() as conn:
            cursor = conn.execute("DELETE FROM apps WHERE id = ?", (app_id,))
        if cursor.rowcount == 0:
            raise AppNotFoundError(app_id)
        logger.info("Deleted app %d", app_id)
