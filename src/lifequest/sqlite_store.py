from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from lifequest.document_store import Document, SnapshotHub, parent_of


class SqliteDocumentStore(SnapshotHub):
    """Durable document store: one JSON row per path, merge-writes patch the stored object."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            current = {row["version"] for row in conn.execute("SELECT version FROM schema_migrations")}

            migrations: dict[int, str] = {
                1: """
                    CREATE TABLE documents (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        path TEXT NOT NULL UNIQUE,
                        parent TEXT NOT NULL,
                        data TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );

                    CREATE INDEX idx_documents_parent ON documents(parent);
                """,
            }

            for version in sorted(migrations):
                if version in current:
                    continue
                conn.executescript(migrations[version])
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(timezone.utc).isoformat()),
                )

    def _read(self, conn: sqlite3.Connection, path: str) -> Document | None:
        row = conn.execute("SELECT data FROM documents WHERE path = ?", (path,)).fetchone()
        return json.loads(row["data"]) if row else None

    def _upsert(self, path: str, data: Document) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO documents(path, parent, data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at
                """,
                (path, parent_of(path), json.dumps(data), now, now),
            )

    async def create(self, path: str, fields: Document) -> None:
        self._upsert(path, dict(fields))
        await self._notify(path)

    async def merge_write(self, path: str, fields: Document) -> None:
        with self._connect() as conn:
            existing = self._read(conn, path) or {}
        existing.update(fields)
        self._upsert(path, existing)
        await self._notify(path)

    async def delete(self, path: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM documents WHERE path = ?", (path,))
        await self._notify(path)

    async def get(self, path: str) -> Document | None:
        with self._connect() as conn:
            return self._read(conn, path)

    async def list(self, collection: str) -> dict[str, Document]:
        parent = collection.rstrip("/")
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT path, data FROM documents WHERE parent = ? ORDER BY id ASC",
                (parent,),
            ).fetchall()
        return {row["path"].rsplit("/", 1)[1]: json.loads(row["data"]) for row in rows}
