"""
SQLite document store.

One logical collection per table. Each document is a JSON object with a
string ``_id``; the body is stored as compact JSON next to its id.

Operations mirror a minimal key-value document API:
    - get(id) → dict | None
    - put(doc) → create or full replace
    - remove(id) → bool
    - destroy() → drop every document in the collection

SQLite patterns:
    - persistent connection for ":memory:", per-call connections otherwise
    - _transaction() context manager with commit/rollback
    - _init_schema() via executescript
    - sqlite3.Row row factory
    - WAL mode for file-backed databases
"""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

_COLLECTION_RE = re.compile(r"^[a-z][a-z0-9_]{0,62}$")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS {table} (
    doc_id TEXT PRIMARY KEY,
    body TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def _now_utc() -> str:
    """RFC3339 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S+00:00")


class DocumentStore:
    """SQLite-backed storage for one collection of JSON documents.

    Args:
        collection: Collection (table) name, [a-z][a-z0-9_]*.
        db_path: Path to SQLite database file, or ":memory:" for in-memory.
    """

    def __init__(self, collection: str, db_path: str | Path = ":memory:") -> None:
        if not _COLLECTION_RE.match(collection):
            raise ValueError(f"invalid collection name: {collection!r}")
        self._collection = collection
        self._db_path = str(db_path)
        self._is_memory = self._db_path == ":memory:"

        if self._is_memory:
            self._persistent_conn: sqlite3.Connection | None = sqlite3.connect(
                ":memory:", check_same_thread=False
            )
            self._persistent_conn.row_factory = sqlite3.Row
        else:
            self._persistent_conn = None

        self._init_schema()

    @property
    def collection(self) -> str:
        return self._collection

    def _get_conn(self) -> sqlite3.Connection:
        """Get a database connection with proper settings."""
        if self._persistent_conn is not None:
            return self._persistent_conn

        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a database transaction."""
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            if self._persistent_conn is None:
                conn.close()

    def _init_schema(self) -> None:
        """Create the collection table if it doesn't exist."""
        with self._transaction() as conn:
            conn.executescript(_SCHEMA.format(table=self._collection))

    # -----------------------------------------------------------------
    # Document operations
    # -----------------------------------------------------------------

    def get(self, doc_id: str) -> dict[str, Any] | None:
        """Fetch a document by id. Returns None if not found."""
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT body FROM {self._collection} WHERE doc_id = ?",
                (doc_id,),
            ).fetchone()
        if row is None:
            return None
        doc: dict[str, Any] = json.loads(row["body"])
        return doc

    def put(self, doc: dict[str, Any]) -> str:
        """Create or fully replace a document.

        Returns:
            The document id.

        Raises:
            ValueError: If the document has no string ``_id``.
        """
        doc_id = doc.get("_id")
        if not isinstance(doc_id, str) or not doc_id:
            raise ValueError("document must have a non-empty string _id")

        body = json.dumps(doc, separators=(",", ":"), sort_keys=True)
        with self._transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO {self._collection} (doc_id, body, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(doc_id) DO UPDATE SET
                    body = excluded.body,
                    updated_at = excluded.updated_at
                """,
                (doc_id, body, _now_utc()),
            )
        return doc_id

    def remove(self, doc_id: str) -> bool:
        """Delete a document. Returns True if a row was removed."""
        with self._transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM {self._collection} WHERE doc_id = ?",
                (doc_id,),
            )
            return cursor.rowcount > 0

    def destroy(self) -> None:
        """Remove every document in the collection."""
        with self._transaction() as conn:
            conn.execute(f"DELETE FROM {self._collection}")

    # -----------------------------------------------------------------
    # Utility
    # -----------------------------------------------------------------

    def count(self) -> int:
        """Return the number of stored documents."""
        with self._transaction() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM {self._collection}").fetchone()
        return row[0] if row else 0

    def close(self) -> None:
        """Close the persistent in-memory connection, if any."""
        if self._persistent_conn is not None:
            self._persistent_conn.close()
            self._persistent_conn = None
