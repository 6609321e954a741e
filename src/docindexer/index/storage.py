"""SQLite-backed document index writer."""

from __future__ import annotations

import logging
import os
import sqlite3
from collections import Counter
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

import numpy as np

from docindexer.config import INDEX_DB_NAME
from docindexer.embedding.encoder import VECTOR_SIMILARITY
from docindexer.exceptions import SetupError
from docindexer.models import DocumentRecord, StoredDocument, WriteMode
from docindexer.utils.text import iter_tokens

LOGGER = logging.getLogger(__name__)


def _path_key(path: str) -> bytes:
    """Filesystem bytes of ``path``, so names that are not valid UTF-8 round-trip."""
    return os.fsencode(path)


class SQLiteIndexWriter:
    """Persistence layer for indexed documents, their postings and vectors.

    Documents are written inside one transaction that :meth:`commit` ends.
    Each document gets its own savepoint, so a failure while one document's
    content is being read leaves the others untouched.
    """

    def __init__(self, db_path: Path, mode: WriteMode = WriteMode.CREATE) -> None:
        self.db_path = Path(db_path)
        self.mode = WriteMode(mode)
        self._conn = sqlite3.connect(self.db_path, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()
        self._conn.execute("BEGIN")
        if self.mode is WriteMode.CREATE:
            self._clear()

    @classmethod
    def open(cls, index_dir: Path, mode: WriteMode = WriteMode.CREATE) -> "SQLiteIndexWriter":
        """Open the index stored in ``index_dir``, creating it when missing."""
        index_dir = Path(index_dir)
        try:
            index_dir.mkdir(parents=True, exist_ok=True)
            return cls(index_dir / INDEX_DB_NAME, mode)
        except (OSError, sqlite3.Error) as exc:
            raise SetupError(f"Cannot open index in {index_dir}: {exc}") from exc

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        if self._conn.in_transaction:
            self._conn.rollback()
        self._conn.close()

    def __enter__(self) -> "SQLiteIndexWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            self._conn.execute("BEGIN")
            yield self._conn
            self._conn.execute("COMMIT")
        except Exception:
            self._conn.rollback()
            raise

    @contextmanager
    def _document_scope(self) -> Iterator[sqlite3.Connection]:
        conn = self._conn
        conn.execute("SAVEPOINT document")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK TO SAVEPOINT document")
            conn.execute("RELEASE SAVEPOINT document")
            raise
        conn.execute("RELEASE SAVEPOINT document")

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY,
                    path BLOB NOT NULL,
                    modified INTEGER NOT NULL,
                    vector BLOB,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_path ON documents(path)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_modified ON documents(modified)")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS postings (
                    document_id INTEGER NOT NULL,
                    term TEXT NOT NULL,
                    freq INTEGER NOT NULL,
                    FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_postings_term ON postings(term)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_postings_document_id ON postings(document_id)"
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS fields (
                    name TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def _clear(self) -> None:
        # Part of the run transaction: the old documents survive until commit().
        self._conn.execute("DELETE FROM postings")
        self._conn.execute("DELETE FROM documents")
        self._conn.execute("DELETE FROM fields")
        LOGGER.debug("Clearing index %s", self.db_path)

    def _write(self, conn: sqlite3.Connection, document: DocumentRecord) -> int:
        vector_blob = None
        if document.vector is not None:
            vector = np.asarray(document.vector, dtype="float32")
            vector_blob = sqlite3.Binary(vector.tobytes())
            self._record_vector_field(conn, vector.shape[0])

        doc_id = conn.execute(
            "INSERT INTO documents(path, modified, vector) VALUES (?, ?, ?)",
            (_path_key(document.path), int(document.modified), vector_blob),
        ).lastrowid

        counts = Counter(iter_tokens(document.content))
        conn.executemany(
            "INSERT INTO postings(document_id, term, freq) VALUES (?, ?, ?)",
            ((doc_id, term, freq) for term, freq in counts.items()),
        )
        return doc_id

    def _record_vector_field(self, conn: sqlite3.Connection, dimension: int) -> None:
        row = conn.execute("SELECT value FROM fields WHERE name = 'vector_dimension'").fetchone()
        if row is None:
            conn.executemany(
                "INSERT INTO fields(name, value) VALUES (?, ?)",
                [("vector_dimension", str(dimension)), ("vector_similarity", VECTOR_SIMILARITY)],
            )
        elif int(row["value"]) != dimension:
            raise ValueError(
                f"Vector dimension {dimension} does not match index dimension {row['value']}"
            )

    def insert(self, document: DocumentRecord) -> int:
        """Add ``document`` without looking for an existing copy."""
        with self._document_scope() as conn:
            return self._write(conn, document)

    def replace_by_key(self, key: str, document: DocumentRecord) -> int:
        """Delete every document whose path is ``key``, then add ``document``.

        Returns the number of documents that were replaced.
        """
        with self._document_scope() as conn:
            existing = [
                row["id"]
                for row in conn.execute(
                    "SELECT id FROM documents WHERE path = ?", (_path_key(key),)
                )
            ]
            for doc_id in existing:
                conn.execute("DELETE FROM postings WHERE document_id = ?", (doc_id,))
                conn.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
            self._write(conn, document)
        return len(existing)

    def commit(self) -> int:
        """Make pending writes durable and return the stored document count."""
        self._conn.execute("COMMIT")
        count = self.count_documents()
        self._conn.execute("BEGIN")
        return count

    def count_documents(self, path: str | None = None) -> int:
        if path is None:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM documents").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM documents WHERE path = ?", (_path_key(path),)
            ).fetchone()
        return int(row["n"])

    def get_document(self, path: str) -> StoredDocument | None:
        """Stored attributes of the most recent document with this path."""
        row = self._conn.execute(
            "SELECT path, modified, vector FROM documents WHERE path = ? ORDER BY id DESC LIMIT 1",
            (_path_key(path),),
        ).fetchone()
        if row is None:
            return None
        vector = None
        if row["vector"] is not None:
            vector = np.frombuffer(row["vector"], dtype="float32")
        return StoredDocument(
            path=os.fsdecode(row["path"]), modified=int(row["modified"]), vector=vector
        )

    def paths_modified_between(self, start: int, end: int) -> List[str]:
        """Paths of documents with ``start <= modified <= end`` (milliseconds)."""
        rows = self._conn.execute(
            "SELECT path FROM documents WHERE modified BETWEEN ? AND ? ORDER BY path",
            (start, end),
        ).fetchall()
        return [os.fsdecode(row["path"]) for row in rows]

    def paths_for_term(self, term: str) -> List[str]:
        """Paths of documents whose content contains ``term``."""
        rows = self._conn.execute(
            """
            SELECT DISTINCT d.path AS path
            FROM postings p
            JOIN documents d ON d.id = p.document_id
            WHERE p.term = ?
            ORDER BY d.path
            """,
            (term.lower(),),
        ).fetchall()
        return [os.fsdecode(row["path"]) for row in rows]

    def field_value(self, name: str) -> str | None:
        row = self._conn.execute("SELECT value FROM fields WHERE name = ?", (name,)).fetchone()
        return None if row is None else row["value"]
