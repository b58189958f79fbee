"""Durable storage for the bipartite test/function graph."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence

from .schema import FunctionRecord, GraphStats, LinkRecord, TestRecord, utc_now

DEFAULT_DB_PATH = Path(".testlens/graph.sqlite")
LOGGER = logging.getLogger(__name__)


class GraphStoreError(RuntimeError):
    """Raised when the graph store cannot complete an operation."""


class LinkIntegrityError(GraphStoreError):
    """Raised when a link references a test or function that does not exist."""


def _as_iso(timestamp: datetime) -> str:
    """Serialise a timestamp to a timezone-aware ISO 8601 string."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    """Parse an ISO 8601 timestamp produced by `_as_iso`."""
    return datetime.fromisoformat(value)


class GraphStore:
    """Capability shared by every graph backend.

    The resolver and learner only talk to this interface, so a different
    engine can be dropped in by subclassing and implementing each method.
    Upserts are the only write path for tests and functions.
    """

    def upsert_test(self, file_path: str, test_name: str) -> TestRecord:
        raise NotImplementedError

    def get_test(self, file_path: str, test_name: str) -> Optional[TestRecord]:
        raise NotImplementedError

    def list_tests(self) -> List[TestRecord]:
        raise NotImplementedError

    def upsert_function(
        self,
        file_path: str,
        function_name: str,
        start_line: int,
        end_line: int,
        commit_hash: Optional[str] = None,
    ) -> FunctionRecord:
        raise NotImplementedError

    def get_function(
        self, file_path: str, function_name: str, start_line: int, end_line: int
    ) -> Optional[FunctionRecord]:
        raise NotImplementedError

    def get_functions_by_file_paths(self, file_paths: Sequence[str]) -> List[FunctionRecord]:
        raise NotImplementedError

    def create_link(self, test_id: int, function_id: int) -> Optional[LinkRecord]:
        """Create the edge; return ``None`` when it already existed."""
        raise NotImplementedError

    def get_tests_for_functions(self, function_ids: Iterable[int]) -> List[TestRecord]:
        raise NotImplementedError

    def get_functions_for_test(self, test_id: int) -> List[FunctionRecord]:
        raise NotImplementedError

    def clear_links_for_test(self, test_id: int) -> int:
        raise NotImplementedError

    def clear_all_links(self) -> int:
        raise NotImplementedError

    def delete_test(self, test_id: int) -> None:
        raise NotImplementedError

    def delete_function(self, function_id: int) -> None:
        raise NotImplementedError

    def stats(self) -> GraphStats:
        raise NotImplementedError

    @contextmanager
    def transaction(self) -> Iterator["GraphStore"]:
        """Group writes so they are committed or discarded together."""
        yield self

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self) -> "GraphStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class SQLiteGraphStore(GraphStore):
    """SQLite-backed graph store.

    Natural keys are enforced with unique constraints and conflicts are
    resolved with ``ON CONFLICT`` clauses, so concurrent identical upserts
    converge on one row.
    """

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path = self.db_path.resolve()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._depth = 0
        self._conn: Optional[sqlite3.Connection] = self._open_connection()
        self._bootstrap()

    def close(self) -> None:
        if getattr(self, "_conn", None) is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.db_path))
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SQLiteGraphStore":
        database = config.get("database") or {}
        return cls(Path(database.get("path") or DEFAULT_DB_PATH))

    def _bootstrap(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS tests (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                file_path TEXT NOT NULL,
                test_name TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(file_path, test_name)
            );
            CREATE INDEX IF NOT EXISTS idx_tests_file_path ON tests(file_path);

            CREATE TABLE IF NOT EXISTS functions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                file_path TEXT NOT NULL,
                function_name TEXT NOT NULL,
                start_line INTEGER NOT NULL,
                end_line INTEGER NOT NULL,
                commit_hash TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(file_path, function_name, start_line, end_line),
                CHECK(start_line <= end_line)
            );
            CREATE INDEX IF NOT EXISTS idx_functions_file_path ON functions(file_path);
            CREATE INDEX IF NOT EXISTS idx_functions_commit_hash ON functions(commit_hash);

            CREATE TABLE IF NOT EXISTS test_function_links (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                test_id INTEGER NOT NULL,
                function_id INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(test_id, function_id),
                FOREIGN KEY(test_id) REFERENCES tests(id) ON DELETE CASCADE,
                FOREIGN KEY(function_id) REFERENCES functions(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_links_test_id ON test_function_links(test_id);
            CREATE INDEX IF NOT EXISTS idx_links_function_id ON test_function_links(function_id);
            """
        )
        self._conn.commit()

    @contextmanager
    def transaction(self) -> Iterator["SQLiteGraphStore"]:
        """Commit on success, roll back everything on error; nests safely."""
        self._depth += 1
        try:
            yield self
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                self._conn.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self._conn.commit()

    # Test operations -----------------------------------------------------------------
    def upsert_test(self, file_path: str, test_name: str) -> TestRecord:
        timestamp = _as_iso(utc_now())
        with self.transaction():
            self._conn.execute(
                """
                INSERT INTO tests (file_path, test_name, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(file_path, test_name) DO UPDATE SET
                    updated_at = excluded.updated_at
                """,
                (file_path, test_name, timestamp, timestamp),
            )
            record = self.get_test(file_path, test_name)
        assert record is not None
        return record

    def get_test(self, file_path: str, test_name: str) -> Optional[TestRecord]:
        cursor = self._conn.execute(
            "SELECT * FROM tests WHERE file_path = ? AND test_name = ?",
            (file_path, test_name),
        )
        row = cursor.fetchone()
        return self._row_to_test(row) if row else None

    def list_tests(self) -> List[TestRecord]:
        cursor = self._conn.execute("SELECT * FROM tests ORDER BY file_path, test_name")
        return [self._row_to_test(row) for row in cursor.fetchall()]

    # Function operations -------------------------------------------------------------
    def upsert_function(
        self,
        file_path: str,
        function_name: str,
        start_line: int,
        end_line: int,
        commit_hash: Optional[str] = None,
    ) -> FunctionRecord:
        if start_line > end_line:
            raise ValueError(
                f"Invalid span for {file_path}::{function_name}: {start_line}-{end_line}"
            )
        timestamp = _as_iso(utc_now())
        with self.transaction():
            # A missing hash never overwrites a known one.
            self._conn.execute(
                """
                INSERT INTO functions (
                    file_path, function_name, start_line, end_line, commit_hash,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(file_path, function_name, start_line, end_line) DO UPDATE SET
                    commit_hash = COALESCE(excluded.commit_hash, functions.commit_hash),
                    updated_at = excluded.updated_at
                """,
                (
                    file_path,
                    function_name,
                    start_line,
                    end_line,
                    commit_hash or None,
                    timestamp,
                    timestamp,
                ),
            )
            record = self.get_function(file_path, function_name, start_line, end_line)
        assert record is not None
        return record

    def get_function(
        self, file_path: str, function_name: str, start_line: int, end_line: int
    ) -> Optional[FunctionRecord]:
        cursor = self._conn.execute(
            """
            SELECT * FROM functions
            WHERE file_path = ? AND function_name = ? AND start_line = ? AND end_line = ?
            """,
            (file_path, function_name, start_line, end_line),
        )
        row = cursor.fetchone()
        return self._row_to_function(row) if row else None

    def get_functions_by_file_paths(self, file_paths: Sequence[str]) -> List[FunctionRecord]:
        paths = list(dict.fromkeys(file_paths))
        if not paths:
            return []
        placeholders = ",".join("?" for _ in paths)
        cursor = self._conn.execute(
            f"SELECT * FROM functions WHERE file_path IN ({placeholders}) ORDER BY id",
            paths,
        )
        return [self._row_to_function(row) for row in cursor.fetchall()]

    # Link operations -----------------------------------------------------------------
    def create_link(self, test_id: int, function_id: int) -> Optional[LinkRecord]:
        timestamp = _as_iso(utc_now())
        with self.transaction():
            try:
                cursor = self._conn.execute(
                    """
                    INSERT INTO test_function_links (test_id, function_id, created_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(test_id, function_id) DO NOTHING
                    """,
                    (test_id, function_id, timestamp),
                )
            except sqlite3.IntegrityError as error:
                raise LinkIntegrityError(
                    f"Cannot link test {test_id} to function {function_id}: {error}"
                ) from error
            if cursor.rowcount == 0:
                return None
            row = self._conn.execute(
                "SELECT * FROM test_function_links WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return LinkRecord(
            id=row["id"],
            test_id=row["test_id"],
            function_id=row["function_id"],
            created_at=_from_iso(row["created_at"]),
        )

    def get_tests_for_functions(self, function_ids: Iterable[int]) -> List[TestRecord]:
        ids = sorted(set(function_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        cursor = self._conn.execute(
            f"""
            SELECT DISTINCT t.* FROM tests t
            INNER JOIN test_function_links l ON t.id = l.test_id
            WHERE l.function_id IN ({placeholders})
            ORDER BY t.file_path, t.test_name
            """,
            ids,
        )
        return [self._row_to_test(row) for row in cursor.fetchall()]

    def get_functions_for_test(self, test_id: int) -> List[FunctionRecord]:
        cursor = self._conn.execute(
            """
            SELECT f.* FROM functions f
            INNER JOIN test_function_links l ON f.id = l.function_id
            WHERE l.test_id = ?
            ORDER BY f.file_path, f.start_line
            """,
            (test_id,),
        )
        return [self._row_to_function(row) for row in cursor.fetchall()]

    def clear_links_for_test(self, test_id: int) -> int:
        with self.transaction():
            cursor = self._conn.execute(
                "DELETE FROM test_function_links WHERE test_id = ?", (test_id,)
            )
        return cursor.rowcount

    def clear_all_links(self) -> int:
        with self.transaction():
            cursor = self._conn.execute("DELETE FROM test_function_links")
        LOGGER.info("Cleared %d test-function link(s)", cursor.rowcount)
        return cursor.rowcount

    def delete_test(self, test_id: int) -> None:
        with self.transaction():
            self._conn.execute("DELETE FROM tests WHERE id = ?", (test_id,))

    def delete_function(self, function_id: int) -> None:
        with self.transaction():
            self._conn.execute("DELETE FROM functions WHERE id = ?", (function_id,))

    def stats(self) -> GraphStats:
        counts = {}
        for key, table in (("tests", "tests"), ("functions", "functions"), ("links", "test_function_links")):
            counts[key] = self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        return GraphStats(**counts)

    def _row_to_test(self, row: sqlite3.Row) -> TestRecord:
        return TestRecord(
            id=row["id"],
            file_path=row["file_path"],
            test_name=row["test_name"],
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )

    def _row_to_function(self, row: sqlite3.Row) -> FunctionRecord:
        return FunctionRecord(
            id=row["id"],
            file_path=row["file_path"],
            function_name=row["function_name"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            commit_hash=row["commit_hash"],
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )


__all__ = [
    "DEFAULT_DB_PATH",
    "GraphStore",
    "GraphStoreError",
    "LinkIntegrityError",
    "SQLiteGraphStore",
]
