"""SQLite-backed assertion store."""

import asyncio
import logging
import re
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from review_worker.models.assertion import AssertionRecord
from review_worker.store.base import ResultStore, ResultStoreError, StatusCountRow

log = logging.getLogger(__name__)

IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

COLUMNS = (
    "message_id",
    "test_id",
    "test_class",
    "status",
    "message",
    "message_group",
    "function",
    "file",
    "line",
)


@dataclass(frozen=True, kw_only=True)
class SqliteResultStore(ResultStore):
    """Reads assertions from the table the application under test writes.

    Every query opens its own read-only connection in a worker thread, so the
    store never holds a lock on the database between pages.
    """

    db_path: Path
    table: str = "simpletest"

    def __post_init__(self) -> None:
        if not IDENTIFIER.match(self.table):
            raise ValueError(f"Invalid table name: {self.table!r}")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Open a read-only connection to the database file.

        Raises:
            ResultStoreError: If the file is missing or a query fails

        """
        if not self.db_path.is_file():
            raise ResultStoreError(f"Results database not found: {self.db_path}")
        try:
            conn = sqlite3.connect(
                f"{self.db_path.resolve().as_uri()}?mode=ro", uri=True
            )
        except sqlite3.Error as e:
            raise ResultStoreError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            raise ResultStoreError(f"Cannot read {self.db_path}: {e}") from e
        finally:
            conn.close()

    async def select(
        self, partition: str, cursor: int, limit: int
    ) -> Sequence[AssertionRecord]:
        """Return the next page of records for a test class."""
        return await asyncio.to_thread(self._select, partition, cursor, limit)

    async def grouped_status_counts(
        self, partition: str | None = None
    ) -> Sequence[StatusCountRow]:
        """Count records per test class and status."""
        return await asyncio.to_thread(self._grouped_status_counts, partition)

    def _select(
        self, partition: str, cursor: int, limit: int
    ) -> Sequence[AssertionRecord]:
        query = (
            f"SELECT {', '.join(COLUMNS)} FROM {self.table} "  # noqa: S608
            "WHERE test_class = ? AND message_id > ? "
            "ORDER BY message_id ASC LIMIT ?"
        )
        with self.connection() as conn:
            rows = conn.execute(query, (partition, cursor, limit)).fetchall()

        log.debug(
            "Read %d record(s) for %s after message_id=%d", len(rows), partition, cursor
        )
        return [
            AssertionRecord(
                message_id=row["message_id"],
                test_id=row["test_id"],
                test_class=row["test_class"],
                status=row["status"],
                message=row["message"] or "",
                message_group=row["message_group"] or "",
                function=row["function"] or "",
                file=row["file"] or "",
                line=row["line"],
            )
            for row in rows
        ]

    def _grouped_status_counts(self, partition: str | None) -> Sequence[StatusCountRow]:
        query = f"SELECT test_class, status, COUNT(*) FROM {self.table}"  # noqa: S608
        params: tuple[str, ...] = ()
        if partition is not None:
            query += " WHERE test_class = ?"
            params = (partition,)
        query += " GROUP BY test_class, status ORDER BY test_class, status"

        with self.connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [(row[0], row[1], int(row[2])) for row in rows]
