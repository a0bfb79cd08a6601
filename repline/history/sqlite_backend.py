"""
SQLite storage backend for one history partition.

Each partition lives in its own container file (``r.db`` / ``shell.db``)
with a single ``history`` table. Unified export containers reuse the same
table layout under caller-chosen table names.
"""

import re
import sqlite3
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

from repline.history import CommandRecord, HistoryBackend, Partition, ms_to_datetime

DEFAULT_TABLE = "history"

TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

COLUMNS = (
    "id",
    "command_line",
    "start_timestamp",
    "hostname",
    "cwd",
    "duration_ms",
    "exit_status",
)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    command_line TEXT NOT NULL,
    start_timestamp INTEGER,
    hostname TEXT,
    cwd TEXT,
    duration_ms INTEGER,
    exit_status INTEGER
);
CREATE INDEX IF NOT EXISTS idx_{table}_command_line ON {table} (command_line);
CREATE INDEX IF NOT EXISTS idx_{table}_start_timestamp ON {table} (start_timestamp);
"""

# Shown by ``:history schema`` and ``repline history schema``
SCHEMA_DESCRIPTION = [
    ("id", "INTEGER", "Sequence id, monotonic, never reused"),
    ("command_line", "TEXT", "Command text, verbatim (may span lines)"),
    ("start_timestamp", "INTEGER", "Start time, Unix milliseconds UTC"),
    ("hostname", "TEXT", "Host the command ran on"),
    ("cwd", "TEXT", "Working directory at execution"),
    ("duration_ms", "INTEGER", "Wall-clock duration in milliseconds"),
    ("exit_status", "INTEGER", "1 when an error was detected, 0 otherwise"),
]


def is_valid_table_name(name: str) -> bool:
    return bool(name) and TABLE_NAME_RE.match(name) is not None


def create_table(conn: sqlite3.Connection, table: str = DEFAULT_TABLE):
    """Create *table* and its indexes if missing."""
    if not is_valid_table_name(table):
        raise ValueError(f"Invalid table name: {table!r}")
    conn.executescript(_SCHEMA.format(table=table))


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
    ).fetchone()
    return row is not None


def read_rows(conn: sqlite3.Connection, table: str) -> List[tuple]:
    """Raw rows of *table* in id order, columns as in :data:`COLUMNS`."""
    if not is_valid_table_name(table):
        raise ValueError(f"Invalid table name: {table!r}")
    return conn.execute(
        f"SELECT {', '.join(COLUMNS)} FROM {table} ORDER BY id"
    ).fetchall()


def row_to_record(row: Sequence, partition: Partition) -> CommandRecord:
    record_id, command, ts_ms, hostname, cwd, duration_ms, exit_status = row
    return CommandRecord(
        id=record_id,
        command=command,
        timestamp=ms_to_datetime(ts_ms),
        duration=timedelta(milliseconds=duration_ms) if duration_ms is not None else None,
        error=None if exit_status is None else exit_status != 0,
        cwd=cwd,
        hostname=hostname,
        partition=partition,
    )


def insert_record(conn: sqlite3.Connection, table: str, record: CommandRecord,
                  keep_id: bool = False) -> int:
    """Insert *record* and return its row id."""
    values = (
        record.command,
        record.timestamp_ms,
        record.hostname,
        record.cwd,
        record.duration_ms,
        record.exit_status,
    )
    if keep_id and record.id is not None:
        cursor = conn.execute(
            f"INSERT INTO {table} ({', '.join(COLUMNS)}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (record.id,) + values,
        )
    else:
        cursor = conn.execute(
            f"INSERT INTO {table} ({', '.join(COLUMNS[1:])}) VALUES (?, ?, ?, ?, ?, ?)",
            values,
        )
    return cursor.lastrowid


class SQLiteHistory(HistoryBackend):
    """SQLite file-based history for one partition."""

    def __init__(self, path: Path, partition: Partition, table: str = DEFAULT_TABLE):
        """
        Open (creating if needed) a partition container.

        Args:
            path: Container file, e.g. ``~/.repline/history/r.db``
            partition: Partition the records belong to
            table: Table holding the records
        """
        self.path = Path(path).expanduser()
        self.partition = partition
        self.table = table
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.path))
        self._batch_depth = 0
        create_table(self._conn, table)
        self._conn.commit()

    def _commit(self):
        if self._batch_depth == 0:
            self._conn.commit()

    def append(self, record: CommandRecord) -> CommandRecord:
        row_id = insert_record(self._conn, self.table, record)
        self._commit()
        return record.with_id(row_id)

    def records(self) -> List[CommandRecord]:
        return [row_to_record(row, self.partition) for row in read_rows(self._conn, self.table)]

    def delete(self, ids: Iterable[int]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        cursor = self._conn.executemany(
            f"DELETE FROM {self.table} WHERE id = ?", [(i,) for i in ids]
        )
        self._commit()
        return cursor.rowcount

    def clear(self) -> int:
        removed = self.count()
        self._conn.execute(f"DELETE FROM {self.table}")
        self._commit()
        return removed

    def count(self) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()[0]

    @contextmanager
    def batch(self) -> Iterator[None]:
        self._batch_depth += 1
        try:
            yield
        except BaseException:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self._conn.rollback()
            raise
        else:
            self._batch_depth -= 1
            self._commit()

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def open_readonly(path: Path) -> sqlite3.Connection:
    """Open an existing container without creating or modifying it."""
    uri = Path(path).expanduser().resolve().as_uri() + "?mode=ro"
    return sqlite3.connect(uri, uri=True)

