"""
History import.

Three source formats are understood:

``foreign``
    Line-oriented transcripts written by other consoles. Two header styles
    are accepted, followed by one or more ``+``-prefixed command lines::

        # time: 2024-01-15 10:30:00 UTC
        # mode: r
        +library(dplyr)

        # 2024-01-15 10:31:00.123456
        +print("hello")

    The first style (radian) carries an explicit mode and a UTC timestamp.
    The second is prompt_toolkit's ``FileHistory`` format, stamped in local
    time, and always lands in the ``r`` partition.

``native``
    The interpreter's own readline history: one command per non-blank line,
    no timestamps, everything into ``r``.

``self``
    A repline container. ``r.db`` / ``shell.db`` import a single partition;
    any other file (or ``--unified``) is read as a unified export.

Every job resolves its source, refuses to import a container onto itself,
parses, checks each record against the destination and only then writes.
"""

import os
import re
import sqlite3
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from repline.errors import HistoryJobError, ImportConflictError, ImportParseError
from repline.history import CommandRecord, Partition, ms_to_datetime
from repline.history.exporter import validate_table_names
from repline.history.sqlite_backend import (
    COLUMNS,
    DEFAULT_TABLE,
    open_readonly,
    read_rows,
    table_exists,
)
from repline.history.store import HistoryStore

ParseOutcome = Tuple[List[CommandRecord], List[ImportParseError]]

_FILE_HISTORY_HEADER = re.compile(r"^# (\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}(?:\.\d+)?)\s*$")

_MODE_PARTITIONS = {
    None: Partition.R,
    "r": Partition.R,
    "repl": Partition.R,
    "python": Partition.R,
    "browse": Partition.R,
    "shell": Partition.SHELL,
}


class ImportSource(str, Enum):
    FOREIGN = "foreign"
    NATIVE = "native"
    SELF = "self"


@dataclass
class ImportJob:
    """Parameters of one import run."""

    source: ImportSource
    file: Optional[Path] = None
    hostname: Optional[str] = None
    dry_run: bool = False
    import_duplicates: bool = False
    unified: bool = False
    r_table: str = Partition.R.value
    shell_table: str = Partition.SHELL.value


@dataclass
class ImportResult:
    """Tally of an import run."""

    imported_r: int = 0
    imported_shell: int = 0
    duplicates_skipped: int = 0
    parse_failed: int = 0
    errors: List[ImportParseError] = field(default_factory=list)
    dry_run: bool = False
    source_path: Optional[Path] = None

    @property
    def imported(self) -> int:
        return self.imported_r + self.imported_shell

    @property
    def skipped(self) -> int:
        return self.duplicates_skipped


# ---------------------------------------------------------------------------
# Source resolution
# ---------------------------------------------------------------------------

def default_source_path(source: ImportSource) -> Optional[Path]:
    """Where each format usually lives; ``self`` has no default."""
    if source == ImportSource.FOREIGN:
        return Path.home() / ".radian_history"
    if source == ImportSource.NATIVE:
        env = os.getenv("PYTHON_HISTORY")
        return Path(env).expanduser() if env else Path.home() / ".python_history"
    return None


def resolve_source(job: ImportJob) -> Path:
    path = Path(job.file).expanduser() if job.file else default_source_path(job.source)
    if path is None:
        raise HistoryJobError(f"--file is required when importing from '{job.source.value}'")
    if not path.is_file():
        raise HistoryJobError(f"Source not found: {path}")
    return path


def check_not_self_import(source: Path, store: HistoryStore):
    """Refuse a source that is physically one of the destination containers."""
    for partition in Partition:
        destination = store.path(partition)
        if destination is None or not destination.exists():
            continue
        if os.path.samefile(source, destination):
            raise ImportConflictError(
                f"Refusing to import {source} into itself "
                f"(it is the live '{partition.value}' history)"
            )


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------

def _read_lines(path: Path) -> List[str]:
    try:
        with open(path, "r", encoding="utf-8", errors="replace", newline="") as f:
            return [line.rstrip("\r\n") for line in f]
    except OSError as e:
        raise HistoryJobError(f"Cannot read {path}: {e}") from e


def _parse_radian_time(value: str) -> datetime:
    value = value.strip()
    if value.endswith("UTC"):
        value = value[:-3].strip()
    return datetime.strptime(value, "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)


def _parse_local_time(value: str) -> datetime:
    fmt = "%Y-%m-%d %H:%M:%S.%f" if "." in value else "%Y-%m-%d %H:%M:%S"
    # Naive local time; astimezone() interprets it in the local zone
    return datetime.strptime(value, fmt).astimezone(timezone.utc)


class _ForeignEntry:
    def __init__(self, line_no: int):
        self.line_no = line_no
        self.lines: List[str] = []
        self.timestamp: Optional[datetime] = None
        self.mode: Optional[str] = None
        self.problem: Optional[str] = None


def parse_foreign(path: Path) -> ParseOutcome:
    """Parse a radian or prompt_toolkit ``FileHistory`` transcript."""
    records: List[CommandRecord] = []
    errors: List[ImportParseError] = []
    entry = _ForeignEntry(1)

    def finish(current: _ForeignEntry):
        if not current.lines:
            return
        location = f"line {current.line_no}"
        if current.problem:
            errors.append(ImportParseError(location, current.problem))
            return
        command = "\n".join(current.lines)
        if not command.strip():
            errors.append(ImportParseError(location, "empty command"))
            return
        mode = current.mode.lower() if current.mode else None
        partition = _MODE_PARTITIONS.get(mode)
        if partition is None:
            errors.append(ImportParseError(location, f"unknown mode '{current.mode}'"))
            return
        records.append(CommandRecord(
            command=command,
            timestamp=current.timestamp,
            partition=partition,
        ))

    for line_no, line in enumerate(_read_lines(path), start=1):
        if line.startswith("# time:"):
            finish(entry)
            entry = _ForeignEntry(line_no)
            try:
                entry.timestamp = _parse_radian_time(line[len("# time:"):])
            except ValueError:
                entry.problem = f"unparseable timestamp {line[len('# time:'):].strip()!r}"
        elif line.startswith("# mode:"):
            entry.mode = line[len("# mode:"):].strip() or None
        elif _FILE_HISTORY_HEADER.match(line):
            finish(entry)
            entry = _ForeignEntry(line_no)
            stamp = _FILE_HISTORY_HEADER.match(line).group(1)
            try:
                entry.timestamp = _parse_local_time(stamp)
            except ValueError:
                entry.problem = f"unparseable timestamp {stamp!r}"
        elif line.startswith("+"):
            if not entry.lines and entry.timestamp is None and entry.problem is None:
                entry.line_no = line_no
            entry.lines.append(line[1:])
        elif not line.strip():
            # A blank line closes the entry; the header does not carry over
            if entry.lines:
                finish(entry)
                entry = _ForeignEntry(line_no + 1)
        # Other comment lines are ignored

    finish(entry)
    return records, errors


def parse_native(path: Path) -> ParseOutcome:
    """One command per non-blank line, leading whitespace preserved."""
    records = [
        CommandRecord(command=line, partition=Partition.R)
        for line in _read_lines(path)
        if line.strip()
    ]
    return records, []


def _row_to_import_record(row: tuple, partition: Partition, table: str,
                          errors: List[ImportParseError]) -> Optional[CommandRecord]:
    values = dict(zip(COLUMNS, row))
    location = f"{table}#{values['id']}"
    command = values["command_line"]
    if not isinstance(command, str) or not command.strip():
        errors.append(ImportParseError(location, "missing command text"))
        return None
    ts_ms = values["start_timestamp"]
    if ts_ms is not None and not isinstance(ts_ms, int):
        errors.append(ImportParseError(location, f"invalid timestamp {ts_ms!r}"))
        return None
    duration_ms = values["duration_ms"]
    if duration_ms is not None and not isinstance(duration_ms, int):
        duration_ms = None
    status = values["exit_status"]
    try:
        timestamp = ms_to_datetime(ts_ms)
    except OverflowError:
        errors.append(ImportParseError(location, f"timestamp out of range {ts_ms!r}"))
        return None
    return CommandRecord(
        command=command,
        timestamp=timestamp,
        duration=timedelta(milliseconds=duration_ms) if duration_ms is not None else None,
        error=None if status is None else bool(status),
        cwd=values["cwd"],
        hostname=values["hostname"],
        partition=partition,
    )


def parse_self(path: Path, unified: bool = False, r_table: str = "r",
               shell_table: str = "shell") -> ParseOutcome:
    """
    Read a repline container.

    Args:
        path: Container file
        unified: Force unified import even for ``r.db`` / ``shell.db``
        r_table: Table holding the ``r`` partition in a unified container
        shell_table: Table holding the ``shell`` partition in a unified container
    """
    single = None if unified else Partition.from_filename(path.name)
    if single is not None:
        tables = {single: DEFAULT_TABLE}
    else:
        validate_table_names(r_table, shell_table)
        tables = {Partition.R: r_table, Partition.SHELL: shell_table}

    records: List[CommandRecord] = []
    errors: List[ImportParseError] = []
    try:
        conn = open_readonly(path)
        try:
            found = 0
            for partition, table in tables.items():
                if not table_exists(conn, table):
                    continue
                found += 1
                for row in read_rows(conn, table):
                    record = _row_to_import_record(row, partition, table, errors)
                    if record is not None:
                        records.append(record)
        finally:
            conn.close()
    except sqlite3.Error as e:
        raise HistoryJobError(f"Cannot read history container {path}: {e}") from e

    if not found:
        raise HistoryJobError(
            f"{path} has none of the tables: {', '.join(tables.values())}"
        )
    return records, errors


def parse_source(job: ImportJob, path: Path) -> ParseOutcome:
    if job.source == ImportSource.FOREIGN:
        return parse_foreign(path)
    if job.source == ImportSource.NATIVE:
        return parse_native(path)
    return parse_self(path, unified=job.unified, r_table=job.r_table, shell_table=job.shell_table)


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------

def run_import(job: ImportJob, store: HistoryStore) -> ImportResult:
    """
    Run *job* against *store*.

    Raises:
        ImportConflictError: The source is one of the store's own containers
        HistoryJobError: The source is missing or unreadable
        PersistenceError: Writing to a strict store failed
    """
    path = resolve_source(job)
    check_not_self_import(path, store)

    records, errors = parse_source(job, path)
    if job.hostname:
        records = [replace(r, hostname=job.hostname) for r in records]

    result = ImportResult(
        parse_failed=len(errors),
        errors=errors,
        dry_run=job.dry_run,
        source_path=path,
    )

    dedup = None
    if not job.import_duplicates:
        dedup = {p: store.dedup_set(p) for p in Partition}

    pending: Dict[Partition, List[CommandRecord]] = {p: [] for p in Partition}
    for record in records:
        if dedup is not None and dedup[record.partition].contains(record):
            result.duplicates_skipped += 1
            continue
        pending[record.partition].append(record)

    result.imported_r = len(pending[Partition.R])
    result.imported_shell = len(pending[Partition.SHELL])

    if not job.dry_run:
        for partition, batch in pending.items():
            if not batch:
                continue
            with store.batch(partition):
                for record in batch:
                    store.add(record)
    return result
