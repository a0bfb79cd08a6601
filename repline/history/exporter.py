"""
History export into a single unified container.

The container is written to a temporary file next to the destination and
moved into place with ``os.replace``, so the destination name only ever
points at a complete file. An existing destination is replaced as a whole.
"""

import logging
import os
import sqlite3
import tempfile
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

from repline.errors import HistoryJobError
from repline.history import Partition
from repline.history.sqlite_backend import create_table, insert_record, is_valid_table_name
from repline.history.store import HistoryStore

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    path: Path
    r_exported: int = 0
    shell_exported: int = 0

    @property
    def exported(self) -> int:
        return self.r_exported + self.shell_exported


def validate_table_names(r_table: str, shell_table: str):
    for name in (r_table, shell_table):
        if not is_valid_table_name(name):
            raise HistoryJobError(
                f"Invalid table name {name!r}: use letters, digits and underscores, "
                "not starting with a digit"
            )
    if r_table == shell_table:
        raise HistoryJobError(f"--r-table and --shell-table must differ (both are {r_table!r})")


def export_history(store: HistoryStore, path, r_table: str = "r",
                   shell_table: str = "shell") -> ExportResult:
    """
    Write both partitions of *store* into a new container at *path*.

    Every field is copied, sequence ids included.

    Raises:
        HistoryJobError: Bad table names, missing parent directory, the
            destination is a live container, or the write failed
    """
    validate_table_names(r_table, shell_table)
    destination = Path(path).expanduser()
    parent = destination.parent
    if not parent.is_dir():
        raise HistoryJobError(f"Directory does not exist: {parent}")

    for partition in Partition:
        live = store.path(partition)
        if live is not None and live.exists() and destination.exists() \
                and os.path.samefile(live, destination):
            raise HistoryJobError(f"Refusing to overwrite the live '{partition.value}' history")

    tables = {Partition.R: r_table, Partition.SHELL: shell_table}
    snapshot = {partition: store.records(partition) for partition in Partition}

    fd, tmp_name = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".tmp", dir=parent)
    os.close(fd)
    try:
        conn = sqlite3.connect(tmp_name)
        try:
            for partition, table in tables.items():
                create_table(conn, table)
                for record in snapshot[partition]:
                    insert_record(conn, table, record, keep_id=True)
            conn.commit()
        finally:
            conn.close()
        os.replace(tmp_name, destination)
    except (sqlite3.Error, OSError) as e:
        with suppress(OSError):
            os.remove(tmp_name)
        raise HistoryJobError(f"Export to {destination} failed: {e}") from e

    logger.debug("Exported history to %s", destination)
    return ExportResult(
        path=destination,
        r_exported=len(snapshot[Partition.R]),
        shell_exported=len(snapshot[Partition.SHELL]),
    )
