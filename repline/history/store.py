"""
History store: both partitions behind one object.

During an interactive session any I/O failure downgrades the whole store to
in-memory history for the rest of the process and warns exactly once.
Import/export jobs open the store in strict mode, where the same failure is
raised as :class:`PersistenceError` instead.
"""

import logging
import os
import socket
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from repline.errors import PersistenceError
from repline.fuzzy import FuzzyMatch, rank
from repline.history import CommandRecord, HistoryBackend, Partition, utc_now
from repline.history.memory_backend import MemoryHistory
from repline.history.sqlite_backend import SQLiteHistory

logger = logging.getLogger(__name__)


@dataclass
class DedupSet:
    """
    Snapshot of a destination partition used to detect duplicates on import.

    Records with a timestamp match on ``(command, timestamp_ms)``. Records
    without one match on the command text alone, against every stored
    record regardless of its timestamp.
    """

    keys: Set[Tuple[str, Optional[int]]] = field(default_factory=set)
    commands: Set[str] = field(default_factory=set)

    @classmethod
    def from_records(cls, records: List[CommandRecord]) -> "DedupSet":
        dedup = cls()
        for record in records:
            dedup.keys.add(record.dedup_key())
            dedup.commands.add(record.command)
        return dedup

    def contains(self, record: CommandRecord) -> bool:
        if record.command not in self.commands:
            return False
        if record.timestamp is None:
            return True
        return record.dedup_key() in self.keys


class HistoryStore:
    """Both history partitions, persisted under one directory."""

    def __init__(
        self,
        history_dir: Optional[Path] = None,
        strict: bool = False,
        on_warning: Optional[Callable[[str], None]] = None,
        hostname: Optional[str] = None,
    ):
        """
        Open the store.

        Args:
            history_dir: Directory holding ``r.db`` and ``shell.db``; None
                keeps history in memory only
            strict: Raise :class:`PersistenceError` instead of degrading
            on_warning: Receives the single degradation warning
            hostname: Hostname stamped on appended records
        """
        self.history_dir = Path(history_dir).expanduser() if history_dir else None
        self.strict = strict
        self.hostname = hostname or socket.gethostname()
        self._on_warning = on_warning
        self._warned = False
        self._backends: Dict[Partition, HistoryBackend] = {}

        if self.history_dir is None:
            for partition in Partition:
                self._backends[partition] = MemoryHistory(partition)
            return

        try:
            for partition in Partition:
                self._backends[partition] = SQLiteHistory(
                    self.history_dir / partition.filename, partition
                )
        except (sqlite3.Error, OSError) as e:
            self._fail(e)

    # ── state ──────────────────────────────────────────────────────

    @property
    def persistent(self) -> bool:
        return any(isinstance(b, SQLiteHistory) for b in self._backends.values())

    def path(self, partition: Partition) -> Optional[Path]:
        """Container file backing *partition*, or None when in memory."""
        backend = self._backends.get(partition)
        if isinstance(backend, SQLiteHistory):
            return backend.path
        return None

    # ── failure handling ───────────────────────────────────────────

    def _fail(self, exc: Exception):
        error = PersistenceError(f"History storage failed: {exc}")
        if self.strict:
            raise error from exc
        self._degrade(error)

    def _degrade(self, error: PersistenceError):
        """Swap every partition to memory, keeping what can still be read."""
        for partition in Partition:
            backend = self._backends.get(partition)
            if isinstance(backend, MemoryHistory):
                continue
            seed: List[CommandRecord] = []
            if backend is not None:
                try:
                    seed = backend.records()
                except (sqlite3.Error, OSError) as e:
                    logger.debug("Could not salvage %s history: %s", partition.value, e)
                try:
                    backend.close()
                except (sqlite3.Error, OSError) as e:
                    logger.debug("Could not close %s history: %s", partition.value, e)
            self._backends[partition] = MemoryHistory(partition, seed)

        if not self._warned:
            self._warned = True
            message = f"{error}. History is kept in memory for this session."
            logger.warning(message)
            if self._on_warning:
                self._on_warning(message)

    def _run(self, partition: Partition, action: Callable[[HistoryBackend], object]):
        try:
            return action(self._backends[partition])
        except (sqlite3.Error, OSError) as e:
            self._fail(e)
            return action(self._backends[partition])

    # ── writes ─────────────────────────────────────────────────────

    def append(
        self,
        partition: Partition,
        command: str,
        duration: Optional[timedelta] = None,
        error: Optional[bool] = None,
        cwd: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> CommandRecord:
        """Record a command that just finished. Returns the stored record."""
        record = CommandRecord(
            command=command,
            timestamp=timestamp or utc_now(),
            duration=duration,
            error=error,
            cwd=cwd if cwd is not None else os.getcwd(),
            hostname=self.hostname,
            partition=partition,
        )
        return self._run(partition, lambda b: b.append(record))

    def add(self, record: CommandRecord) -> CommandRecord:
        """Append a fully formed record, keeping every field but its id."""
        return self._run(record.partition, lambda b: b.append(record.with_id(None)))

    @contextmanager
    def batch(self, partition: Partition) -> Iterator[None]:
        backend = self._backends[partition]
        try:
            with backend.batch():
                yield
        except (sqlite3.Error, OSError) as e:
            self._fail(e)

    def clear(self, partition: Optional[Partition] = None) -> int:
        """Delete all records of *partition* (both when None)."""
        partitions = [partition] if partition else list(Partition)
        return sum(self._run(p, lambda b: b.clear()) for p in partitions)

    def purge_failed(self, partition: Partition, keep: int,
                     candidates: Optional[List[int]] = None) -> int:
        """
        Delete error-flagged records except the *keep* most recent ones.

        Args:
            partition: Partition to purge
            keep: Number of most recent failures left in place
            candidates: Restrict the purge to these record ids

        Returns:
            Number of records deleted
        """
        allowed = set(candidates) if candidates is not None else None
        failed = [
            r for r in self.records(partition)
            if r.error and (allowed is None or r.id in allowed)
        ]
        doomed = failed[:-keep] if keep > 0 else failed
        if not doomed:
            return 0
        ids = [r.id for r in doomed]
        return self._run(partition, lambda b: b.delete(ids))

    # ── reads ──────────────────────────────────────────────────────

    def records(self, partition: Partition) -> List[CommandRecord]:
        return self._run(partition, lambda b: b.records())

    def count(self, partition: Partition) -> int:
        return self._run(partition, lambda b: b.count())

    def commands(self, partition: Partition) -> List[str]:
        return [r.command for r in self.records(partition)]

    def dedup_set(self, partition: Partition) -> DedupSet:
        return DedupSet.from_records(self.records(partition))

    def search(self, partition: Partition, query: str, limit: Optional[int] = None,
               unique: bool = True) -> List[Tuple[CommandRecord, FuzzyMatch]]:
        """
        Fuzzy-search *partition*, best first, newer first among equal scores.

        With *unique* only the most recent record of each command text is
        considered.
        """
        pool = self.records(partition)
        if unique:
            seen = set()
            latest = []
            for record in reversed(pool):
                if record.command not in seen:
                    seen.add(record.command)
                    latest.append(record)
            pool = latest
        return rank(
            query,
            pool,
            text=lambda r: r.command,
            tiebreak=lambda r: -(r.id or 0),
            limit=limit,
        )

    def suggest(self, partition: Partition, prefix: str, cwd: Optional[str] = None) -> Optional[str]:
        """
        Most recent command extending *prefix*.

        Commands run in *cwd* win; other directories are only consulted
        when nothing there matches.
        """
        if not prefix:
            return None
        fallback = None
        for record in reversed(self.records(partition)):
            if not record.command.startswith(prefix) or record.command == prefix:
                continue
            if cwd is None or record.cwd == cwd:
                return record.command
            if fallback is None:
                fallback = record.command
        return fallback

    def close(self):
        for partition, backend in self._backends.items():
            try:
                backend.close()
            except (sqlite3.Error, OSError) as e:
                logger.debug("Closing %s history failed: %s", partition.value, e)
