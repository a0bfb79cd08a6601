"""
In-memory history backend.

Used when history is disabled and as the fallback after a persistence
failure, in which case it is seeded with whatever could still be read.
"""

from typing import Iterable, List, Optional

from repline.history import CommandRecord, HistoryBackend, Partition


class MemoryHistory(HistoryBackend):
    """Process-local history for one partition."""

    def __init__(self, partition: Partition, records: Optional[Iterable[CommandRecord]] = None):
        self.partition = partition
        self._records: List[CommandRecord] = list(records or [])
        self._next_id = max((r.id or 0 for r in self._records), default=0) + 1

    def append(self, record: CommandRecord) -> CommandRecord:
        stored = record.with_id(self._next_id)
        self._next_id += 1
        self._records.append(stored)
        return stored

    def records(self) -> List[CommandRecord]:
        return list(self._records)

    def delete(self, ids: Iterable[int]) -> int:
        doomed = set(ids)
        before = len(self._records)
        self._records = [r for r in self._records if r.id not in doomed]
        return before - len(self._records)

    def clear(self) -> int:
        removed = len(self._records)
        self._records = []
        return removed

    def count(self) -> int:
        return len(self._records)
