"""
History layer for repline.

Two partitions are kept apart: commands evaluated by the interpreter (``r``)
and commands run in shell mode (``shell``). Each partition is an ordered,
append-mostly log of :class:`CommandRecord` held by a :class:`HistoryBackend`.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple


class Partition(str, Enum):
    """Origin of a command. The value doubles as the container file stem."""

    R = "r"
    SHELL = "shell"

    @property
    def filename(self) -> str:
        return f"{self.value}.db"

    @classmethod
    def from_filename(cls, name: str) -> Optional["Partition"]:
        """Partition for a reserved container filename, or None."""
        for partition in cls:
            if name == partition.filename:
                return partition
        return None


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def datetime_to_ms(value: Optional[datetime]) -> Optional[int]:
    """Unix milliseconds for an aware (or UTC-naive) datetime."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def ms_to_datetime(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return _EPOCH + timedelta(milliseconds=value)


def utc_now() -> datetime:
    """Current time, truncated to the millisecond precision used on disk."""
    return ms_to_datetime(datetime_to_ms(datetime.now(timezone.utc)))


@dataclass(frozen=True)
class CommandRecord:
    """
    One executed command.

    Timestamps and durations are normalised to millisecond precision on
    construction so that a record compares equal to itself after a round
    trip through a container.
    """

    command: str
    timestamp: Optional[datetime] = None
    duration: Optional[timedelta] = None
    error: Optional[bool] = None
    cwd: Optional[str] = None
    hostname: Optional[str] = None
    partition: Partition = Partition.R
    id: Optional[int] = None

    def __post_init__(self):
        if self.timestamp is not None:
            object.__setattr__(self, "timestamp", ms_to_datetime(datetime_to_ms(self.timestamp)))
        if self.duration is not None:
            ms = self.duration // timedelta(milliseconds=1)
            object.__setattr__(self, "duration", timedelta(milliseconds=ms))
        object.__setattr__(self, "partition", Partition(self.partition))

    @property
    def timestamp_ms(self) -> Optional[int]:
        return datetime_to_ms(self.timestamp)

    @property
    def duration_ms(self) -> Optional[int]:
        if self.duration is None:
            return None
        return self.duration // timedelta(milliseconds=1)

    @property
    def exit_status(self) -> Optional[int]:
        if self.error is None:
            return None
        return 1 if self.error else 0

    def dedup_key(self) -> Tuple[str, Optional[int]]:
        """Equality key for duplicate detection: (command text, timestamp ms)."""
        return (self.command, self.timestamp_ms)

    def local_time(self, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
        """Timestamp rendered in the local timezone ("" when unknown)."""
        if self.timestamp is None:
            return ""
        return self.timestamp.astimezone().strftime(fmt)

    def with_id(self, record_id: Optional[int]) -> "CommandRecord":
        return replace(self, id=record_id)

    def content_key(self) -> tuple:
        """Every stored field except the sequence id."""
        return (
            self.partition,
            self.command,
            self.timestamp_ms,
            self.duration_ms,
            self.error,
            self.cwd,
            self.hostname,
        )


class HistoryBackend(ABC):
    """Abstract base class for a single partition's log."""

    partition: Partition

    @abstractmethod
    def append(self, record: CommandRecord) -> CommandRecord:
        """
        Persist *record* at the end of the log.

        Returns:
            The stored record carrying its newly assigned sequence id
        """
        pass

    @abstractmethod
    def records(self) -> List[CommandRecord]:
        """Point-in-time snapshot of every record, in sequence-id order."""
        pass

    @abstractmethod
    def delete(self, ids: Iterable[int]) -> int:
        """Delete records by id. Returns the number removed."""
        pass

    @abstractmethod
    def clear(self) -> int:
        """Delete every record. Returns the number removed."""
        pass

    def count(self) -> int:
        return len(self.records())

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Group several appends into one unit of work."""
        yield

    def close(self):
        pass


__all__ = [
    "Partition",
    "CommandRecord",
    "HistoryBackend",
    "datetime_to_ms",
    "ms_to_datetime",
    "utc_now",
]
