"""
Forget policy: drop failed commands of the running session from history.

Only records this session appended are candidates. Failures from earlier
sessions or from imported history are never touched. The ``delay`` most
recent queued failures of each partition are kept so a mistyped command can
still be recalled and fixed right away.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from repline.history import CommandRecord, Partition
from repline.history.store import HistoryStore


@dataclass
class ForgetPolicy:
    enabled: bool = False
    delay: int = 2
    on_exit_only: bool = False
    queued: Dict[Partition, List[int]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, section: Dict[str, Any]) -> "ForgetPolicy":
        return cls(
            enabled=bool(section.get("enabled", False)),
            delay=max(0, int(section.get("delay", 2))),
            on_exit_only=bool(section.get("on_exit_only", False)),
        )

    def track(self, record: Optional[CommandRecord]):
        """Queue *record* for forgetting when it was recorded as a failure."""
        if not self.enabled or record is None or not record.error or record.id is None:
            return
        self.queued.setdefault(record.partition, []).append(record.id)

    def apply(self, store: HistoryStore) -> int:
        """Purge queued failures now. Returns the number of records removed."""
        if not self.enabled:
            return 0
        removed = 0
        for partition, ids in self.queued.items():
            if len(ids) <= self.delay:
                continue
            removed += store.purge_failed(partition, self.delay, candidates=ids)
            ids[:] = ids[-self.delay:] if self.delay > 0 else []
        return removed

    def after_prompt(self, store: HistoryStore) -> int:
        if self.on_exit_only:
            return 0
        return self.apply(store)

    def at_exit(self, store: HistoryStore) -> int:
        return self.apply(store)
