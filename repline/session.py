"""
Session state for repline.

A single :class:`Session` lives for the whole process. Only the controller
(:class:`repline.shell.ReplShell` and the meta-commands it dispatches)
mutates it.
"""

import os
import socket
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Optional

from repline.history import Partition


class Mode(Enum):
    """Primary mode. Exactly one is active at a time."""

    INTERPRETER = "r"
    SHELL = "shell"

    @property
    def partition(self) -> Partition:
        return Partition(self.value)


class Outcome(Enum):
    OK = "ok"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass
class SessionFlags:
    """Toggles that are independent of the primary mode."""

    reprex: bool = False
    autoformat: bool = False


@dataclass
class Session:
    mode: Mode = Mode.INTERPRETER
    flags: SessionFlags = field(default_factory=SessionFlags)
    cwd: str = field(default_factory=os.getcwd)
    hostname: str = field(default_factory=socket.gethostname)
    last_outcome: Outcome = Outcome.UNKNOWN
    last_duration: Optional[timedelta] = None

    @classmethod
    def from_config(cls, config, shell_mode: bool = False, reprex: Optional[bool] = None) -> "Session":
        """Initial session from settings; CLI overrides win."""
        mode = Mode.SHELL if shell_mode else Mode(config.get("startup_mode", "r"))
        flags = SessionFlags(
            reprex=bool(config.get("reprex", False)) if reprex is None else reprex,
            autoformat=bool(config.get("autoformat", False)),
        )
        return cls(mode=mode, flags=flags)

    def record_outcome(self, error: Optional[bool], duration: Optional[timedelta]):
        """Feed the last command's result back for prompt rendering."""
        if error is None:
            self.last_outcome = Outcome.UNKNOWN
        else:
            self.last_outcome = Outcome.ERROR if error else Outcome.OK
        self.last_duration = duration

    @property
    def flags_label(self) -> str:
        """``reprex`` / ``reprex+format`` or empty when neither applies."""
        if not self.flags.reprex:
            return ""
        return "reprex+format" if self.flags.autoformat else "reprex"
