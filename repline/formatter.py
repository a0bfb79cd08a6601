"""
External code formatter used by reprex mode's autoformat flag.

The formatter is a separate program found on PATH (``black`` by default);
repline only pipes source through it.
"""

import logging
import shutil
import subprocess
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = ("black", "--quiet", "-")


class ExternalFormatter:
    """Runs source code through an external formatter command."""

    def __init__(self, command: Sequence[str] = DEFAULT_COMMAND, timeout: float = 10.0):
        self.command = list(command)
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.command[0]

    def available(self) -> bool:
        return shutil.which(self.command[0]) is not None

    def format(self, source: str) -> Optional[str]:
        """
        Return formatted *source*, or None when formatting failed.

        A trailing newline added by the formatter is stripped so the result
        can be evaluated like typed input.
        """
        executable = shutil.which(self.command[0])
        if executable is None:
            return None
        try:
            result = subprocess.run(
                [executable] + self.command[1:],
                input=source,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("Formatter %s failed: %s", self.name, e)
            return None
        if result.returncode != 0:
            logger.debug("Formatter %s exited %d: %s", self.name, result.returncode, result.stderr.strip())
            return None
        return result.stdout.rstrip("\n")
