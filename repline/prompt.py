"""
Prompt rendering.

Prompt formats are plain strings with placeholders:

  {status}   status_error after a failed command, status_success otherwise
  {elapsed}  duration of the last command, only above the threshold
  {cwd}      working directory, home shown as ~
  {mode}     [reprex] or [reprex+format] when reprex mode is on

Unknown placeholders are left as typed.
"""

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from repline.session import Mode, Outcome, Session


class _Placeholders(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def format_elapsed(duration: timedelta) -> str:
    """Compact duration: ``850ms``, ``12s``, ``3m4s``, ``1h2m3s``."""
    total_ms = int(duration.total_seconds() * 1000)
    if total_ms < 1000:
        return f"{total_ms}ms"
    seconds = total_ms // 1000
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m{seconds}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes}m{seconds}s"


def display_path(path: str) -> str:
    home = str(Path.home())
    if path == home:
        return "~"
    if path.startswith(home + "/"):
        return "~" + path[len(home):]
    return path


def _elapsed(duration: Optional[timedelta], threshold_ms: int) -> str:
    if duration is None:
        return ""
    if duration.total_seconds() * 1000 < threshold_ms:
        return ""
    return format_elapsed(duration) + " "


def render_prompt(session: Session, prompt_config: Dict[str, Any]) -> str:
    """Expand the prompt format for the session's current mode."""
    if session.mode == Mode.SHELL:
        template = prompt_config.get("shell_format", "[{cwd}] $ ")
    else:
        template = prompt_config.get("format", "{status}{mode}>>> ")

    if session.last_outcome == Outcome.ERROR:
        status = prompt_config.get("status_error", "")
    else:
        status = prompt_config.get("status_success", "")
    label = session.flags_label
    values = _Placeholders(
        status=status,
        elapsed=_elapsed(session.last_duration, int(prompt_config.get("elapsed_threshold_ms", 5000))),
        cwd=display_path(session.cwd),
        mode=f"[{label}] " if label else "",
    )
    return template.format_map(values)


def continuation_prompt(prompt_config: Dict[str, Any]) -> str:
    return prompt_config.get("continuation", "... ")
