"""
Terminal message helpers for repline.

Console messages go to stdout, diagnostics (``print_error``,
``print_warning``) go to stderr so that job tallies and evaluated output
stay separable from them. Colour is decided per target stream: a piped
stdout gets plain text even when stderr is still a terminal.
"""

import os
import platform
import sys
from typing import Optional, TextIO

# ANSI codes
BOLD = "1"
DIM = "2"
RED = "31"
GREEN = "32"
YELLOW = "33"
CYAN = "36"

# Enable ANSI escape sequences on Windows 10+
if platform.system() == "Windows":
    os.system("")


def supports_color(stream: Optional[TextIO]) -> bool:
    """True when *stream* is a terminal and ``NO_COLOR`` is unset."""
    if os.getenv("NO_COLOR") or stream is None:
        return False
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:
        # Closed stream
        return False


def colorize(code: str, text: str, stream: Optional[TextIO] = None) -> str:
    """Wrap *text* in an ANSI escape if *stream* (stdout by default) shows colour."""
    if supports_color(stream if stream is not None else sys.stdout):
        return f"\033[{code}m{text}\033[0m"
    return text


def _emit(code: str, msg: str, default: TextIO, **kw):
    stream = kw.pop("file", None) or default
    print(colorize(code, msg, stream), file=stream, **kw)


def print_success(msg: str, **kw):
    _emit(GREEN, msg, sys.stdout, **kw)


def print_error(msg: str, **kw):
    """Print a red error message to stderr."""
    _emit(RED, msg, sys.stderr, **kw)


def print_warning(msg: str, **kw):
    """Print a yellow warning message to stderr."""
    _emit(YELLOW, msg, sys.stderr, **kw)


def print_info(msg: str, **kw):
    _emit(CYAN, msg, sys.stdout, **kw)


def print_header(msg: str, **kw):
    _emit(BOLD, msg, sys.stdout, **kw)


def print_dim(msg: str, **kw):
    _emit(DIM, msg, sys.stdout, **kw)


def format_table(rows, headers) -> str:
    """Render *rows* as a left-aligned plain-text table."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))
    lines = ["  ".join(h.ljust(widths[i]) for i, h in enumerate(headers)).rstrip()]
    for row in rows:
        lines.append("  ".join(str(c).ljust(widths[i]) for i, c in enumerate(row)).rstrip())
    return "\n".join(lines)
