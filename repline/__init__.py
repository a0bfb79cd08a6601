"""
repline - A richer interactive console around an embedded interpreter.

A REPL front-end that adds:
- Interpreter and shell modes, with a reproducible-example (reprex) flag
- Persistent, searchable history with import and export
- Fuzzy search over history and help topics
- A busy spinner and success/failure status in the prompt
"""

__version__ = "0.1.0"
__author__ = "repline Contributors"

from repline.shell import ReplShell
from repline.history.store import HistoryStore
from repline.fuzzy import fuzzy_match

__all__ = ["ReplShell", "HistoryStore", "fuzzy_match"]
