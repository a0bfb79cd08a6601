"""
Directory-aware history suggestions for the prompt.
"""

import os
from typing import Callable, Optional

from prompt_toolkit.auto_suggest import AutoSuggest, Suggestion

from repline.history import Partition
from repline.history.store import HistoryStore


class HistoryAutoSuggest(AutoSuggest):
    """
    Suggest the rest of the most recent matching command.

    Commands run in the current directory are preferred; other directories
    are only used when nothing here matches.
    """

    def __init__(self, store: HistoryStore, partition: Callable[[], Partition]):
        self.store = store
        self._partition = partition

    def get_suggestion(self, buffer, document) -> Optional[Suggestion]:
        text = document.text
        if not text.strip() or "\n" in text:
            return None
        match = self.store.suggest(self._partition(), text, cwd=os.getcwd())
        if match is None:
            return None
        return Suggestion(match[len(text):])
