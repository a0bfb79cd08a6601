"""
Help topics for ``:help`` lookup.

Topics come from Python keywords, pydoc's topic index, builtins and
whatever names currently live in the interpreter namespace. Lookup reuses
the history fuzzy matcher; equal scores are ordered by name.
"""

import builtins
import inspect
import keyword
import pydoc
import pydoc_data.topics
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from repline.fuzzy import FuzzyMatch, rank


@dataclass(frozen=True)
class HelpTopic:
    name: str
    kind: str
    summary: str = ""


def _summary(obj: Any) -> str:
    doc = inspect.getdoc(obj) or ""
    return doc.strip().splitlines()[0] if doc.strip() else ""


def collect_help_topics(namespace: Optional[Dict[str, Any]] = None) -> List[HelpTopic]:
    """Gather every topic, one entry per name (first source wins)."""
    topics: Dict[str, HelpTopic] = {}

    def add(topic: HelpTopic):
        topics.setdefault(topic.name, topic)

    for word in keyword.kwlist:
        add(HelpTopic(word, "keyword"))
    for name in pydoc.Helper.topics:
        add(HelpTopic(name, "topic"))
    for name, obj in vars(builtins).items():
        if name.startswith("_"):
            continue
        add(HelpTopic(name, "builtin", _summary(obj)))
    for name, obj in (namespace or {}).items():
        if name.startswith("_"):
            continue
        kind = "module" if inspect.ismodule(obj) else "name"
        add(HelpTopic(name, kind, _summary(obj) if callable(obj) or inspect.ismodule(obj) else ""))
    return list(topics.values())


def search_help(query: str, topics: Iterable[HelpTopic],
                limit: Optional[int] = 15) -> List[Tuple[HelpTopic, FuzzyMatch]]:
    return rank(query, topics, text=lambda t: t.name, tiebreak=lambda t: t.name, limit=limit)


def _topic_label(name: str) -> Optional[str]:
    """pydoc_data label for a keyword or topic name."""
    target = pydoc.Helper.keywords.get(name, pydoc.Helper.topics.get(name))
    # Keywords may point at a topic name, which points at the label
    if isinstance(target, str) and target in pydoc.Helper.topics:
        target = pydoc.Helper.topics[target]
    if isinstance(target, tuple):
        target = target[0]
    if isinstance(target, str) and target.strip():
        return target.split()[0]
    return None


def render_topic(topic: HelpTopic, namespace: Optional[Dict[str, Any]] = None) -> str:
    """Full help text for one topic."""
    if topic.kind in ("keyword", "topic"):
        label = _topic_label(topic.name)
        text = pydoc_data.topics.topics.get(label, "") if label else ""
        return text.strip() or f"{topic.name}: no documentation available"
    namespace = namespace or {}
    if topic.name in namespace:
        obj = namespace[topic.name]
    elif hasattr(builtins, topic.name):
        obj = getattr(builtins, topic.name)
    else:
        return f"{topic.name}: no documentation available"
    return pydoc.render_doc(obj, title="Help on %s", renderer=pydoc.plaintext)
