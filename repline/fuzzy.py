"""
Shared fuzzy matching for history search and help lookup.

A query matches a candidate when all of its characters appear in the
candidate, case-insensitively and in order. Among all such alignments the
one with the best score is chosen:

  match            +16 per matched character
  consecutive      +16 when a character directly follows the previous match
  boundary          +8 for a non-consecutive match at a word start
                       (string start, after a non-alphanumeric character,
                       or a camelCase hump)
  gap               -3 to open, -1 per additional skipped character
  length         -0.05 per candidate character

Consecutive runs always outweigh boundary bonuses, so a candidate holding
the query as a substring never scores below one of the same length where
the characters are scattered.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

SCORE_MATCH = 16
BONUS_CONSECUTIVE = 16
BONUS_BOUNDARY = 8
GAP_START = 3
GAP_EXTENSION = 1
LENGTH_PENALTY = 0.05

T = TypeVar("T")


@dataclass(frozen=True)
class FuzzyMatch:
    """Result of a fuzzy match: score (higher is better) and matched indices."""

    score: float
    indices: Tuple[int, ...] = field(default_factory=tuple)


def _is_boundary(candidate: str, pos: int) -> bool:
    if pos == 0:
        return True
    prev, cur = candidate[pos - 1], candidate[pos]
    if not prev.isalnum():
        return cur.isalnum()
    return prev.islower() and cur.isupper()


def _fold(s: str) -> str:
    # Per-character lowering keeps indices aligned with the original string
    return "".join(c.lower() if len(c.lower()) == 1 else c for c in s)


def _is_subsequence(query: str, text: str) -> bool:
    start = 0
    for ch in query:
        start = text.find(ch, start)
        if start < 0:
            return False
        start += 1
    return True


def fuzzy_match(query: str, candidate: str) -> Optional[FuzzyMatch]:
    """
    Match *query* against *candidate*.

    Returns None when the query is not a case-insensitive subsequence of the
    candidate. An empty query matches everything with score 0.

    Examples:
        fuzzy_match("rst", "restart")  -> indices (0, 2, 3)
        fuzzy_match("xyz", "restart")  -> None
    """
    if not query:
        return FuzzyMatch(score=0)

    q = _fold(query)
    text = _fold(candidate)
    if not _is_subsequence(q, text):
        return None

    # rows[i] maps candidate position -> (best score with q[i] matched there,
    # position of q[i - 1] in that alignment)
    rows = [{
        pos: (SCORE_MATCH + (BONUS_BOUNDARY if _is_boundary(candidate, pos) else 0), -1)
        for pos, c in enumerate(text) if c == q[0]
    }]
    for i in range(1, len(q)):
        prev = rows[-1]
        prev_positions = sorted(prev)
        row = {}
        # Best of (score[p] + p * GAP_EXTENSION) over positions p < pos - 1
        best_far = None
        k = 0
        for pos in range(i, len(text)):
            while k < len(prev_positions) and prev_positions[k] < pos - 1:
                p = prev_positions[k]
                value = prev[p][0] + p * GAP_EXTENSION
                if best_far is None or value > best_far[0]:
                    best_far = (value, p)
                k += 1
            if text[pos] != q[i]:
                continue
            options = []
            if pos - 1 in prev:
                options.append((prev[pos - 1][0] + SCORE_MATCH + BONUS_CONSECUTIVE, pos - 1))
            if best_far is not None:
                # A gap of d = pos - p - 1 characters costs GAP_START + (d - 1) * GAP_EXTENSION
                bonus = BONUS_BOUNDARY if _is_boundary(candidate, pos) else 0
                gapped = best_far[0] - (pos - 2) * GAP_EXTENSION - GAP_START
                options.append((gapped + SCORE_MATCH + bonus, best_far[1]))
            if options:
                row[pos] = max(options)
        if not row:
            return None
        rows.append(row)

    last = rows[-1]
    end = max(last, key=lambda p: (last[p][0], -p))
    raw = last[end][0]
    indices = []
    pos = end
    for row in reversed(rows):
        indices.append(pos)
        pos = row[pos][1]
    indices.reverse()
    score = round(raw - LENGTH_PENALTY * len(candidate), 4)
    return FuzzyMatch(score=score, indices=tuple(indices))


def fuzzy_score(query: str, candidate: str) -> Optional[float]:
    """Score-only form of :func:`fuzzy_match`."""
    match = fuzzy_match(query, candidate)
    return match.score if match else None


def rank(
    query: str,
    candidates: Iterable[T],
    text: Callable[[T], str] = str,
    tiebreak: Optional[Callable[[T], object]] = None,
    limit: Optional[int] = None,
) -> List[Tuple[T, FuzzyMatch]]:
    """
    Rank *candidates* by descending fuzzy score.

    Args:
        query: Pattern typed so far
        candidates: Full candidate pool (recomputed on every call)
        text: Extracts the searchable text of a candidate
        tiebreak: Sort key applied ascending among equal scores
        limit: Maximum number of results

    Returns:
        List of (candidate, match) pairs for matching candidates only
    """
    scored = []
    for item in candidates:
        match = fuzzy_match(query, text(item))
        if match is not None:
            scored.append((item, match))

    if tiebreak is None:
        scored.sort(key=lambda pair: -pair[1].score)
    else:
        scored.sort(key=lambda pair: (-pair[1].score, tiebreak(pair[0])))

    if limit is not None:
        scored = scored[:limit]
    return scored
