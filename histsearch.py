"""
histsearch.py - Fuzzy ranking of history entries against a query.

Ranking, strongest first:
  1. Commands that start with the query (case-insensitive).
  2. Dense fuzzy matches: the query's characters in order, close together.
  3. Sparse fuzzy matches, then substring-only matches.
Within equal scores the input (recency) order is kept.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from histload import HistoryEntry

PREFIX_BONUS = 1000
SCORE_MATCH = 16
WORD_SEPARATORS = frozenset(" \t\n_-/.:,;=|&()[]{}<>'\"`@+~")


@dataclass(frozen=True)
class SearchResult:
    entry: HistoryEntry
    indices: list[int] = field(default_factory=list)
    score: int = 0


def _is_boundary(command: str, i: int) -> bool:
    if i == 0:
        return True
    prev, cur = command[i - 1], command[i]
    return prev in WORD_SEPARATORS or (prev.islower() and cur.isupper())


def fuzzy_match(
    command: str, query: str, folded: tuple[str, ...] | None = None
) -> tuple[int, list[int]] | None:
    """→ Best case-insensitive subsequence alignment of query in command.

    Returns (score, indices) or None when query isn't a subsequence. Scores are
    tiered so an alignment with fewer gap characters always wins; among equal
    gaps more adjacent pairs wins, then more matches on word boundaries.
    `folded` is the command lowercased per character, when already at hand.
    """
    if not query:
        return 0, []

    text = folded if folded is not None else tuple(c.lower() for c in command)
    pattern = [c.lower() for c in query]
    n, m = len(text), len(pattern)

    # Cheap rejection and search window: first feasible start, last feasible end
    first = -1
    at = 0
    for k, ch in enumerate(pattern):
        try:
            at = text.index(ch, at)
        except ValueError:
            return None
        if k == 0:
            first = at
        at += 1
    last = n - 1
    while text[last] != pattern[-1]:
        last -= 1

    tier = m + 1
    gap_cost = tier * tier
    bonus = [0] * n
    for j in range(first, last + 1):
        if _is_boundary(command, j):
            bonus[j] = 1

    # best[j]: best score of pattern[:k+1] with pattern[k] matched at text[j]
    best: list[int | None] = [None] * n
    for j in range(first, last + 1):
        if text[j] == pattern[0]:
            best[j] = bonus[j]
    back: list[list[int]] = []

    for k in range(1, m):
        current: list[int | None] = [None] * n
        pointers = [-1] * n
        far_best: int | None = None  # max over j' <= j-2 of best[j'] + j' * gap_cost
        far_j = -1
        for j in range(first + 1, last + 1):
            jp = j - 2
            if jp >= first and best[jp] is not None:
                candidate = best[jp] + jp * gap_cost
                if far_best is None or candidate > far_best:
                    far_best, far_j = candidate, jp
            if text[j] != pattern[k]:
                continue
            options: list[tuple[int, int]] = []
            if best[j - 1] is not None:
                options.append((best[j - 1] + tier, j - 1))
            if far_best is not None:
                options.append((far_best - (j - 1) * gap_cost, far_j))
            if not options:
                continue
            score, prev_j = max(options, key=lambda o: o[0])
            current[j] = score + bonus[j]
            pointers[j] = prev_j
        back.append(pointers)
        best = current

    end_j = -1
    end_score: int | None = None
    for j in range(first, last + 1):
        if best[j] is not None and (end_score is None or best[j] > end_score):
            end_score, end_j = best[j], j
    if end_score is None:
        return None

    indices = [end_j]
    for pointers in reversed(back):
        indices.append(pointers[indices[-1]])
    indices.reverse()

    return SCORE_MATCH * m + end_score, indices


def search(entries: Iterable[HistoryEntry], query: str) -> list[SearchResult]:
    """→ Ranks entries against query; an empty query returns everything in order"""
    if not query:
        return [SearchResult(entry=entry) for entry in entries]

    query_lower = "".join(c.lower() for c in query)
    results: list[SearchResult] = []
    for entry in entries:
        command_lower = entry.folded_text
        match = fuzzy_match(entry.command, query, entry.folded)
        if match is None and query_lower not in command_lower:
            continue
        score, indices = match if match is not None else (0, [])
        if command_lower.startswith(query_lower):
            score += PREFIX_BONUS
        results.append(SearchResult(entry=entry, indices=indices, score=score))

    # sorted() is stable: equal scores keep recency order
    return sorted(results, key=lambda r: r.score, reverse=True)
