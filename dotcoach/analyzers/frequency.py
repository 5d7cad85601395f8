# dotcoach/analyzers/frequency.py
from __future__ import annotations

import math
import re
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..utils.schema import AnalysisConfig, CommandPattern, HistoryEntry

# Normalized edit distance below which two commands are the same pattern.
# "ls -la" / "ls -l" (0.17) merge; "git push" / "git pull" (0.25) do not.
DEFAULT_SIMILARITY_THRESHOLD = 0.2

_DIGITS_RE = re.compile(r"\d+")
_SPACE_RE = re.compile(r"\s+")


def edit_distance(a: str, b: str, limit: Optional[int] = None) -> int:
    """
    Levenshtein distance between a and b. With `limit`, stops as soon as the
    distance is known to exceed it and returns limit + 1.
    """
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)
    if limit is not None and len(a) - len(b) > limit:
        return limit + 1

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost))
        if limit is not None and min(cur) > limit:
            return limit + 1
        prev = cur
    return prev[-1]


def similarity_distance(a: str, b: str) -> float:
    """Edit distance divided by the longer length (0.0 identical, 1.0 disjoint)."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return edit_distance(a, b) / longest


def comparison_key(command: str, normalize_numbers: bool = False) -> str:
    if not normalize_numbers:
        return command
    return _SPACE_RE.sub(" ", _DIGITS_RE.sub("0", command)).strip()


class _UnionFind:
    def __init__(self, n: int):
        self.parent = list(range(n))

    def find(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[i] != root:
            self.parent[i], i = root, self.parent[i]
        return root

    def union(self, i: int, j: int) -> None:
        ri, rj = self.find(i), self.find(j)
        if ri == rj:
            return
        # smaller index stays root so the result does not depend on call order
        if rj < ri:
            ri, rj = rj, ri
        self.parent[rj] = ri


def _is_near(a: str, b: str, threshold: float) -> bool:
    longest = max(len(a), len(b))
    if longest == 0:
        return True
    # the length difference is a lower bound on the distance
    if abs(len(a) - len(b)) / longest >= threshold:
        return False
    limit = math.ceil(threshold * longest)
    return edit_distance(a, b, limit=limit) / longest < threshold


def cluster_commands(
    counts: Dict[str, int],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    normalize_numbers: bool = False,
) -> List[List[str]]:
    """
    Group distinct command texts into near-duplicate clusters (union-find, so
    merging is transitive). Returns clusters of member texts.
    """
    texts = sorted(counts)
    keys = [comparison_key(t, normalize_numbers) for t in texts]
    uf = _UnionFind(len(texts))

    for i in range(len(texts)):
        for j in range(i + 1, len(texts)):
            if uf.find(i) == uf.find(j):
                continue
            if _is_near(keys[i], keys[j], threshold):
                uf.union(i, j)

    groups: Dict[int, List[str]] = {}
    for i, text in enumerate(texts):
        groups.setdefault(uf.find(i), []).append(text)
    return list(groups.values())


def _latest(stamps: Iterable[Optional[datetime]]) -> Optional[datetime]:
    present = [s for s in stamps if s is not None]
    return max(present) if present else None


def _sort_key(p: CommandPattern):
    if p.last_used is None:
        return (-p.frequency, 1, 0.0, p.pattern)
    return (-p.frequency, 0, -p.last_used.timestamp(), p.pattern)


def analyze_frequency(
    entries: Iterable[HistoryEntry],
    min_frequency: int = 5,
    top: int = 20,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    normalize_numbers: bool = False,
) -> List[CommandPattern]:
    """
    Cluster history entries into CommandPatterns.

    Exact duplicates are counted first, then near-duplicates are merged
    transitively. Clusters under `min_frequency` are dropped and the rest are
    sorted by frequency, recency, then pattern text, keeping at most `top`.
    """
    # raises pydantic.ValidationError before touching the entries
    AnalysisConfig(
        min_frequency=min_frequency,
        top=top,
        similarity_threshold=similarity_threshold,
        normalize_numbers=normalize_numbers,
    )

    counts: Counter[str] = Counter()
    last_seen: Dict[str, Optional[datetime]] = {}
    for e in entries:
        counts[e.command] += 1
        if e.timestamp is not None:
            prev = last_seen.get(e.command)
            if prev is None or e.timestamp > prev:
                last_seen[e.command] = e.timestamp

    patterns: List[CommandPattern] = []
    for members in cluster_commands(counts, similarity_threshold, normalize_numbers):
        frequency = sum(counts[m] for m in members)
        if frequency < min_frequency:
            continue
        canonical = min(members, key=lambda m: (-counts[m], len(m), m))
        patterns.append(
            CommandPattern(
                pattern=canonical,
                frequency=frequency,
                last_used=_latest(last_seen.get(m) for m in members),
                variations=sorted(members),
            )
        )

    patterns.sort(key=_sort_key)
    return patterns[:top]


def analyze_with_config(entries: Iterable[HistoryEntry], config: AnalysisConfig) -> List[CommandPattern]:
    return analyze_frequency(
        entries,
        min_frequency=config.min_frequency,
        top=config.top,
        similarity_threshold=config.similarity_threshold,
        normalize_numbers=config.normalize_numbers,
    )
