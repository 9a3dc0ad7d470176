"""
Shared mutable state for a single crawl run.

The visited set and the word counts are synchronized independently: claiming
a URL never waits on a word-count merge and vice versa.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping


class VisitedSet:
    """Grow-only set of URLs with an atomic insert-if-absent."""

    def __init__(self):
        self._urls = set()
        self._lock = threading.Lock()

    def add_if_absent(self, url: str) -> bool:
        """
        Claim a URL.

        Returns:
            True if this call inserted the URL, False if it was already present
        """
        with self._lock:
            if url in self._urls:
                return False
            self._urls.add(url)
            return True

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._urls

    def __len__(self) -> int:
        with self._lock:
            return len(self._urls)

    def snapshot(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._urls)


class WordCounts:
    """
    Word -> count accumulator safe for concurrent writers.

    Each key is guarded by one lock out of a fixed stripe table, so only
    updates to words hashing to the same stripe serialize.
    """

    def __init__(self, stripes: int = 64):
        if stripes < 1:
            raise ValueError("stripes must be at least 1")
        self._counts: Dict[str, int] = {}
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    def _lock_for(self, word: str) -> threading.Lock:
        return self._locks[hash(word) % len(self._locks)]

    def add(self, word: str, count: int = 1):
        """Atomically add count to the total for word."""
        if count < 0:
            raise ValueError(f"Negative count for {word!r}: {count}")
        with self._lock_for(word):
            self._counts[word] = self._counts.get(word, 0) + count

    def merge(self, counts: Mapping[str, int]):
        """Add every entry of a single page's counts."""
        for word, count in counts.items():
            self.add(word, count)

    def get(self, word: str) -> int:
        with self._lock_for(word):
            return self._counts.get(word, 0)

    def snapshot(self) -> Dict[str, int]:
        # Per-key totals are only final once all writers are done
        return dict(self._counts)

    def __len__(self) -> int:
        return len(self._counts)

    def __bool__(self) -> bool:
        return bool(self._counts)


@dataclass
class CrawlState:
    """State owned by exactly one crawl invocation."""
    visited: VisitedSet = field(default_factory=VisitedSet)
    word_counts: WordCounts = field(default_factory=WordCounts)
