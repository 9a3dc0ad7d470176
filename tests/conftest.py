import random
import threading
import time
from typing import Dict, List, Optional

import pytest

from webcrawler.crawler.parser import FetchError, PageParser, PageParseResult


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float):
        with self._lock:
            self._now += seconds


class FakePageParser(PageParser):
    """Serves pages from an in-memory link graph and records every fetch."""

    def __init__(self, pages: Dict[str, dict], failing=(), clock: Optional[FakeClock] = None,
                 advance: float = 0.0, max_delay: float = 0.0, seed: Optional[int] = None):
        self.pages = pages
        self.failing = set(failing)
        self.clock = clock
        self.advance = advance
        self.max_delay = max_delay
        self.random = random.Random(seed)
        self.trace: List[str] = []
        self.fetch_times: List[float] = []
        self._lock = threading.Lock()

    def parse(self, url: str) -> PageParseResult:
        with self._lock:
            self.trace.append(url)
            if self.clock is not None:
                self.fetch_times.append(self.clock())
            delay = self.random.uniform(0, self.max_delay) if self.max_delay else 0.0

        if delay:
            time.sleep(delay)
        if self.clock is not None and self.advance:
            self.clock.advance(self.advance)

        if url in self.failing:
            raise FetchError(url, "simulated failure")

        page = self.pages.get(url)
        if page is None:
            raise FetchError(url, "not found")
        return PageParseResult(links=page.get('links', ()), word_counts=page.get('words', {}))


def page(links=(), **words):
    return {'links': list(links), 'words': words}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def simple_site():
    """A links to B and C, B links to D."""
    return {
        'http://a': page(['http://b', 'http://c'], apple=2, banana=1),
        'http://b': page(['http://d'], banana=3),
        'http://c': page([], cherry=1, apple=1),
        'http://d': page([], durian=4),
    }
