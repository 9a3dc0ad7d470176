"""
Crawl result and its JSON writer.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, TextIO, Union

from .state import CrawlState
from .word_counts import sort_word_counts


@dataclass(frozen=True)
class CrawlResult:
    """Immutable outcome of one crawl."""
    word_counts: Mapping[str, int] = field(default_factory=dict)
    urls_visited: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'word_counts', MappingProxyType(dict(self.word_counts)))

    @classmethod
    def from_state(cls, state: CrawlState, popular_word_count: int) -> 'CrawlResult':
        """Assemble the result once every task of the crawl has finished."""
        counts = state.word_counts.snapshot()
        return cls(
            word_counts=sort_word_counts(counts, popular_word_count) if counts else {},
            urls_visited=len(state.visited)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'wordCounts': dict(self.word_counts),
            'urlsVisited': self.urls_visited
        }


class CrawlResultWriter:
    """Writes a CrawlResult as JSON."""

    def __init__(self, result: CrawlResult):
        self.result = result
        self.logger = logging.getLogger(__name__)

    def write(self, path: Union[str, Path]):
        """Append to the file at path, creating it if needed."""
        path = Path(path)
        with open(path, 'a', encoding='utf-8') as f:
            self.write_to(f)
        self.logger.info(f"Crawl result written to {path}")

    def write_to(self, stream: TextIO):
        json.dump(self.result.to_dict(), stream, indent=2, ensure_ascii=False)
        stream.write("\n")
