"""
Pattern rules for URLs (and words) that the crawler must skip.
"""

import re
from typing import Iterable, List, Pattern, Union


class IgnoreRules:
    """A set of regular expressions; a value matching any of them is ignored."""

    def __init__(self, patterns: Iterable[Union[str, Pattern]] = ()):
        self.patterns: List[Pattern] = [
            p if isinstance(p, re.Pattern) else re.compile(p) for p in patterns
        ]

    def matches(self, value: str) -> bool:
        """Return True if any pattern matches the whole value."""
        return any(pattern.fullmatch(value) for pattern in self.patterns)

    def __len__(self) -> int:
        return len(self.patterns)

    def __repr__(self) -> str:
        return f"IgnoreRules({[p.pattern for p in self.patterns]!r})"
