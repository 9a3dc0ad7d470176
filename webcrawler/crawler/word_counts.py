"""
Selection of the most popular words from a crawl.
"""

from typing import Dict, Mapping


def sort_word_counts(word_counts: Mapping[str, int], popular_word_count: int) -> Dict[str, int]:
    """
    Keep the popular_word_count most frequent words.

    Entries are ordered by count descending, then by word ascending, and the
    returned dict preserves that order.
    """
    if popular_word_count <= 0:
        return {}

    ranked = sorted(word_counts.items(), key=lambda item: (-item[1], item[0]))
    return dict(ranked[:popular_word_count])
