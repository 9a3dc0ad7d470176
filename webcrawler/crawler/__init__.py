"""
Web crawler core components.
"""

from .engine import WebCrawler, ParallelWebCrawler, CrawlTask
from .fetcher import WebFetcher, FetchResult
from .ignore import IgnoreRules
from .parser import PageParser, HtmlPageParser, PageParseResult, FetchError
from .result import CrawlResult, CrawlResultWriter
from .state import CrawlState, VisitedSet, WordCounts
from .word_counts import sort_word_counts

__all__ = [
    'WebCrawler', 'ParallelWebCrawler', 'CrawlTask',
    'WebFetcher', 'FetchResult',
    'IgnoreRules',
    'PageParser', 'HtmlPageParser', 'PageParseResult', 'FetchError',
    'CrawlResult', 'CrawlResultWriter',
    'CrawlState', 'VisitedSet', 'WordCounts',
    'sort_word_counts'
]
