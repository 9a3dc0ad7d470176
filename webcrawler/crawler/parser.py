"""
Page parser: turns a URL into its outgoing links and word counts.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urldefrag, urljoin, urlparse
from urllib.request import url2pathname

from bs4 import BeautifulSoup, Comment

from ..profiler import profiled
from .fetcher import WebFetcher
from .ignore import IgnoreRules


class FetchError(Exception):
    """A single page could not be fetched or parsed."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


@dataclass(frozen=True)
class PageParseResult:
    """Links and word counts extracted from one page."""
    links: Tuple[str, ...] = ()
    word_counts: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'links', tuple(self.links))
        object.__setattr__(self, 'word_counts', MappingProxyType(dict(self.word_counts)))


class PageParser(ABC):
    """Capability interface for fetching and parsing a single page."""

    @profiled
    @abstractmethod
    def parse(self, url: str) -> PageParseResult:
        """
        Fetch and parse the page at url.

        Raises:
            FetchError: the page could not be retrieved or parsed
        """


class HtmlPageParser(PageParser):
    """
    Parses HTML pages fetched over HTTP(S) or read from ``file:`` URLs.
    """

    LINK_SCHEMES = ('http', 'https', 'file')

    def __init__(self, fetcher: Optional[WebFetcher] = None,
                 ignored_words: Iterable[str] = ()):
        self.fetcher = fetcher
        self.ignored_words = ignored_words if isinstance(ignored_words, IgnoreRules) \
            else IgnoreRules(ignored_words)
        self.logger = logging.getLogger(__name__)

        self.punctuation_pattern = re.compile(r'[^\w]+')

    def parse(self, url: str) -> PageParseResult:
        html_content = self._load(url)

        try:
            soup = BeautifulSoup(html_content, 'lxml')
        except Exception as e:
            raise FetchError(url, f"Unparsable content: {e}") from e

        for script in soup(["script", "style", "noscript"]):
            script.decompose()
        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        links = self._extract_links(soup, url)
        word_counts = self._count_words(soup)

        self.logger.debug(f"Parsed {url}: {sum(word_counts.values())} words, {len(links)} links")
        return PageParseResult(links=links, word_counts=word_counts)

    def _load(self, url: str) -> str:
        scheme = urlparse(url).scheme.lower()

        if scheme == 'file':
            path = Path(url2pathname(urlparse(url).path))
            try:
                return path.read_text(encoding='utf-8', errors='replace')
            except OSError as e:
                raise FetchError(url, f"Cannot read file: {e}") from e

        if scheme not in ('http', 'https'):
            raise FetchError(url, f"Unsupported scheme: {scheme or '(none)'}")
        if self.fetcher is None:
            raise FetchError(url, "No fetcher configured for remote URLs")

        result = self.fetcher.fetch(url)
        if not result.ok:
            raise FetchError(url, result.error or "Empty response")
        return result.content

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        """Extract absolute links in document order, without fragments or duplicates."""
        links = {}

        for link in soup.find_all('a', href=True):
            href = link['href'].strip()
            if not href or href.startswith('#'):
                continue

            try:
                absolute_url, _ = urldefrag(urljoin(base_url, href))
                scheme = urlparse(absolute_url).scheme.lower()
            except ValueError as e:
                self.logger.debug(f"Skipping malformed link {href!r} on {base_url}: {e}")
                continue

            if scheme in self.LINK_SCHEMES:
                links.setdefault(absolute_url, None)

        return list(links)

    def _count_words(self, soup: BeautifulSoup) -> Counter:
        body = soup.find('body') or soup
        text = body.get_text(separator=' ', strip=True)

        counts = Counter()
        for token in text.split():
            word = self.punctuation_pattern.sub('', token).lower()
            if word and not self.ignored_words.matches(word):
                counts[word] += 1
        return counts
