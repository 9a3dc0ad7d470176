"""
Parallel crawl engine.

A crawl is decomposed into one CrawlTask per URL. Tasks run on a bounded
fork/join pool, claim their URL in the shared visited set, merge the page's
word counts and fork one child per outgoing link.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import psutil

from ..profiler import profiled
from ..utils.config import CrawlerConfig
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlMetrics
from .ignore import IgnoreRules
from .parser import FetchError, PageParser
from .result import CrawlResult
from .scheduler import ForkJoinScheduler, RecursiveAction
from .state import CrawlState

logger = get_crawler_logger(__name__)


class WebCrawler(ABC):
    """Capability interface of a web crawler."""

    @profiled
    @abstractmethod
    def crawl(self, starting_urls: List[str]) -> CrawlResult:
        """Crawl from the given seeds and return the aggregated result."""

    @abstractmethod
    def get_max_parallelism(self) -> int:
        """Number of threads the host can usefully run."""


class CrawlTask(RecursiveAction):
    """Visit one URL and, recursively, the pages it links to."""

    def __init__(self, url: str, remaining_depth: int, deadline: float,
                 context: 'CrawlContext'):
        super().__init__()
        self.url = url
        self.remaining_depth = remaining_depth
        self.deadline = deadline
        self.context = context

    def compute(self) -> None:
        ctx = self.context

        if self.remaining_depth <= 0:
            ctx.metrics.record_cutoff('depth')
            return
        if ctx.clock() >= self.deadline:
            ctx.metrics.record_cutoff('deadline')
            return

        if ctx.ignore_rules.matches(self.url):
            ctx.metrics.record_ignored()
            logger.log_url_event(logging.DEBUG, self.url, "Ignoring URL")
            return

        if not ctx.state.visited.add_if_absent(self.url):
            ctx.metrics.record_duplicate_skipped()
            return

        try:
            page = ctx.page_parser.parse(self.url)
        except FetchError as e:
            ctx.metrics.record_fetch_error()
            logger.log_url_event(logging.WARNING, self.url, f"Fetch failed ({e.reason})")
            return
        ctx.metrics.record_page_fetched()

        ctx.state.word_counts.merge(page.word_counts)

        children = [
            CrawlTask(link, self.remaining_depth - 1, self.deadline, ctx)
            for link in page.links
        ]
        if children:
            ctx.scheduler.invoke_all(children)


class CrawlContext:
    """Everything the tasks of one crawl invocation share."""

    def __init__(self, page_parser: PageParser, ignore_rules: IgnoreRules,
                 clock: Callable[[], float], scheduler: ForkJoinScheduler,
                 state: CrawlState, metrics: CrawlMetrics):
        self.page_parser = page_parser
        self.ignore_rules = ignore_rules
        self.clock = clock
        self.scheduler = scheduler
        self.state = state
        self.metrics = metrics


class ParallelWebCrawler(WebCrawler):
    """
    Crawls pages in parallel on a fork/join worker pool.

    Each call to crawl() gets its own worker pool and CrawlState.
    """

    def __init__(self, page_parser: PageParser, timeout: float, popular_word_count: int,
                 max_depth: int, ignore_rules: Optional[IgnoreRules] = None,
                 parallelism: int = 1, clock: Callable[[], float] = time.monotonic,
                 metrics_factory: Callable[[], CrawlMetrics] = CrawlMetrics):
        self.page_parser = page_parser
        self.timeout = timeout
        self.popular_word_count = popular_word_count
        self.max_depth = max_depth
        self.ignore_rules = ignore_rules or IgnoreRules()
        self.parallelism = max(1, min(parallelism, self.get_max_parallelism()))
        self.clock = clock
        self.metrics_factory = metrics_factory
        self.last_metrics: Optional[CrawlMetrics] = None

    @classmethod
    def from_config(cls, config: CrawlerConfig, page_parser: PageParser,
                    **kwargs) -> 'ParallelWebCrawler':
        return cls(
            page_parser=page_parser,
            timeout=config.timeout_seconds,
            popular_word_count=config.popular_word_count,
            max_depth=config.max_depth,
            ignore_rules=IgnoreRules(config.ignored_urls),
            parallelism=config.parallelism,
            **kwargs
        )

    def crawl(self, starting_urls: List[str]) -> CrawlResult:
        deadline = self.clock() + self.timeout
        state = CrawlState()
        metrics = self.metrics_factory()
        self.last_metrics = metrics

        logger.info(
            f"Crawling {len(starting_urls)} seed(s) with {self.parallelism} worker(s), "
            f"max depth {self.max_depth}, timeout {self.timeout}s"
        )

        with ForkJoinScheduler(self.parallelism) as scheduler:
            ctx = CrawlContext(
                page_parser=self.page_parser,
                ignore_rules=self.ignore_rules,
                clock=self.clock,
                scheduler=scheduler,
                state=state,
                metrics=metrics
            )
            scheduler.run(
                CrawlTask(url, self.max_depth, deadline, ctx) for url in starting_urls
            )

        result = CrawlResult.from_state(state, self.popular_word_count)
        logger.info(f"Crawl finished: {result.urls_visited} URLs visited, {metrics.summary()}")
        return result

    def get_max_parallelism(self) -> int:
        return psutil.cpu_count() or 1
