"""
Metrics collection for crawl runs.
"""

import logging
import time
from pathlib import Path
from typing import Dict, Union

from prometheus_client import CollectorRegistry, Counter, generate_latest


class CrawlMetrics:
    """
    Prometheus counters for a single crawl invocation.

    Every instance owns its registry, so concurrent crawls never share
    counters. prometheus_client counters are safe to increment from any thread.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.registry = CollectorRegistry()
        self.start_time = time.time()

        self.pages_fetched = Counter(
            'crawler_pages_fetched',
            'Pages fetched and parsed successfully',
            registry=self.registry
        )
        self.fetch_errors = Counter(
            'crawler_fetch_errors',
            'Pages whose fetch or parse failed',
            registry=self.registry
        )
        self.duplicates_skipped = Counter(
            'crawler_duplicates_skipped',
            'URLs skipped because another task already claimed them',
            registry=self.registry
        )
        self.ignored_skipped = Counter(
            'crawler_ignored_skipped',
            'URLs skipped because they match an ignore pattern',
            registry=self.registry
        )
        self.cutoffs = Counter(
            'crawler_cutoffs',
            'Tasks stopped by the depth or deadline bound',
            ['reason'],
            registry=self.registry
        )

    def record_page_fetched(self):
        self.pages_fetched.inc()

    def record_fetch_error(self):
        self.fetch_errors.inc()

    def record_duplicate_skipped(self):
        self.duplicates_skipped.inc()

    def record_ignored(self):
        self.ignored_skipped.inc()

    def record_cutoff(self, reason: str):
        self.cutoffs.labels(reason=reason).inc()

    def _value(self, name: str, **labels) -> float:
        return self.registry.get_sample_value(name, labels or None) or 0.0

    def summary(self) -> Dict[str, float]:
        """Current counter values plus elapsed time."""
        return {
            'runtime_seconds': time.time() - self.start_time,
            'pages_fetched': self._value('crawler_pages_fetched_total'),
            'fetch_errors': self._value('crawler_fetch_errors_total'),
            'duplicates_skipped': self._value('crawler_duplicates_skipped_total'),
            'ignored_skipped': self._value('crawler_ignored_skipped_total'),
            'depth_cutoffs': self._value('crawler_cutoffs_total', reason='depth'),
            'deadline_cutoffs': self._value('crawler_cutoffs_total', reason='deadline'),
        }

    def export(self, path: Union[str, Path]):
        """Write the registry in the Prometheus text exposition format."""
        path = Path(path)
        path.write_bytes(generate_latest(self.registry))
        self.logger.info(f"Metrics exported to {path}")
