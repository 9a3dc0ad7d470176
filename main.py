#!/usr/bin/env python3
"""
Main entry point for the web crawler.
"""

import argparse
import logging
import sys
from typing import List, Optional

from webcrawler import __version__
from webcrawler.crawler import (
    CrawlResultWriter, HtmlPageParser, PageParser, ParallelWebCrawler, WebCrawler, WebFetcher
)
from webcrawler.profiler import Profiler
from webcrawler.utils.config import Config, ConfigurationError, load_config
from webcrawler.utils.logger import log_system_info, setup_logging


class CrawlerApp:
    """Main application class for the web crawler."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.profiler = Profiler()

    def run(self, config_path: str) -> int:
        """Run one crawl described by the configuration file."""
        try:
            config = load_config(config_path)
        except ConfigurationError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return 1

        setup_logging(config.logging)
        log_system_info()

        self.logger.info("=== WEB CRAWLER STARTING ===")
        self.logger.info(f"Configuration loaded from: {config_path}")
        self.logger.info(f"Start pages: {config.crawler.start_pages}")
        self.logger.info(f"Max depth: {config.crawler.max_depth}")
        self.logger.info(f"Timeout: {config.crawler.timeout_seconds}s")
        self.logger.info(f"Parallelism: {config.crawler.parallelism}")

        try:
            self._crawl(config)
        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1
        finally:
            self.logger.info("=== WEB CRAWLER FINISHED ===")

        return 0

    def _crawl(self, config: Config):
        with WebFetcher(
            user_agent=config.crawler.user_agent,
            request_timeout=config.crawler.request_timeout,
            max_concurrent_requests=config.crawler.max_concurrent_requests
        ) as fetcher:
            page_parser = self.profiler.wrap(
                PageParser,
                HtmlPageParser(fetcher, ignored_words=config.crawler.ignored_words)
            )
            engine = ParallelWebCrawler.from_config(config.crawler, page_parser)
            crawler = self.profiler.wrap(WebCrawler, engine)

            result = crawler.crawl(config.crawler.start_pages)
            self.logger.info(f"Fetcher stats: {fetcher.get_stats()}")

        writer = CrawlResultWriter(result)
        if config.output.result_path:
            writer.write(config.output.result_path)
        else:
            writer.write_to(sys.stdout)

        if config.output.profile_output_path:
            self.profiler.write_data(config.output.profile_output_path)
        else:
            self.profiler.write_data(sys.stdout)

        if config.output.metrics_path and engine.last_metrics is not None:
            engine.last_metrics.export(config.output.metrics_path)

        sys.stdout.flush()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Parallel word-counting web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py config.yaml          # Crawl using config.yaml
  python main.py samples/local.json   # JSON configuration files work too
        """
    )

    parser.add_argument(
        'config',
        help='Path to configuration file (YAML or JSON)'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Web Crawler {__version__}'
    )

    args = parser.parse_args(argv)

    app = CrawlerApp()
    try:
        return app.run(args.config)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
