"""
Parallel Web Crawler

Crawls from a set of seed URLs, counts words across the visited pages and
profiles the time spent in its components.
"""

__version__ = "1.0.0"
__description__ = "A parallel word-counting web crawler with a call profiler"
