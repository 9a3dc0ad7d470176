"""
Web page fetcher backed by aiohttp, callable from ordinary worker threads.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None


class WebFetcher:
    """
    Fetches web pages over one shared aiohttp session.

    The session lives on a private event loop running in a daemon thread;
    ``fetch`` submits a coroutine to that loop and blocks the calling thread
    until it completes.
    """

    TEXT_TYPES = (
        'text/html',
        'text/plain',
        'text/xml',
        'application/xml',
        'application/xhtml+xml',
    )

    def __init__(self, user_agent: str = "webcrawler/1.0", request_timeout: float = 30,
                 max_concurrent_requests: int = 10, max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_concurrent_requests = max_concurrent_requests
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._session: Optional[ClientSession] = None
        self._semaphore: Optional[asyncio.Semaphore] = None

        self._stats_lock = threading.Lock()
        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def start(self):
        """Start the event loop thread and open the session."""
        if self._loop is not None:
            return

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="fetcher-loop", daemon=True
        )
        self._thread.start()
        asyncio.run_coroutine_threadsafe(self._open_session(), self._loop).result()
        self.logger.info("WebFetcher session started")

    async def _open_session(self):
        self._semaphore = asyncio.Semaphore(self.max_concurrent_requests)
        self._session = aiohttp.ClientSession(
            timeout=ClientTimeout(total=self.request_timeout),
            headers={'User-Agent': self.user_agent},
            connector=aiohttp.TCPConnector(
                limit=self.max_concurrent_requests * 2,
                limit_per_host=10,
                ttl_dns_cache=300
            )
        )

    def close(self):
        """Close the session and stop the loop thread."""
        if self._loop is None:
            return

        if self._session is not None:
            asyncio.run_coroutine_threadsafe(self._session.close(), self._loop).result()
            self._session = None
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()
        self._loop = None
        self._thread = None
        self.logger.info("WebFetcher session closed")

    def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL, blocking until the response body is read.

        Errors are reported in the result rather than raised.
        """
        if self._loop is None:
            raise RuntimeError("WebFetcher not started")
        future = asyncio.run_coroutine_threadsafe(self._fetch(url), self._loop)
        return future.result()

    def _count(self, key: str, amount: int = 1):
        with self._stats_lock:
            self.stats[key] += amount

    async def _fetch(self, url: str) -> FetchResult:
        start_time = time.monotonic()

        async with self._semaphore:
            self._count('total_requests')
            try:
                async with self._session.get(url) as response:
                    content_type = response.headers.get('content-type', '').lower()

                    if response.status >= 400:
                        self._count('failed_requests')
                        return FetchResult(
                            url=url,
                            status_code=response.status,
                            content_type=content_type,
                            error=f"HTTP {response.status}",
                            fetch_time=time.monotonic() - start_time
                        )

                    if not self._is_text_content(content_type):
                        self.logger.debug(f"Skipping non-text content: {url} ({content_type})")
                        self._count('failed_requests')
                        return FetchResult(
                            url=url,
                            status_code=response.status,
                            content_type=content_type,
                            error="Non-text content type",
                            fetch_time=time.monotonic() - start_time
                        )

                    content = await self._read_content_safely(response)
                    if content is None:
                        self._count('failed_requests')
                        return FetchResult(
                            url=url,
                            status_code=response.status,
                            content_type=content_type,
                            error="Content too large or unreadable",
                            fetch_time=time.monotonic() - start_time
                        )

                    self._count('successful_requests')
                    self._count('total_bytes_downloaded', len(content))
                    self.logger.debug(f"Fetched {url}: {response.status} ({len(content)} chars)")
                    return FetchResult(
                        url=url,
                        status_code=response.status,
                        content=content,
                        content_type=content_type,
                        encoding=response.charset,
                        fetch_time=time.monotonic() - start_time
                    )

            except asyncio.TimeoutError:
                error_msg = "Request timeout"
                self.logger.warning(f"Timeout fetching {url}")

            except ClientError as e:
                error_msg = f"Client error: {e}"
                self.logger.warning(f"Client error fetching {url}: {e}")

            except ValueError as e:
                # aiohttp rejects malformed URLs with InvalidURL, a ValueError
                error_msg = f"Invalid URL: {e}"
                self.logger.warning(f"Invalid URL {url}: {e}")

            self._count('failed_requests')
            return FetchResult(
                url=url,
                status_code=0,
                error=error_msg,
                fetch_time=time.monotonic() - start_time
            )

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is text-based."""
        return any(text_type in content_type for text_type in self.TEXT_TYPES)

    async def _read_content_safely(self, response) -> Optional[str]:
        """Read the body up to max_content_size; None when it is too large."""
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            return content_bytes.decode('utf-8', errors='ignore')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        with self._stats_lock:
            return self.stats.copy()
