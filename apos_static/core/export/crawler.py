"""Concurrent crawler that renders sitemap URLs through the preview server."""

import asyncio
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import structlog

from apos_static.core.discovery.urls import is_file_like, output_path_for
from apos_static.utils.exceptions import PageFetchError, RetryablePageError
from apos_static.utils.retry import retry_with_exponential_backoff

logger = structlog.get_logger(__name__)

MIN_WORKERS = 2
MAX_WORKERS = 8
RETRYABLE_EXCEPTIONS = (httpx.TransportError, RetryablePageError)

ProgressCallback = Callable[["CrawlResult", int, int], None]


def pool_size(concurrency: int | None) -> int:
    """Worker count: the configured value (or CPU count) clamped to 2..8."""
    requested = concurrency or os.cpu_count() or MIN_WORKERS
    return min(MAX_WORKERS, max(MIN_WORKERS, requested))


@dataclass
class CrawlOptions:
    """Configuration for concurrency, timeouts and retries."""

    concurrency: int | None = None
    retries: int = 3
    timeout_seconds: float = 30.0
    initial_delay: float = 0.5
    backoff_factor: float = 2.0
    max_delay: float = 8.0


@dataclass
class CrawlResult:
    """Outcome of rendering a single URL path."""

    url_path: str
    success: bool
    error: str | None = None
    attempts: int = 0
    output_path: Path | None = None


@dataclass
class CrawlReport:
    """Run-level crawl statistics."""

    results: list[CrawlResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def failures(self) -> list[CrawlResult]:
        return sorted((r for r in self.results if not r.success), key=lambda r: r.url_path)

    @property
    def errors(self) -> list[str]:
        return [f"{r.url_path}: {r.error}" for r in self.failures]

    @property
    def total_attempts(self) -> int:
        return sum(r.attempts for r in self.results)


class PageCrawler:
    """
    Fetch every URL path from the preview server and persist the bodies.

    A fixed pool of workers drains one shared queue; each worker takes a URL,
    fetches it with retries and writes the body before taking the next one.

    Example:
        ```python
        async with httpx.AsyncClient(base_url="http://127.0.0.1:4321") as client:
            crawler = PageCrawler(client, Path("static-dist"), CrawlOptions(retries=2))
            report = await crawler.crawl(["/", "/about/"])
        ```
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        output_dir: Path,
        options: CrawlOptions | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """
        Initialize the crawler.

        Args:
            client: HTTP client whose base_url is the preview server
            output_dir: Output root files are written under
            options: Crawl options (defaults to CrawlOptions())
            on_progress: Called with (result, completed, total) after each URL
        """
        self.client = client
        self.output_dir = output_dir
        self.options = options or CrawlOptions()
        self.on_progress = on_progress

    async def crawl(self, urls: Sequence[str]) -> CrawlReport:
        """
        Render all URL paths with bounded concurrency.

        Args:
            urls: Deduplicated URL paths (the sitemap)

        Returns:
            CrawlReport with one result per URL
        """
        queue: asyncio.Queue[str] = asyncio.Queue()
        for url in urls:
            queue.put_nowait(url)

        report = CrawlReport()
        workers = min(pool_size(self.options.concurrency), max(len(urls), 1))
        logger.info("crawl_started", urls=len(urls), workers=workers)

        async def worker() -> None:
            while True:
                try:
                    url_path = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                result = await self.render(url_path)
                report.results.append(result)
                if result.success:
                    logger.info(
                        "page_rendered",
                        url=url_path,
                        completed=len(report.results),
                        total=len(urls),
                    )
                else:
                    logger.warning(
                        "page_failed",
                        url=url_path,
                        error=result.error,
                        attempts=result.attempts,
                    )
                if self.on_progress is not None:
                    self.on_progress(result, len(report.results), len(urls))

        await asyncio.gather(*(worker() for _ in range(workers)))

        logger.info("crawl_finished", succeeded=report.succeeded, failed=report.failed)
        return report

    async def render(self, url_path: str) -> CrawlResult:
        """Fetch one URL path with retries and write it to its mapped file."""
        attempts = 1

        def count_retry(failed_attempt: int, error: BaseException) -> None:
            nonlocal attempts
            attempts = failed_attempt + 1
            logger.info("page_retry", url=url_path, attempt=attempts, error=_describe(error))

        try:
            body = await retry_with_exponential_backoff(
                self._fetch,
                url_path,
                max_retries=self.options.retries,
                initial_delay=self.options.initial_delay,
                backoff_factor=self.options.backoff_factor,
                max_delay=self.options.max_delay,
                retry_on_exceptions=RETRYABLE_EXCEPTIONS,
                on_retry=count_retry,
            )
        except (httpx.HTTPError, PageFetchError) as e:
            return CrawlResult(url_path, success=False, error=_describe(e), attempts=attempts)

        if not is_file_like(url_path) and b"<html" not in body[:2048].lower():
            logger.warning("page_not_html", url=url_path, bytes=len(body))

        try:
            target = self._write(url_path, body)
        except OSError as e:
            return CrawlResult(url_path, success=False, error=f"write failed: {e}", attempts=attempts)
        return CrawlResult(url_path, success=True, attempts=attempts, output_path=target)

    async def _fetch(self, url_path: str) -> bytes:
        response = await self.client.get(url_path, timeout=self.options.timeout_seconds)
        status = response.status_code
        if status == 429 or status >= 500:
            raise RetryablePageError(f"HTTP {status}", status_code=status)
        if status >= 400:
            raise PageFetchError(f"HTTP {status}", status_code=status)
        return response.content

    def _write(self, url_path: str, body: bytes) -> Path:
        target = self.output_dir / output_path_for(url_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        # Write beside the target, then rename, so no reader sees a partial file
        partial = target.with_name(target.name + ".part")
        partial.write_bytes(body)
        partial.replace(target)
        return target


def _describe(error: BaseException) -> str:
    if isinstance(error, httpx.TimeoutException):
        return f"timed out ({type(error).__name__})"
    return str(error) or type(error).__name__
