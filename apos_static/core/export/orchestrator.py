"""Static export orchestrator - sequences discovery, rendering and asset copying."""

import asyncio
import shutil
import signal
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import httpx
import structlog

from apos_static.config import Settings
from apos_static.core.discovery.content_api import ContentApiClient
from apos_static.core.discovery.locales import LocaleEntry, load_locale_config
from apos_static.core.discovery.sitemap import ApiFactory, SitemapBuilder, write_sitemap
from apos_static.core.export.assets import (
    AssetReconciler,
    AssetReport,
    copy_build_assets,
    default_upload_sources,
)
from apos_static.core.export.crawler import (
    CrawlOptions,
    CrawlReport,
    PageCrawler,
    ProgressCallback,
)
from apos_static.core.export.preview_server import (
    PreviewServerHandle,
    PreviewServerSupervisor,
)
from apos_static.utils.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

NOT_FOUND_FILE = "404.html"
NOT_FOUND_ROUTE = "/404"
SITEMAP_FILE = "sitemap.json"

FALLBACK_NOT_FOUND_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>Page not found</title>
</head>
<body>
  <main>
    <h1>Page not found</h1>
    <p>The page you are looking for does not exist.</p>
    <p><a href="/">Back to the home page</a></p>
  </main>
</body>
</html>
"""


class PreviewSupervisor(Protocol):
    """What the orchestrator needs from a preview server supervisor."""

    def new_handle(self) -> PreviewServerHandle: ...

    async def start(self, handle: PreviewServerHandle) -> None: ...

    def shutdown(self, handle: PreviewServerHandle) -> None: ...


@dataclass
class ExportSummary:
    """Result of an export run."""

    output_dir: Path
    sitemap: list[str] = field(default_factory=list)
    crawl: CrawlReport = field(default_factory=CrawlReport)
    assets: AssetReport = field(default_factory=AssetReport)
    build_assets_copied: int = 0
    not_found_source: str = "none"
    elapsed_seconds: float = 0.0

    @property
    def exit_code(self) -> int:
        """0 when every page rendered, 1 when any page failed."""
        return 1 if self.crawl.failed else 0


def supervisor_from_settings(config: Settings) -> PreviewServerSupervisor:
    """Create the preview server supervisor described by the settings."""
    env = {"APOS_HOST": config.apos_host}
    if config.front_key:
        env["APOS_EXTERNAL_FRONT_KEY"] = config.front_key
    return PreviewServerSupervisor(
        frontend_dir=config.frontend_dir,
        host=config.preview_host,
        port=config.preview_port,
        build_command=config.build_command,
        preview_command=config.preview_command,
        env=env,
        skip_build=config.skip_build,
        ready_timeout=config.ready_timeout_seconds,
        poll_interval=config.ready_poll_interval_seconds,
        shutdown_grace=config.shutdown_grace_seconds,
    )


def require_front_key(config: Settings) -> str:
    """
    Return the external front key or fail before any network activity.

    Raises:
        ConfigurationError: If APOS_EXTERNAL_FRONT_KEY is not set
    """
    key = config.front_key
    if not key:
        raise ConfigurationError(
            "APOS_EXTERNAL_FRONT_KEY is required to read the content API"
        )
    return key


def content_api_factory(
    config: Settings,
    front_key: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ApiFactory:
    """Return a factory creating content API clients for a host (None for the default)."""

    def factory(host: str | None) -> ContentApiClient:
        return ContentApiClient(
            host or config.apos_host,
            front_key,
            pages_endpoint=config.pages_endpoint,
            page_size=config.piece_page_size,
            locale_param=config.locale_query_param,
            timeout=config.discovery_timeout_seconds,
            probe_timeout=config.probe_timeout_seconds,
            transport=transport,
        )

    return factory


def load_locales(config: Settings) -> list[LocaleEntry] | None:
    """Load locale entries when a locales file is configured."""
    if config.locales_file is None:
        return None
    return load_locale_config(config.locales_file, config.apos_host)


def prepare_output_dir(output_dir: Path) -> None:
    """Wipe and recreate the output directory."""
    if output_dir.exists():
        shutil.rmtree(output_dir)
    output_dir.mkdir(parents=True)


@contextmanager
def cancel_on_sigterm() -> Iterator[None]:
    """Turn SIGTERM into cancellation of the current task so cleanup runs."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        # No signal support outside the main thread or on this platform
        installed = False
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGTERM)


class StaticExportOrchestrator:
    """
    Coordinate a full static export.

    Runs, in order: credential check, content API reachability check,
    frontend build and preview start, sitemap build, output preparation,
    build asset copy, crawl, upload reconciliation and the not-found page.
    The preview server is shut down in a single ``finally`` whatever happens
    in between.
    """

    def __init__(
        self,
        config: Settings,
        preview: PreviewSupervisor | None = None,
        api_transport: httpx.AsyncBaseTransport | None = None,
        preview_transport: httpx.AsyncBaseTransport | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            config: Export settings
            preview: Preview server supervisor (defaults to one built from settings)
            api_transport: Optional transport for content API and upload requests
            preview_transport: Optional transport for preview server requests
            on_progress: Optional per-page progress callback
        """
        self.config = config
        self.preview = preview or supervisor_from_settings(config)
        self.api_transport = api_transport
        self.preview_transport = preview_transport
        self.on_progress = on_progress

    @property
    def output_dir(self) -> Path:
        return self.config.output_dir

    async def run(self) -> ExportSummary:
        """
        Run the export.

        Returns:
            ExportSummary; check ``exit_code`` for partial failures

        Raises:
            ConfigurationError: If the front key or locale config is missing/invalid
            ContentApiError: If the content API is unreachable or the page listing cannot be fetched
            EmptySitemapError: If there is nothing to render
            PreviewServerError: If the frontend cannot be built or served
        """
        start = time.monotonic()
        front_key = require_front_key(self.config)
        locales = load_locales(self.config)
        api_factory = content_api_factory(self.config, front_key, self.api_transport)
        await self.check_content_api(api_factory, locales)

        summary = ExportSummary(output_dir=self.output_dir)
        handle = self.preview.new_handle()
        with cancel_on_sigterm():
            try:
                await self.preview.start(handle)

                builder = SitemapBuilder(
                    api_factory,
                    piece_types=self.config.piece_types,
                    ensure_root=self.config.ensure_root,
                )
                summary.sitemap = await builder.build(locales)

                prepare_output_dir(self.output_dir)
                if self.config.write_sitemap:
                    write_sitemap(summary.sitemap, self.output_dir / SITEMAP_FILE)
                summary.build_assets_copied = copy_build_assets(
                    self.config.frontend_dir, self.output_dir
                )

                async with httpx.AsyncClient(
                    base_url=handle.base_url,
                    headers={"User-Agent": "apos-static"},
                    follow_redirects=True,
                    transport=self.preview_transport,
                ) as preview_client:
                    summary.crawl = await self.crawl(preview_client, summary.sitemap)
                    summary.assets = await self.reconcile_assets()
                    summary.not_found_source = await self.ensure_not_found_page(preview_client)
            finally:
                self.preview.shutdown(handle)

        summary.elapsed_seconds = time.monotonic() - start
        logger.info(
            "export_finished",
            urls=len(summary.sitemap),
            succeeded=summary.crawl.succeeded,
            failed=summary.crawl.failed,
            seconds=round(summary.elapsed_seconds, 2),
        )
        return summary

    async def check_content_api(
        self, api_factory: ApiFactory, locales: list[LocaleEntry] | None
    ) -> None:
        """
        Make sure every content API host answers before the frontend is built.

        Raises:
            ContentApiError: If any host is unreachable or rejects the request
        """
        hosts = sorted({entry.base_url or self.config.apos_host for entry in locales or []})
        for host in hosts or [None]:
            async with api_factory(host) as api:
                await api.check_connection()

    async def crawl(self, client: httpx.AsyncClient, sitemap: list[str]) -> CrawlReport:
        options = CrawlOptions(
            concurrency=self.config.crawl_concurrency,
            retries=self.config.crawl_retries,
            timeout_seconds=self.config.crawl_timeout_seconds,
            initial_delay=self.config.retry_initial_delay_seconds,
            max_delay=self.config.retry_max_delay_seconds,
        )
        crawler = PageCrawler(client, self.output_dir, options, on_progress=self.on_progress)
        return await crawler.crawl(sitemap)

    async def reconcile_assets(self) -> AssetReport:
        sources = self.config.upload_sources or default_upload_sources(self.config.frontend_dir)
        async with httpx.AsyncClient(
            timeout=self.config.crawl_timeout_seconds,
            follow_redirects=True,
            transport=self.api_transport,
        ) as client:
            reconciler = AssetReconciler(
                self.output_dir,
                sources,
                self.config.uploads_base_url or self.config.apos_host,
                client=client,
            )
            return await reconciler.reconcile()

    async def ensure_not_found_page(self, client: httpx.AsyncClient) -> str:
        """
        Make sure the output has a 404.html.

        Keeps a page copied from the build, otherwise renders the frontend's
        own not-found route, otherwise writes a minimal static page.

        Returns:
            Where the page came from: "build", "preview" or "fallback"
        """
        target = self.output_dir / NOT_FOUND_FILE
        if target.exists():
            return "build"

        try:
            response = await client.get(NOT_FOUND_ROUTE, timeout=self.config.crawl_timeout_seconds)
            body = response.content
            # Not-found routes usually answer 404 with a real page
            if response.status_code in (200, 404) and b"<html" in body[:2048].lower():
                target.write_bytes(body)
                logger.info("not_found_page_rendered", status=response.status_code)
                return "preview"
        except httpx.HTTPError as e:
            logger.warning("not_found_page_fetch_failed", error=str(e))

        target.write_text(FALLBACK_NOT_FOUND_HTML, encoding="utf-8")
        logger.info("not_found_page_fallback")
        return "fallback"
