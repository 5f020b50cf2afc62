"""Pytest configuration and fixtures."""

import os
from collections.abc import Callable, Generator, Iterable, Mapping
from pathlib import Path

import httpx
import pytest
import structlog

from apos_static.config import Settings
from apos_static.core.export.preview_server import PreviewServerHandle, PreviewState

API_HOST = "http://cms.test"
PREVIEW_URL = "http://preview.test"
FRONT_KEY = "test-front-key"


class FakePreviewSupervisor:
    """Stands in for the real supervisor: no build, no child process."""

    def __init__(self, base_url: str = PREVIEW_URL, fail_with: Exception | None = None) -> None:
        self.base_url = base_url
        self.fail_with = fail_with
        self.started = False
        self.shutdown_calls = 0
        self.handles: list[PreviewServerHandle] = []

    def new_handle(self) -> PreviewServerHandle:
        handle = PreviewServerHandle(base_url=self.base_url)
        self.handles.append(handle)
        return handle

    async def start(self, handle: PreviewServerHandle) -> None:
        handle.transition(PreviewState.STARTING)
        if self.fail_with is not None:
            handle.transition(PreviewState.FAILED)
            raise self.fail_with
        handle.transition(PreviewState.READY)
        self.started = True

    def shutdown(self, handle: PreviewServerHandle) -> None:
        self.shutdown_calls += 1
        handle.transition(PreviewState.STOPPED)


def make_api_transport(
    pages: Iterable[str] | None = None,
    pieces: Mapping[str, list[str]] | None = None,
    root_index: dict | None = None,
    uploads: Mapping[str, bytes] | None = None,
    requests: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """
    Build a mock content API.

    Args:
        pages: Page URLs returned by the flat page listing (None for HTTP 500)
        pieces: Piece URLs per piece endpoint, paginated by page/perPage
        root_index: Body for GET /api/v1/ (None for HTTP 404)
        uploads: Upload bodies keyed by path
        requests: Optional list every request is appended to
    """
    pieces = pieces or {}
    uploads = uploads or {}

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        path = request.url.path

        if path == "/api/v1/@apostrophecms/page":
            if pages is None:
                return httpx.Response(500, text="boom")
            return httpx.Response(200, json={"results": [{"_url": url} for url in pages]})

        if path == "/api/v1/":
            if root_index is None:
                return httpx.Response(404)
            return httpx.Response(200, json=root_index)

        if path.startswith("/api/v1/"):
            key = path[len("/api/v1/"):]
            if key not in pieces:
                return httpx.Response(404, json={"name": "notfound"})
            page = int(request.url.params.get("page", "1"))
            per_page = int(request.url.params.get("perPage", "10"))
            items = pieces[key][(page - 1) * per_page : page * per_page]
            return httpx.Response(200, json={"results": [{"_url": url} for url in items]})

        if path in uploads:
            return httpx.Response(200, content=uploads[path])

        return httpx.Response(404)

    return httpx.MockTransport(handler)


def make_preview_transport(
    routes: Mapping[str, Callable[[httpx.Request], httpx.Response] | str],
    requests: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """Build a mock preview server from path -> HTML body (or handler) routes."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, text="not here")
        if callable(route):
            return route(request)
        return httpx.Response(200, text=route)

    return httpx.MockTransport(handler)


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """
    Run every test with uncached structlog defaults.

    Module-level loggers first used under a caching configuration keep the
    stream they saw, which pytest closes once the test that owned it ends.
    """
    structlog.reset_defaults()
    structlog.configure(cache_logger_on_first_use=False)
    yield
    structlog.reset_defaults()


@pytest.fixture
def test_settings(tmp_path: Path) -> Generator[Settings, None, None]:
    """
    Provide test configuration with overrides.

    Yields:
        Settings instance for testing
    """
    # Save original environment
    original_env = os.environ.copy()

    os.environ["APOS_EXTERNAL_FRONT_KEY"] = FRONT_KEY
    os.environ["APOS_HOST"] = API_HOST
    os.environ["LOG_LEVEL"] = "DEBUG"

    frontend_dir = tmp_path / "frontend"
    frontend_dir.mkdir()

    settings = Settings(
        output_dir=tmp_path / "static-dist",
        frontend_dir=frontend_dir,
        upload_sources=[tmp_path / "missing-uploads"],
        crawl_concurrency=4,
        crawl_retries=2,
        crawl_timeout_seconds=5.0,
        retry_initial_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
    )

    yield settings

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def fake_preview() -> FakePreviewSupervisor:
    return FakePreviewSupervisor()
