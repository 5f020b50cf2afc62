"""Async client for the Apostrophe content API used during URL discovery."""

from typing import Any

import httpx
import structlog

from apos_static.core.discovery.urls import normalize_url
from apos_static.utils.exceptions import ContentApiError

logger = structlog.get_logger(__name__)

FRONT_KEY_HEADER = "APOS-EXTERNAL-FRONT-KEY"
API_PREFIX = "/api/v1"
URL_FIELD = "_url"

# Root index keys that are never piece collections
CORE_PREFIX = "@apostrophecms/"
RESERVED_KEYS = frozenset({"search", "page"})


def _extract_url(item: Any) -> str | None:
    if not isinstance(item, dict):
        return None
    url = item.get(URL_FIELD)
    if isinstance(url, str) and url and url != "#":
        return url
    return None


class ContentApiClient:
    """
    Read-only client for page and piece listings.

    Every request carries the external front key header. The client owns an
    ``httpx.AsyncClient`` and must be used as an async context manager.

    Example:
        ```python
        async with ContentApiClient("http://localhost:3000", front_key) as api:
            pages = await api.fetch_all_pages()
            articles = await api.fetch_all_pieces("article")
        ```
    """

    def __init__(
        self,
        base_url: str,
        front_key: str,
        *,
        pages_endpoint: str = "@apostrophecms/page",
        page_size: int = 100,
        locale_param: str = "locale",
        timeout: float = 30.0,
        probe_timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Content API host, e.g. http://localhost:3000
            front_key: Shared secret proving the caller is an authorized frontend
            pages_endpoint: Page listing endpoint under /api/v1/
            page_size: Items per request when paginating pieces
            locale_param: Query parameter carrying the locale id
            timeout: Timeout for listing requests, in seconds
            probe_timeout: Timeout for endpoint probes, in seconds
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.pages_endpoint = pages_endpoint.strip("/")
        self.page_size = page_size
        self.locale_param = locale_param
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={FRONT_KEY_HEADER: front_key},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ContentApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _params(self, locale: str | None, **params: Any) -> dict[str, Any]:
        if locale:
            params[self.locale_param] = locale
        return params

    async def check_connection(self) -> None:
        """
        Confirm the content API answers before any expensive work starts.

        Requests a single item from the page listing.

        Raises:
            ContentApiError: If the host is unreachable or the listing returns non-2xx
        """
        endpoint = f"{API_PREFIX}/{self.pages_endpoint}"
        try:
            response = await self._client.get(endpoint, params={"limit": 1})
        except httpx.HTTPError as e:
            raise ContentApiError(f"Cannot reach content API at {self.base_url}: {e}") from e

        if not response.is_success:
            raise ContentApiError(
                f"Content API at {self.base_url} answered {response.status_code} {response.reason_phrase}"
            )
        logger.info("content_api_reachable", host=self.base_url)

    async def fetch_all_pages(
        self, locale: str | None = None, ensure_root: bool = True
    ) -> list[str]:
        """
        Fetch every published page URL from the flat page listing.

        Args:
            locale: Optional locale id to scope the listing
            ensure_root: Add the site root when the API omits it

        Returns:
            Sorted, deduplicated, normalized page URL paths

        Raises:
            ContentApiError: If the listing request fails or returns non-2xx
        """
        endpoint = f"{API_PREFIX}/{self.pages_endpoint}"
        params = self._params(locale, all=1, flat=1, published=1)
        try:
            response = await self._client.get(endpoint, params=params)
        except httpx.HTTPError as e:
            raise ContentApiError(
                f"Failed to fetch pages from {self.base_url}{endpoint}: {e}"
            ) from e

        if not response.is_success:
            raise ContentApiError(
                f"Failed to fetch pages: {response.status_code} {response.reason_phrase}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ContentApiError(f"Page listing is not valid JSON: {e}") from e

        # Accept either { results: [...] } or a bare list
        if isinstance(data, list):
            pages = data
        elif isinstance(data, dict):
            pages = data.get("results") or []
        else:
            pages = []
        urls = {normalize_url(url) for url in map(_extract_url, pages) if url}

        if ensure_root and "/" not in urls:
            localized_home = f"/{locale}/" if locale else None
            if localized_home not in urls:
                urls.add("/")

        logger.info("pages_fetched", count=len(urls), locale=locale)
        return sorted(urls)

    async def fetch_all_pieces(self, piece_type: str, locale: str | None = None) -> list[str]:
        """
        Paginate a piece endpoint and collect every item URL.

        Pagination stops at the first short page. A failed request ends
        pagination early instead of raising.

        Args:
            piece_type: Piece endpoint name, e.g. "article"
            locale: Optional locale id

        Returns:
            Normalized piece URL paths in API order
        """
        urls: list[str] = []
        page = 1
        while True:
            params = self._params(locale, page=page, perPage=self.page_size)
            try:
                response = await self._client.get(f"{API_PREFIX}/{piece_type}", params=params)
                response.raise_for_status()
                results = response.json().get("results") or []
                if not isinstance(results, list):
                    raise ValueError(f"results is {type(results).__name__}, not a list")
            except (httpx.HTTPError, ValueError, AttributeError) as e:
                logger.warning(
                    "piece_page_fetch_failed",
                    piece_type=piece_type,
                    page=page,
                    error=str(e),
                )
                break

            urls.extend(normalize_url(url) for url in map(_extract_url, results) if url)
            if len(results) < self.page_size:
                break
            page += 1

        logger.debug("pieces_fetched", piece_type=piece_type, count=len(urls), pages=page)
        return urls

    async def is_piece_endpoint(self, key: str, locale: str | None = None) -> bool:
        """
        Probe whether ``key`` is a paginated piece endpoint with detail URLs.

        An empty result page is accepted, since a collection with no items yet
        looks identical to one that simply returned nothing.
        """
        params = self._params(locale, perPage=1)
        try:
            response = await self._client.get(
                f"{API_PREFIX}/{key}", params=params, timeout=self.probe_timeout
            )
            if not response.is_success:
                return False
            results = response.json().get("results")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.debug("piece_probe_failed", key=key, error=str(e))
            return False

        if not isinstance(results, list):
            return False
        if not results:
            return True
        return _extract_url(results[0]) is not None

    async def list_root_candidates(self) -> list[str]:
        """
        List candidate endpoint names from the API root index.

        Returns an empty list when the API does not support root enumeration.
        """
        try:
            response = await self._client.get(f"{API_PREFIX}/", timeout=self.probe_timeout)
            if not response.is_success:
                return []
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("root_index_unavailable", error=str(e))
            return []

        if not isinstance(data, dict):
            return []
        return [
            key
            for key in data
            if not key.startswith(CORE_PREFIX) and key not in RESERVED_KEYS
        ]
