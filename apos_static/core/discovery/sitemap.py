"""Sitemap builder: the deduplicated, sorted set of URL paths to render."""

import json
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path, PurePosixPath

import structlog

from apos_static.core.discovery.content_api import ContentApiClient
from apos_static.core.discovery.locales import LocaleEntry
from apos_static.core.discovery.probes import PieceTypeDiscovery
from apos_static.core.discovery.urls import (
    apply_locale_prefix,
    normalize_url,
    output_path_for,
)
from apos_static.utils.exceptions import EmptySitemapError

logger = structlog.get_logger(__name__)

ApiFactory = Callable[[str | None], ContentApiClient]


def merge_urls(url_lists: Iterable[Iterable[str]]) -> list[str]:
    """
    Merge URL lists into one sorted list without duplicates.

    A URL whose output file is already claimed by an earlier URL (``/a/index.html``
    next to ``/a/``) is dropped, so every entry owns exactly one file.

    Raises:
        EmptySitemapError: If the merged set is empty
    """
    merged = {url for urls in url_lists for url in urls}
    if not merged:
        raise EmptySitemapError("Sitemap is empty: no pages or pieces to render")

    sitemap: list[str] = []
    claimed: set[PurePosixPath] = set()
    for url in sorted(merged):
        target = output_path_for(url)
        if target in claimed:
            logger.warning("sitemap_alias_dropped", url=url, file=str(target))
            continue
        claimed.add(target)
        sitemap.append(url)
    return sitemap


def build_sitemap(pages: Iterable[str], piece_urls_by_type: Mapping[str, Iterable[str]]) -> list[str]:
    """
    Combine page URLs and piece URLs into a single-locale sitemap.

    Args:
        pages: Normalized page URL paths
        piece_urls_by_type: Piece URL paths keyed by piece type

    Returns:
        Sorted unique URL paths

    Raises:
        EmptySitemapError: If there is nothing to render
    """
    return merge_urls([pages, *piece_urls_by_type.values()])


def write_sitemap(urls: Sequence[str], path: Path) -> Path:
    """Write the sitemap as an indented JSON list."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(list(urls), indent=2) + "\n", encoding="utf-8")
    return path


class SitemapBuilder:
    """
    Collect URL paths from the content API, per locale when configured.

    Locales are processed one after another; each locale's URLs are fetched
    from that locale's host and prefixed before the lists are merged.
    """

    def __init__(
        self,
        api_factory: ApiFactory,
        piece_types: Sequence[str] | None = None,
        ensure_root: bool = True,
    ) -> None:
        """
        Initialize the builder.

        Args:
            api_factory: Creates a content API client for a host (None for the default host)
            piece_types: Explicit piece types; skips endpoint discovery when given
            ensure_root: Add the site root when the page listing omits it
        """
        self.api_factory = api_factory
        self.piece_types = list(piece_types) if piece_types else None
        self.ensure_root = ensure_root

    async def collect(self, locale: LocaleEntry | None = None) -> list[str]:
        """
        Collect page and piece URLs for one locale (or for the default site).

        Returns:
            Unprefixed URL paths, pages first, possibly with duplicates
        """
        locale_id = locale.locale_id if locale else None
        async with self.api_factory(locale.base_url if locale else None) as api:
            pages = await api.fetch_all_pages(locale_id, ensure_root=self.ensure_root)

            piece_types = self.piece_types
            if piece_types is None:
                piece_types = await PieceTypeDiscovery.for_api(api, locale_id).discover()

            piece_urls: dict[str, list[str]] = {}
            for piece_type in piece_types:
                piece_urls[piece_type] = await api.fetch_all_pieces(piece_type, locale_id)

        logger.info(
            "urls_collected",
            locale=locale_id,
            pages=len(pages),
            pieces={key: len(urls) for key, urls in piece_urls.items()},
        )
        urls = list(pages)
        for values in piece_urls.values():
            urls.extend(values)
        return urls

    async def build(self, locales: Sequence[LocaleEntry] | None = None) -> list[str]:
        """
        Build the sitemap, merging locales when given.

        Args:
            locales: Locale entries for multi-locale mode (None for single-locale)

        Returns:
            Sorted unique URL paths

        Raises:
            EmptySitemapError: If nothing was found to render
            ContentApiError: If a page listing request fails
        """
        if not locales:
            urls = await self.collect()
            sitemap = merge_urls([urls])
        else:
            per_locale: list[list[str]] = []
            for entry in locales:
                urls = await self.collect(entry)
                per_locale.append(
                    [apply_locale_prefix(normalize_url(url), entry.prefix) for url in urls]
                )
            sitemap = merge_urls(per_locale)

        logger.info("sitemap_built", urls=len(sitemap), locales=len(locales or []))
        return sitemap
