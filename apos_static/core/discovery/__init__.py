"""URL discovery for static export.

Covers everything that happens before rendering:
- URL path normalization and output file mapping
- Page and piece listing through the content API
- Piece endpoint discovery (root index probing plus name heuristics)
- Locale configuration and sitemap merging
"""

from apos_static.core.discovery.content_api import ContentApiClient
from apos_static.core.discovery.locales import LocaleEntry, load_locale_config
from apos_static.core.discovery.probes import (
    CandidateProbe,
    HeuristicProbe,
    PieceTypeDiscovery,
    RootIndexProbe,
)
from apos_static.core.discovery.sitemap import SitemapBuilder, build_sitemap
from apos_static.core.discovery.urls import (
    apply_locale_prefix,
    normalize_url,
    output_path_for,
)

__all__ = [
    "ContentApiClient",
    "LocaleEntry",
    "load_locale_config",
    "CandidateProbe",
    "HeuristicProbe",
    "PieceTypeDiscovery",
    "RootIndexProbe",
    "SitemapBuilder",
    "build_sitemap",
    "apply_locale_prefix",
    "normalize_url",
    "output_path_for",
]
