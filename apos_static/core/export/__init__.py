"""Rendering and output for static export."""

from apos_static.core.export.assets import AssetReconciler, AssetReport, copy_build_assets
from apos_static.core.export.crawler import CrawlOptions, CrawlReport, CrawlResult, PageCrawler
from apos_static.core.export.orchestrator import ExportSummary, StaticExportOrchestrator
from apos_static.core.export.preview_server import (
    PreviewServerHandle,
    PreviewServerSupervisor,
    PreviewState,
)

__all__ = [
    "AssetReconciler",
    "AssetReport",
    "copy_build_assets",
    "CrawlOptions",
    "CrawlReport",
    "CrawlResult",
    "PageCrawler",
    "ExportSummary",
    "StaticExportOrchestrator",
    "PreviewServerHandle",
    "PreviewServerSupervisor",
    "PreviewState",
]
