"""Build asset copying and upload reconciliation for the static output tree."""

import re
import shutil
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

import httpx
import structlog
from bs4 import BeautifulSoup

logger = structlog.get_logger(__name__)

UPLOADS_PREFIX = "/uploads/"

# Attributes whose values can carry asset URLs
UPLOAD_ATTRIBUTES = ("src", "href", "srcset", "data-src", "data-srcset", "poster", "content", "style")


def default_upload_sources(frontend_dir: Path) -> list[Path]:
    """Backend uploads directories commonly found next to the frontend."""
    return [
        frontend_dir / ".." / "backend" / "public" / "uploads",
        frontend_dir / ".." / ".." / "backend" / "public" / "uploads",
        frontend_dir / ".." / "public" / "uploads",
    ]


def walk_files(root: Path) -> list[Path]:
    """List every file under ``root`` using an explicit directory stack."""
    if not root.is_dir():
        return []
    files: list[Path] = []
    stack = [root]
    while stack:
        current = stack.pop()
        try:
            entries = sorted(current.iterdir())
        except OSError as e:
            logger.warning("directory_unreadable", path=str(current), error=str(e))
            continue
        for entry in entries:
            if entry.is_dir():
                stack.append(entry)
            elif entry.is_file() or entry.is_symlink():
                files.append(entry)
    return files


def find_html_files(root: Path) -> list[Path]:
    """List every ``.html`` file under ``root``."""
    return [path for path in walk_files(root) if path.suffix.lower() == ".html" and path.is_file()]


def copy_file(source: Path, destination: Path, failed: list[str] | None = None) -> bool:
    """Copy one file, logging and recording the failure instead of raising."""
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
    except OSError as e:
        logger.warning("asset_copy_failed", path=str(source), error=str(e))
        if failed is not None:
            failed.append(str(source))
        return False
    return True


def copy_tree(source: Path, destination: Path, failed: list[str] | None = None) -> int:
    """
    Recursively copy ``source`` into ``destination`` file by file.

    A file that cannot be copied (dangling symlink, permission error) is
    logged and appended to ``failed``; the rest of the tree is still copied.

    Returns:
        Number of files copied
    """
    copied = 0
    for path in walk_files(source):
        if copy_file(path, destination / path.relative_to(source), failed):
            copied += 1
    return copied


def copy_build_assets(frontend_dir: Path, output_dir: Path) -> int:
    """
    Copy the frontend's built client assets and public files into the output.

    Copies ``dist/client/`` (CSS, JS, images), loose files at the top of
    ``dist/`` and the ``public/`` directory, in that order.

    Returns:
        Number of files copied
    """
    copied = 0
    dist_dir = frontend_dir / "dist"
    client_dir = dist_dir / "client"
    public_dir = frontend_dir / "public"

    if client_dir.is_dir():
        copied += copy_tree(client_dir, output_dir)
    else:
        logger.info("build_assets_missing", path=str(client_dir))

    if dist_dir.is_dir():
        for entry in sorted(dist_dir.iterdir()):
            if entry.is_file() and copy_file(entry, output_dir / entry.name):
                copied += 1

    if public_dir.is_dir():
        copied += copy_tree(public_dir, output_dir)
    else:
        logger.info("public_assets_missing", path=str(public_dir))

    logger.info("build_assets_copied", files=copied)
    return copied


def extract_upload_refs(
    html: str,
    remote_base_url: str | None = None,
    uploads_prefix: str = UPLOADS_PREFIX,
) -> set[str]:
    """
    Find upload paths referenced from HTML attribute values.

    Matches site-relative paths under ``uploads_prefix`` as well as absolute
    URLs on ``remote_base_url``. Query strings and fragments are dropped.

    Args:
        html: Rendered HTML document
        remote_base_url: Host uploads may be referenced on, e.g. http://localhost:3000
        uploads_prefix: Path prefix of upload assets

    Returns:
        Distinct site-relative upload paths such as ``/uploads/attachments/a.jpg``
    """
    host = re.escape(remote_base_url.rstrip("/")) if remote_base_url else None
    base = f"(?:{host})?" if host else ""
    pattern = re.compile(
        rf"""(?<![\w.:/-]){base}({re.escape(uploads_prefix)}[^\s"'<>(),?#]+)"""
    )

    refs: set[str] = set()
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(True):
        for attribute in UPLOAD_ATTRIBUTES:
            value = tag.get(attribute)
            if not value:
                continue
            if isinstance(value, list):
                value = " ".join(value)
            refs.update(pattern.findall(value))
    return refs


def _safe_destination(output_dir: Path, url_path: str) -> Path | None:
    relative = PurePosixPath(url_path.lstrip("/"))
    if ".." in relative.parts:
        return None
    return output_dir / relative


@dataclass
class AssetReport:
    """Outcome of upload reconciliation."""

    source: str = "none"
    copied: int = 0
    downloaded: int = 0
    skipped: int = 0
    failed: list[str] = field(default_factory=list)


class AssetReconciler:
    """
    Make uploads referenced by the rendered site available in the output tree.

    A local uploads directory is preferred; only when none is found are the
    references scanned out of the HTML and downloaded one by one.
    """

    def __init__(
        self,
        output_dir: Path,
        local_sources: Sequence[Path],
        remote_base_url: str | None,
        client: httpx.AsyncClient | None = None,
        uploads_prefix: str = UPLOADS_PREFIX,
    ) -> None:
        """
        Initialize the reconciler.

        Args:
            output_dir: Output root holding the rendered HTML
            local_sources: Candidate local uploads directories, in priority order
            remote_base_url: Host to download uploads from when no local copy exists
            client: HTTP client used for downloads
            uploads_prefix: Path prefix of upload assets
        """
        self.output_dir = output_dir
        self.local_sources = list(local_sources)
        self.remote_base_url = remote_base_url.rstrip("/") if remote_base_url else None
        self.client = client
        self.uploads_prefix = uploads_prefix

    def find_local_source(self) -> Path | None:
        """Return the first candidate directory that exists and is non-empty."""
        for candidate in self.local_sources:
            if candidate.is_dir() and any(candidate.iterdir()):
                return candidate.resolve()
        return None

    async def reconcile(self) -> AssetReport:
        """Copy local uploads, or download referenced uploads as a fallback."""
        report = AssetReport()
        uploads_dir = self.output_dir / self.uploads_prefix.strip("/")

        source = self.find_local_source()
        if source is not None:
            report.source = str(source)
            report.copied = copy_tree(source, uploads_dir, report.failed)
            logger.info(
                "uploads_copied",
                source=str(source),
                files=report.copied,
                failed=len(report.failed),
            )
            return report

        logger.info(
            "uploads_source_not_found",
            tried=[str(path) for path in self.local_sources],
        )
        if self.client is None or not self.remote_base_url:
            logger.warning("uploads_download_disabled")
            return report

        refs = self.collect_references(find_html_files(self.output_dir))
        report.source = self.remote_base_url
        logger.info("uploads_referenced", count=len(refs))
        await self.download_all(sorted(refs), report)
        return report

    def collect_references(self, html_files: Iterable[Path]) -> set[str]:
        """Collect distinct upload paths referenced by the given HTML files."""
        refs: set[str] = set()
        for path in html_files:
            html = path.read_text(encoding="utf-8", errors="ignore")
            refs.update(extract_upload_refs(html, self.remote_base_url, self.uploads_prefix))
        return refs

    async def download_all(self, refs: Sequence[str], report: AssetReport) -> None:
        """Download each reference, logging and skipping failures."""
        assert self.client is not None  # Type narrowing

        for url_path in refs:
            destination = _safe_destination(self.output_dir, url_path)
            if destination is None:
                logger.warning("upload_path_rejected", path=url_path)
                report.failed.append(url_path)
                continue
            if destination.exists():
                report.skipped += 1
                continue

            try:
                response = await self.client.get(f"{self.remote_base_url}{url_path}")
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning("upload_download_failed", path=url_path, error=str(e))
                report.failed.append(url_path)
                continue

            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                destination.write_bytes(response.content)
            except OSError as e:
                logger.warning("upload_write_failed", path=url_path, error=str(e))
                report.failed.append(url_path)
                continue
            report.downloaded += 1

        logger.info(
            "uploads_downloaded",
            downloaded=report.downloaded,
            skipped=report.skipped,
            failed=len(report.failed),
        )
