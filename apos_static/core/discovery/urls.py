"""URL path normalization and output file mapping."""

import re
from pathlib import PurePosixPath
from urllib.parse import urlsplit

FILE_LIKE_PATTERN = re.compile(r"\.[A-Za-z0-9]+$")
INDEX_FILE = "index.html"


def is_file_like(path: str) -> bool:
    """Return True when the last path segment carries a dot-extension."""
    if path.endswith("/"):
        return False
    return bool(FILE_LIKE_PATTERN.search(path.rsplit("/", 1)[-1]))


def _finish_path(path: str) -> str:
    segments: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if segments:
                segments.pop()
            continue
        segments.append(segment)

    if not segments:
        return "/"
    result = "/" + "/".join(segments)
    if path.endswith("/") or not is_file_like(result):
        result += "/"
    return result


def normalize_url(raw: str) -> str:
    """
    Canonicalize an absolute URL or site-relative path into a URL path.

    Query strings and fragments are dropped, empty, ``.`` and ``..`` segments
    are resolved, the result always starts with a single ``/`` and
    directory-like paths always end with exactly one ``/``. File-like paths
    (``/feed.xml``) keep their trailing-slash state.

    Never raises: malformed input falls back to splitting on ``?`` and ``#``.

    Args:
        raw: Raw URL or path as returned by the content API

    Returns:
        Normalized URL path

    Example:
        ```python
        normalize_url("/a/b?x=1#y")  # "/a/b/"
        normalize_url("https://example.com/feed.xml")  # "/feed.xml"
        ```
    """
    raw = (raw or "").strip()
    try:
        path = urlsplit(raw).path
    except ValueError:
        path = raw.split("?", 1)[0].split("#", 1)[0]
        for char in "\t\r\n":
            path = path.replace(char, "")
    return _finish_path(path)


def output_path_for(url_path: str) -> PurePosixPath:
    """
    Map a normalized URL path to a file path relative to the output root.

    ``/`` maps to ``index.html``, ``/foo/`` to ``foo/index.html`` and
    ``/foo.json`` to ``foo.json``.
    """
    relative = url_path.strip("/")
    if not relative:
        return PurePosixPath(INDEX_FILE)
    if is_file_like(url_path):
        return PurePosixPath(relative)
    return PurePosixPath(relative) / INDEX_FILE


def apply_locale_prefix(url_path: str, prefix: str) -> str:
    """
    Apply a locale prefix to a URL path exactly once.

    The path is returned unchanged when the prefix is empty, when the path is
    the prefix itself, or when the path already sits under the prefix.

    Args:
        url_path: Normalized URL path
        prefix: Locale prefix such as ``/fr`` (empty for the default locale)

    Returns:
        Prefixed, normalized URL path
    """
    prefix = prefix.strip().rstrip("/")
    if not prefix:
        return url_path
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    if url_path in (prefix, prefix + "/") or url_path.startswith(prefix + "/"):
        return normalize_url(url_path)
    return normalize_url(prefix + url_path)
