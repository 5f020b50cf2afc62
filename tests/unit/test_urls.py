"""Unit tests for URL normalization and output file mapping."""

import random
import string
from pathlib import PurePosixPath

import pytest

from apos_static.core.discovery.urls import (
    apply_locale_prefix,
    is_file_like,
    normalize_url,
    output_path_for,
)

RAW_URLS = [
    "",
    "/",
    "about",
    "/about",
    "/about/",
    "/about//",
    "//about",
    "/a/b?x=1#y",
    "/a/b/?x=1",
    "/a/b#frag",
    "https://example.com/blog/post-1?utm=x",
    "http://localhost:3000/",
    "/feed.xml",
    "/feed.xml?v=2",
    "/sitemap.json",
    "/docs/v1.2",
    "/images/photo.JPG",
    "/fr",
    "/fr/",
    "   /padded   ",
    "http://[::1",
    "?only=query",
    "#only-fragment",
    "/path with spaces",
    "/a/./b/../c",
    "/..",
]


class TestNormalizeUrl:
    """Test suite for normalize_url."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("/a/b?x=1#y", "/a/b/"),
            ("/", "/"),
            ("", "/"),
            ("about", "/about/"),
            ("/about", "/about/"),
            ("/about/", "/about/"),
            ("/about//", "/about/"),
            ("https://example.com/blog/post-1?utm=x", "/blog/post-1/"),
            ("http://localhost:3000", "/"),
            ("/feed.xml", "/feed.xml"),
            ("/feed.xml?v=2", "/feed.xml"),
            ("/index.html", "/index.html"),
            ("?only=query", "/"),
            ("#only-fragment", "/"),
            ("/a//b", "/a/b/"),
            ("/a/./b/../c", "/a/c/"),
            ("/../../etc", "/etc/"),
            ("/feed.xml/", "/feed.xml/"),
        ],
    )
    def test_normalize_examples(self, raw: str, expected: str) -> None:
        """Test query/fragment stripping and trailing slash rules."""
        assert normalize_url(raw) == expected

    def test_file_like_trailing_slash_untouched(self) -> None:
        """Test that file-like paths keep their trailing slash state."""
        assert normalize_url("/docs/report.pdf") == "/docs/report.pdf"

    def test_malformed_url_does_not_raise(self) -> None:
        """Test that URL parse failures fall back to naive splitting."""
        result = normalize_url("http://[::1?x=1")
        assert result.startswith("/")
        assert "?" not in result

    @pytest.mark.parametrize("raw", RAW_URLS)
    def test_idempotent(self, raw: str) -> None:
        """Test that normalizing twice equals normalizing once."""
        once = normalize_url(raw)
        assert normalize_url(once) == once

    @pytest.mark.parametrize("raw", RAW_URLS)
    def test_result_invariants(self, raw: str) -> None:
        """Test leading slash, no query/fragment, directory trailing slash."""
        result = normalize_url(raw)
        assert result.startswith("/")
        assert not result.startswith("//") or result == "/"
        assert "?" not in result
        assert "#" not in result
        if not is_file_like(result):
            assert result.endswith("/")
            assert not result.endswith("//")

    def test_idempotent_on_random_inputs(self) -> None:
        """Test idempotency on generated path-like strings."""
        rng = random.Random(1234)
        alphabet = string.ascii_lowercase + string.digits + "/.?#-_"
        for _ in range(500):
            raw = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 20)))
            once = normalize_url(raw)
            assert normalize_url(once) == once


class TestIsFileLike:
    """Test suite for is_file_like."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/feed.xml", True),
            ("/a/b.json", True),
            ("/a/b", False),
            ("/a/b/", False),
            ("/v1.2/", False),
            ("/", False),
            ("/a.b/c", False),
        ],
    )
    def test_is_file_like(self, path: str, expected: bool) -> None:
        assert is_file_like(path) is expected


class TestOutputPathFor:
    """Test suite for the output file mapping."""

    def test_root_maps_to_index(self) -> None:
        assert output_path_for("/") == PurePosixPath("index.html")

    def test_directory_maps_to_nested_index(self) -> None:
        assert output_path_for("/foo/") == PurePosixPath("foo/index.html")
        assert output_path_for("/fr/blog/post/") == PurePosixPath("fr/blog/post/index.html")

    def test_file_like_maps_to_itself(self) -> None:
        assert output_path_for("/foo.json") == PurePosixPath("foo.json")

    def test_mapping_injective_over_random_sitemap(self) -> None:
        """Test that distinct normalized URLs never share an output file."""
        rng = random.Random(42)
        segments = ["a", "b", "blog", "post-1", "feed.xml", "data.json", "x.y", ""]
        raw_urls = []
        for _ in range(2000):
            parts = [rng.choice(segments) for _ in range(rng.randint(0, 4))]
            raw = "/".join(parts)
            if rng.random() < 0.3:
                raw += "/"
            if rng.random() < 0.2:
                raw += "?q=1"
            raw_urls.append(raw)

        sitemap = sorted({normalize_url(raw) for raw in raw_urls})
        mapped = [output_path_for(url) for url in sitemap]
        assert len(set(mapped)) == len(sitemap)


class TestApplyLocalePrefix:
    """Test suite for apply_locale_prefix."""

    def test_prefix_applied(self) -> None:
        assert apply_locale_prefix("/about/", "/fr") == "/fr/about/"

    def test_root_gets_prefix(self) -> None:
        assert apply_locale_prefix("/", "/fr") == "/fr/"

    def test_already_prefixed_unchanged(self) -> None:
        assert apply_locale_prefix("/fr/about/", "/fr") == "/fr/about/"

    def test_prefix_itself_unchanged(self) -> None:
        assert apply_locale_prefix("/fr/", "/fr") == "/fr/"
        assert apply_locale_prefix("/fr", "/fr") == "/fr/"

    def test_empty_prefix_unchanged(self) -> None:
        assert apply_locale_prefix("/about/", "") == "/about/"

    def test_similar_prefix_still_applied(self) -> None:
        """Test that /french/ is not mistaken for something under /fr."""
        assert apply_locale_prefix("/french/", "/fr") == "/fr/french/"

    def test_prefix_without_leading_slash(self) -> None:
        assert apply_locale_prefix("/about/", "fr/") == "/fr/about/"

    def test_applying_twice_is_stable(self) -> None:
        once = apply_locale_prefix("/blog/post/", "/de")
        assert apply_locale_prefix(once, "/de") == once

    def test_file_like_prefixed(self) -> None:
        assert apply_locale_prefix("/feed.xml", "/fr") == "/fr/feed.xml"
