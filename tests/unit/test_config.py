"""Unit tests for settings loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from apos_static.config import Settings


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ("APOS_EXTERNAL_FRONT_KEY", "APOS_HOST", "PIECE_TYPES", "UPLOAD_SOURCES", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    """Test suite for Settings."""

    def test_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        settings = Settings(_env_file=None)

        assert settings.apos_host == "http://localhost:3000"
        assert settings.front_key is None
        assert settings.piece_types is None
        assert settings.preview_base_url == "http://127.0.0.1:4321"
        assert settings.crawl_retries == 3
        assert settings.output_dir == Path("static-dist")

    def test_env_values(self, clean_env: pytest.MonkeyPatch) -> None:
        """Test comma-separated lists and secrets from the environment."""
        clean_env.setenv("APOS_EXTERNAL_FRONT_KEY", "s3cret")
        clean_env.setenv("APOS_HOST", "http://cms.example.com/")
        clean_env.setenv("PIECE_TYPES", "article, event,,")
        clean_env.setenv("UPLOAD_SOURCES", "/srv/uploads,/tmp/uploads")

        settings = Settings(_env_file=None)

        assert settings.front_key == "s3cret"
        assert "s3cret" not in repr(settings)
        assert settings.apos_host == "http://cms.example.com"
        assert settings.piece_types == ["article", "event"]
        assert settings.upload_sources == [Path("/srv/uploads"), Path("/tmp/uploads")]

    def test_empty_front_key_is_missing(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("APOS_EXTERNAL_FRONT_KEY", "")
        assert Settings(_env_file=None).front_key is None

    def test_empty_piece_types_means_discovery(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("PIECE_TYPES", " , ")
        assert Settings(_env_file=None).piece_types is None

    def test_log_level_normalized(self, clean_env: pytest.MonkeyPatch) -> None:
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self, clean_env: pytest.MonkeyPatch) -> None:
        with pytest.raises(ValidationError, match="Invalid log_level"):
            Settings(_env_file=None, log_level="LOUD")

    @pytest.mark.parametrize(
        ("field", "value"),
        [("preview_port", 0), ("crawl_retries", -1), ("crawl_concurrency", 0), ("piece_page_size", 0)],
    )
    def test_bounds(self, clean_env: pytest.MonkeyPatch, field: str, value: int) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_preview_base_url(self, clean_env: pytest.MonkeyPatch) -> None:
        settings = Settings(_env_file=None, preview_host="0.0.0.0", preview_port=8080)
        assert settings.preview_base_url == "http://0.0.0.0:8080"
