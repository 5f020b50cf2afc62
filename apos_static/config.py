"""Configuration management for apos-static using Pydantic Settings."""

from pathlib import Path
from typing import Annotated

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    """Exporter settings loaded from environment variables."""

    # Content API settings
    apos_host: str = Field(
        default="http://localhost:3000",
        description="Base URL of the Apostrophe content API",
    )
    apos_external_front_key: SecretStr | None = Field(
        default=None,
        description="Shared secret sent as APOS-EXTERNAL-FRONT-KEY on every API request",
    )
    pages_endpoint: str = Field(
        default="@apostrophecms/page",
        description="Page listing endpoint under /api/v1/",
    )
    piece_types: Annotated[list[str] | None, NoDecode] = Field(
        default=None,
        description="Explicit piece types to export (skips endpoint discovery)",
    )
    piece_page_size: int = Field(
        default=100,
        ge=1,
        description="Items requested per page when paginating piece endpoints",
    )
    locale_query_param: str = Field(
        default="locale",
        description="Query parameter used to scope API requests to a locale",
    )
    ensure_root: bool = Field(
        default=True,
        description="Add the site root to the page list when the API omits it",
    )
    discovery_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for page and piece listing requests",
    )
    probe_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for a single piece endpoint probe",
    )
    locales_file: Path | None = Field(
        default=None,
        description="JSON file describing locales to export (enables multi-locale mode)",
    )

    # Frontend / preview server settings
    frontend_dir: Path = Field(
        default=Path("."),
        description="Frontend project directory (holds package.json, dist/, public/)",
    )
    build_command: str = Field(
        default="npm run build",
        description="Command that produces the frontend production build",
    )
    preview_command: str = Field(
        default="npm run preview -- --host {host} --port {port}",
        description="Command that serves the built frontend ({host} and {port} are substituted)",
    )
    skip_build: bool = Field(
        default=False,
        description="Reuse an existing build instead of running the build command",
    )
    preview_host: str = Field(
        default="127.0.0.1",
        description="Interface the preview server binds to",
    )
    preview_port: int = Field(
        default=4321,
        ge=1,
        le=65535,
        description="Port the preview server listens on",
    )
    ready_timeout_seconds: float = Field(
        default=90.0,
        gt=0,
        description="How long to wait for the preview server to answer",
    )
    ready_poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Delay between readiness polls",
    )
    shutdown_grace_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Time allowed for the preview server to exit before SIGKILL",
    )

    # Crawl settings
    crawl_concurrency: int | None = Field(
        default=None,
        ge=1,
        description="Worker pool size (clamped to 2..8, defaults to CPU count)",
    )
    crawl_retries: int = Field(
        default=3,
        ge=0,
        description="Retries per page after the first attempt",
    )
    crawl_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single page request",
    )
    retry_initial_delay_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Delay before the first retry",
    )
    retry_max_delay_seconds: float = Field(
        default=8.0,
        ge=0,
        description="Upper bound for a single retry delay",
    )

    # Output settings
    output_dir: Path = Field(
        default=Path("static-dist"),
        description="Directory the static site is written to (wiped on each run)",
    )
    write_sitemap: bool = Field(
        default=False,
        description="Write sitemap.json into the output directory",
    )
    upload_sources: Annotated[list[Path] | None, NoDecode] = Field(
        default=None,
        description="Local uploads directories to copy (defaults to backend/public/uploads lookups)",
    )
    uploads_base_url: str | None = Field(
        default=None,
        description="Remote host uploads are downloaded from (defaults to apos_host)",
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    environment: str = Field(
        default="development",
        description="Environment (development or production)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("piece_types", "upload_sources", mode="before")
    @classmethod
    def parse_comma_separated(cls, v: str | list | None) -> list | None:
        """Parse comma-separated strings into lists."""
        if isinstance(v, str):
            items = [item.strip() for item in v.split(",") if item.strip()]
            return items or None
        return v

    @field_validator("apos_host", "uploads_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        """Hosts are joined with absolute paths, so drop trailing slashes."""
        if v is None:
            return v
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a standard logging level."""
        level = v.upper()
        if level not in ALLOWED_LOG_LEVELS:
            raise ValueError(
                f"Invalid log_level: {v}. Allowed values: {', '.join(sorted(ALLOWED_LOG_LEVELS))}"
            )
        return level

    @property
    def preview_base_url(self) -> str:
        """Base URL the crawler resolves sitemap paths against."""
        return f"http://{self.preview_host}:{self.preview_port}"

    @property
    def front_key(self) -> str | None:
        """Plain-text front key, or None when unset or empty."""
        if self.apos_external_front_key is None:
            return None
        return self.apos_external_front_key.get_secret_value() or None

