"""Locale configuration for multi-locale exports."""

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from apos_static.utils.exceptions import ConfigurationError


class LocaleEntry(BaseModel):
    """One locale to export: its API host and the URL prefix it lives under."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    locale_id: str = Field(alias="localeId", min_length=1)
    base_url: str | None = Field(default=None, alias="baseUrl")
    prefix: str = ""

    @field_validator("prefix")
    @classmethod
    def normalize_prefix(cls, v: str) -> str:
        """Prefixes have a leading slash and no trailing slash ("" for root)."""
        v = v.strip().strip("/")
        return f"/{v}" if v else ""

    @field_validator("base_url")
    @classmethod
    def strip_base_url(cls, v: str | None) -> str | None:
        return v.rstrip("/") if v else None


def parse_locale_config(data: Any, default_base_url: str) -> list[LocaleEntry]:
    """
    Build locale entries from decoded JSON.

    Accepts either an object keyed by locale id
    (``{"fr": {"baseUrl": "...", "prefix": "/fr"}}``) or a list of entries
    carrying an explicit ``localeId``.

    Raises:
        ConfigurationError: If the structure is invalid or more than one
            locale claims the root prefix
    """
    if not isinstance(data, (dict, list)):
        raise ConfigurationError("Locale config must be a JSON object or list")

    try:
        if isinstance(data, dict):
            raw_entries = [
                {"localeId": locale_id, **(options or {})} for locale_id, options in data.items()
            ]
        else:
            raw_entries = data
        entries = [LocaleEntry.model_validate(raw) for raw in raw_entries]
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid locale config: {e}") from e

    entries = [
        entry if entry.base_url else entry.model_copy(update={"base_url": default_base_url})
        for entry in entries
    ]

    root_locales = [entry.locale_id for entry in entries if not entry.prefix]
    if len(root_locales) > 1:
        raise ConfigurationError(
            f"Only one locale may use the root prefix, got: {', '.join(root_locales)}"
        )
    if not entries:
        raise ConfigurationError("Locale config defines no locales")
    return entries


def load_locale_config(path: Path, default_base_url: str) -> list[LocaleEntry]:
    """
    Load locale entries from a JSON file.

    Args:
        path: Path to the locale config file
        default_base_url: Host used for entries without a baseUrl

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Locale config not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read locale config {path}: {e}") from e
    return parse_locale_config(data, default_base_url)
