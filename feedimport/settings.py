"""Import settings: defaults, validation and YAML config files.

A config file holds any subset of :class:`ImportSettings` fields::

    output_folder: ./site/content
    asset_refs: absolute
    cache_duration: 1d
    preserved_tags: [table, details, video]

CLI flags override values from the file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Project identity
# ---------------------------------------------------------------------------
VERSION = "1.0.0"
USER_AGENT = f"feedimport/{VERSION}"

# ---------------------------------------------------------------------------
# Output layout
# ---------------------------------------------------------------------------
DEFAULT_OUTPUT_FOLDER = "."
DEFAULT_DRAFTS_FOLDER = "drafts"
DEFAULT_ASSETS_FOLDER = "assets"

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
DEFAULT_CACHE_DURATION = "24h"
DEFAULT_CACHE_DIR = ".cache"
DOWNLOAD_TIMEOUT = 30.0
MAX_RETRIES = 2

# ---------------------------------------------------------------------------
# Markdown conversion
# ---------------------------------------------------------------------------
# Elements copied into Markdown output as raw HTML
DEFAULT_PRESERVED_TAGS: tuple[str, ...] = (
    "table",
    "details",
    "abbr",
    "del",
    "ins",
    "sub",
    "sup",
    "mark",
    "kbd",
    "iframe",
    "video",
    "audio",
)


class ImportSettings(BaseModel):
    """Validated configuration for one import run."""

    output_folder: str = DEFAULT_OUTPUT_FOLDER
    drafts_folder: str = DEFAULT_DRAFTS_FOLDER
    assets_folder: str = DEFAULT_ASSETS_FOLDER

    cache_duration: str = DEFAULT_CACHE_DURATION
    cache_dir: str | None = DEFAULT_CACHE_DIR
    timeout: float = DOWNLOAD_TIMEOUT
    max_retries: int = MAX_RETRIES
    user_agent: str = USER_AGENT

    overwrite: bool = False
    dry_run: bool = False
    verbose: bool = True

    asset_refs: Literal["relative", "absolute", "colocate"] = "relative"
    format: Literal["markdown", "html"] = "markdown"
    persist: str | None = None
    preserved_tags: list[str] = Field(default_factory=lambda: list(DEFAULT_PRESERVED_TAGS))

    @field_validator("asset_refs", "format", mode="before")
    @classmethod
    def lower(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @field_validator("preserved_tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [tag.strip().lower() for tag in v.split(",") if tag.strip()]
        return v

    @property
    def safe_mode(self) -> bool:
        """Existing files are left alone unless overwrites are enabled."""
        return not self.overwrite


def load_settings(path: str | Path | None = None, **overrides: Any) -> ImportSettings:
    """Build :class:`ImportSettings` from a YAML file plus keyword overrides.

    ``None`` overrides are ignored so unset CLI flags do not mask the file.
    """
    data: dict[str, Any] = {}
    if path:
        loaded = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        data.update(loaded)
    data.update({key: value for key, value in overrides.items() if value is not None})
    return ImportSettings(**data)
