"""Pydantic models for imported entries and localized assets."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from feedimport.extractors.dates import parse_date

if TYPE_CHECKING:
    from feedimport.sources.base import Source

ContentType = Literal["html", "markdown", "text"]
Status = Literal["draft", "publish"]

# Keys that never reach the YAML front matter
_FRONT_MATTER_EXCLUDE: frozenset[str] = frozenset(
    {"content", "content_type", "date_updated", "file_path"},
)


def text_of(value: Any) -> Any:
    """Unwrap ``{"#text": ...}`` nodes produced by the XML decoder."""
    if isinstance(value, dict):
        return value.get("#text")
    return value


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

class Author(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str | None = None
    url: str | None = None
    avatar_url: str | None = Field(default=None, alias="avatarUrl")

    @field_validator("name", "url", "avatar_url", mode="before")
    @classmethod
    def unwrap_text(cls, v: Any) -> Any:
        v = text_of(v)
        return v.strip() if isinstance(v, str) else v


class Entry(BaseModel):
    """Canonical, source-independent representation of one imported item.

    Accepts both the camelCase keys used in front matter (``dateUpdated``,
    ``contentType``) and snake_case attribute names.  The owning
    :class:`~feedimport.sources.base.Source` rides along as a private
    attribute and is never serialized.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    # Identity
    uuid: str
    type: str
    url: str

    # Metadata
    title: str | None = None
    authors: list[Author] = Field(default_factory=list)
    date: datetime | None = None
    date_updated: datetime | None = Field(default=None, alias="dateUpdated")
    status: Status | None = None
    tags: list[str] | None = None
    metadata: dict[str, Any] | None = None
    source_label: str | None = Field(default=None, alias="sourceLabel")

    # Content
    content: str = ""
    content_type: ContentType | None = Field(default=None, alias="contentType")

    # Assigned by the importer
    file_path: str | None = Field(default=None, alias="filePath")

    _source: Any = PrivateAttr(default=None)

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: Any) -> Any:
        v = text_of(v)
        return v.strip() if isinstance(v, str) else v

    @field_validator("content", mode="before")
    @classmethod
    def default_content(cls, v: Any) -> Any:
        v = text_of(v)
        return v or ""

    @field_validator("date", "date_updated", mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return parse_date(text_of(v))

    @field_validator("content_type", mode="before")
    @classmethod
    def normalize_content_type(cls, v: Any) -> Any:
        if not v:
            return None
        v = str(v).lower()
        if v in ("html", "xhtml", "text/html"):
            return "html"
        if v in ("text", "plain", "text/plain"):
            return "text"
        if v in ("markdown", "md", "text/markdown"):
            return "markdown"
        return v

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        if not v:
            return None
        return "publish" if str(v).lower() == "publish" else "draft"

    @field_validator("authors", mode="before")
    @classmethod
    def listify_authors(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, (dict, Author)):
            return [v]
        return v

    @property
    def source(self) -> Source | None:
        return self._source

    @property
    def is_draft(self) -> bool:
        return self.status == "draft"

    def front_matter(self) -> dict[str, Any]:
        """Return the YAML front-matter mapping for this entry.

        Drafts additionally get ``permalink: false`` and ``draft: true`` so a
        site generator never publishes them.
        """
        data = self.model_dump(
            by_alias=True,
            exclude=set(_FRONT_MATTER_EXCLUDE),
            exclude_none=True,
        )
        if self.is_draft:
            data["permalink"] = False
            data["draft"] = True
        return data


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------

class AssetRecord(BaseModel):
    """A remote asset mapped onto the local filesystem."""

    model_config = ConfigDict(populate_by_name=True)

    source_url: str = Field(alias="sourceUrl")
    content_hash: str = Field(alias="contentHash")
    local_file_path: str = Field(alias="localFilePath")
    reference_url: str = Field(alias="referenceUrl")
