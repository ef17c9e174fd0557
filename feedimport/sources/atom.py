"""Atom 1.0 feeds."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from feedimport.extractors.feed import as_list
from feedimport.extractors.urlnorm import is_http_url
from feedimport.items import text_of
from feedimport.sources.base import FeedAdapter

if TYPE_CHECKING:
    from feedimport.sources.base import Source


def _alternate_link(links: Any) -> str | None:
    """Return the ``rel="alternate"`` href (a missing ``rel`` means alternate)."""
    fallback = None
    for link in as_list(links):
        if isinstance(link, str):
            fallback = fallback or link
            continue
        href = link.get("@_href")
        if link.get("@_rel", "alternate") == "alternate" and href:
            return href
        fallback = fallback or href
    return fallback


def parse_authors(nodes: Any) -> list[dict[str, Any]]:
    authors = []
    for author in as_list(nodes):
        if isinstance(author, str):
            authors.append({"name": author})
        elif isinstance(author, dict):
            authors.append({"name": text_of(author.get("name")), "url": text_of(author.get("uri"))})
    return authors


class Atom(FeedAdapter):
    TYPE = "atom"
    TYPE_FRIENDLY = "Atom"

    def get_entries_from_data(self, data: dict[str, Any]) -> list[Any]:
        return as_list((data.get("feed") or {}).get("entry"))

    def get_unique_id_from_entry(self, raw: dict[str, Any]) -> str:
        return self.get_unique_id(text_of(raw["id"]))

    def get_url_from_entry(self, raw: dict[str, Any]) -> str:
        entry_id = text_of(raw.get("id"))
        if is_http_url(entry_id):
            return entry_id
        link = _alternate_link(raw.get("link"))
        if not link:
            raise KeyError(f"Atom entry {entry_id!r} has no alternate link")
        return link

    async def clean_entry(self, raw: dict[str, Any], data: dict[str, Any], source: Source) -> dict[str, Any]:
        feed = data.get("feed") or {}
        content = raw.get("content")
        content_type = content.get("@_type") if isinstance(content, dict) else None
        if content is None:
            content = raw.get("summary")
            content_type = content.get("@_type") if isinstance(content, dict) else None
        return {
            "uuid": self.get_unique_id_from_entry(raw),
            "type": self.TYPE,
            "title": raw.get("title"),
            "url": self.get_url_from_entry(raw),
            "authors": parse_authors(raw.get("author") or feed.get("author")),
            "date": text_of(raw.get("published")) or text_of(raw.get("updated")),
            "dateUpdated": text_of(raw.get("updated")),
            "content": text_of(content),
            "contentType": content_type or "text",
        }
