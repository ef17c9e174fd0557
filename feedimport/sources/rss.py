"""RSS 2.0 feeds."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from feedimport.extractors.dates import to_readable_date
from feedimport.extractors.feed import as_list
from feedimport.items import text_of
from feedimport.sources.base import FeedAdapter

if TYPE_CHECKING:
    from feedimport.sources.base import Source


class Rss(FeedAdapter):
    TYPE = "rss"
    TYPE_FRIENDLY = "RSS"

    def get_entries_from_data(self, data: dict[str, Any]) -> list[Any]:
        channel = (data.get("rss") or {}).get("channel") or {}
        return as_list(channel.get("item"))

    def get_natural_id(self, raw: dict[str, Any]) -> str:
        natural_id = text_of(raw.get("guid")) or text_of(raw.get("link"))
        if not natural_id:
            raise KeyError("RSS item has neither a guid nor a link")
        return natural_id

    def get_unique_id_from_entry(self, raw: dict[str, Any]) -> str:
        return self.get_unique_id(self.get_natural_id(raw))

    def get_authors(self, raw: dict[str, Any], data: dict[str, Any]) -> list[dict[str, Any]]:
        creators = [text_of(creator) for creator in as_list(raw.get("dc:creator"))]
        if creators:
            return [{"name": name} for name in creators if name]
        channel = (data.get("rss") or {}).get("channel") or {}
        return [{"name": text_of(channel.get("title")), "url": text_of(channel.get("link"))}]

    async def clean_entry(self, raw: dict[str, Any], data: dict[str, Any], source: Source) -> dict[str, Any]:
        date = text_of(raw.get("pubDate")) or text_of(raw.get("dc:date"))
        content = raw.get("content:encoded") or raw.get("content") or raw.get("description")
        return {
            "uuid": self.get_unique_id_from_entry(raw),
            "type": self.TYPE,
            "title": text_of(raw.get("title")) or to_readable_date(date),
            "url": text_of(raw["link"]),
            "authors": self.get_authors(raw, data),
            "date": date,
            "content": text_of(content),
            "contentType": "html",
        }
