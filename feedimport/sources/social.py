"""Per-user feeds from social platforms: fediverse, Bluesky and YouTube.

Each builds its feed URL from a handle and derives a default file path
from the post URL, so imported posts land in ``<user>/<post id>.md``.
"""

from __future__ import annotations

import posixpath
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlparse

from feedimport.extractors.dates import to_readable_date
from feedimport.extractors.feed import as_list
from feedimport.items import text_of
from feedimport.sources.atom import parse_authors
from feedimport.sources.base import FeedAdapter
from feedimport.sources.rss import Rss

if TYPE_CHECKING:
    from feedimport.sources.base import Source


# ---------------------------------------------------------------------------
# Fediverse (Mastodon and compatible servers)
# ---------------------------------------------------------------------------

class FediverseUser(Rss):
    TYPE = "fediverse"
    TYPE_FRIENDLY = "Fediverse"

    def __init__(self, handle: str) -> None:
        self.username, self.hostname = self.parse_username(handle)
        super().__init__(f"https://{self.hostname}/users/{self.username}.rss")

    @staticmethod
    def parse_username(handle: str) -> tuple[str, str]:
        """``@zach@fediverse.zachleat.com`` -> ``("zach", "fediverse.zachleat.com")``."""
        username, sep, hostname = handle.strip().lstrip("@").partition("@")
        if not sep or not username or not hostname:
            raise ValueError(f"Invalid fediverse handle: {handle!r} (expected @user@host)")
        return username, hostname

    @staticmethod
    def get_file_path(url: str) -> str:
        parsed = urlparse(url)
        segments = [segment for segment in parsed.path.split("/") if segment]
        username = segments[0].lstrip("@") if segments else ""
        post_id = segments[-1] if len(segments) > 1 else ""
        return posixpath.join(f"{username}@{parsed.hostname}", post_id)

    async def clean_entry(self, raw: dict[str, Any], data: dict[str, Any], source: Source) -> dict[str, Any]:
        cleaned = await super().clean_entry(raw, data, source)
        cleaned["content"] = text_of(raw.get("description"))
        return cleaned


# ---------------------------------------------------------------------------
# Bluesky
# ---------------------------------------------------------------------------

class BlueskyUser(Rss):
    TYPE = "bluesky"
    TYPE_FRIENDLY = "Bluesky"

    def __init__(self, username: str) -> None:
        self.username = username.strip().lstrip("@")
        if not self.username:
            raise ValueError("A Bluesky username is required")
        super().__init__(f"https://bsky.app/profile/{self.username}/rss")

    @staticmethod
    def get_file_path(url: str) -> str:
        # https://bsky.app/profile/<username>/post/<id>
        segments = [segment for segment in urlparse(url).path.split("/") if segment]
        if len(segments) >= 4 and segments[0] == "profile":
            return posixpath.join(segments[1], segments[3])
        return posixpath.join(*segments) if segments else ""

    async def clean_entry(self, raw: dict[str, Any], data: dict[str, Any], source: Source) -> dict[str, Any]:
        cleaned = await super().clean_entry(raw, data, source)
        cleaned["title"] = to_readable_date(cleaned["date"])
        cleaned["content"] = text_of(raw.get("description"))
        cleaned["contentType"] = "text"
        return cleaned


# ---------------------------------------------------------------------------
# YouTube
# ---------------------------------------------------------------------------

class YouTubeUser(FeedAdapter):
    TYPE = "youtube"
    TYPE_FRIENDLY = "YouTube"

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id.strip()
        if not self.channel_id:
            raise ValueError("A YouTube channel id is required")
        super().__init__(f"https://www.youtube.com/feeds/videos.xml?channel_id={self.channel_id}")

    @staticmethod
    def get_file_path(url: str) -> str:
        return (parse_qs(urlparse(url).query).get("v") or [""])[0]

    def get_entries_from_data(self, data: dict[str, Any]) -> list[Any]:
        return as_list((data.get("feed") or {}).get("entry"))

    def get_unique_id_from_entry(self, raw: dict[str, Any]) -> str:
        return self.get_unique_id(text_of(raw["yt:videoId"]))

    async def clean_entry(self, raw: dict[str, Any], data: dict[str, Any], source: Source) -> dict[str, Any]:
        video_id = text_of(raw["yt:videoId"])
        media = raw.get("media:group") or {}
        return {
            "uuid": self.get_unique_id_from_entry(raw),
            "type": self.TYPE,
            "title": raw.get("title"),
            "url": f"https://www.youtube.com/watch?v={video_id}",
            "authors": parse_authors(raw.get("author")),
            "date": text_of(raw.get("published")),
            "dateUpdated": text_of(raw.get("updated")),
            "content": text_of(media.get("media:description")),
            "contentType": "text",
        }
