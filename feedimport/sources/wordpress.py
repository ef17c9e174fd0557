"""WordPress REST API (self-hosted) and WordPress.com public API sources.

Self-hosted sites page through ``/wp-json/wp/v2/posts/``.  When
``WORDPRESS_USERNAME`` and ``WORDPRESS_PASSWORD`` (an application password)
are set, requests authenticate and drafts are imported too.  Authors,
categories and tags come from secondary API calls per post.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin, urlparse

from feedimport.fetcher import FetchError
from feedimport.sources.base import FeedAdapter

if TYPE_CHECKING:
    from feedimport.sources.base import Source

logger = logging.getLogger(__name__)

POSTS_PER_PAGE = 100
IGNORED_CATEGORIES: frozenset[str] = frozenset({"Uncategorized"})

# Returned once paging runs past the last page
_END_OF_PAGES_CODE = "rest_post_invalid_page_number"


def _rendered(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("rendered")
    return value


def _credentials() -> tuple[str, str] | None:
    username = os.environ.get("WORDPRESS_USERNAME")
    password = os.environ.get("WORDPRESS_PASSWORD")
    if username and password:
        return username, password
    return None


class HostedWordPressApi(FeedAdapter):
    """Sites hosted on WordPress.com, read through its public API."""

    TYPE = "wordpressapi-hosted"
    TYPE_FRIENDLY = "WordPress.com"

    def __init__(self, url: str) -> None:
        if not self.is_valid(url):
            raise ValueError(f"{url} is not a WordPress.com site")
        super().__init__(url)
        self.hostname = urlparse(url).hostname or ""

    @staticmethod
    def is_valid(url: str) -> bool:
        hostname = (urlparse(url).hostname or "").lower()
        return hostname.endswith(".wordpress.com")

    def get_type(self) -> str:
        return "json"

    def get_url(self) -> Callable[[int], str]:
        def page_url(page: int) -> str:
            return (
                f"https://public-api.wordpress.com/rest/v1.1/sites/{self.hostname}/posts/"
                f"?page={page}&per_page={POSTS_PER_PAGE}"
            )
        return page_url

    def get_entries_from_data(self, data: dict[str, Any]) -> list[Any]:
        return list(data.get("posts") or [])

    def get_unique_id_from_entry(self, raw: dict[str, Any]) -> str:
        return self.get_unique_id(raw["guid"])

    async def clean_entry(self, raw: dict[str, Any], data: dict[str, Any], source: Source) -> dict[str, Any]:
        author = raw.get("author") or {}
        metadata: dict[str, Any] = {
            "categories": [name for name in (raw.get("categories") or {}) if name not in IGNORED_CATEGORIES],
        }
        if raw.get("featured_image"):
            metadata["featuredImage"] = raw["featured_image"]
        return {
            "uuid": self.get_unique_id_from_entry(raw),
            "type": self.TYPE,
            "title": raw.get("title"),
            "url": raw["URL"],
            "authors": [{
                "name": author.get("name"),
                "url": author.get("profile_URL"),
                "avatarUrl": author.get("avatar_URL"),
            }],
            "date": raw.get("date"),
            "dateUpdated": raw.get("modified"),
            "content": raw.get("content"),
            "contentType": "html",
            "status": raw.get("status"),
            "metadata": metadata,
            "tags": list(raw.get("tags") or {}),
        }


class WordPressApi(FeedAdapter):
    """Self-hosted WordPress sites through the ``wp/v2`` REST API."""

    TYPE = "wordpress"
    TYPE_FRIENDLY = "WordPress"

    def __init__(self, url: str) -> None:
        if HostedWordPressApi.is_valid(url):
            raise ValueError(f"{url} is hosted on WordPress.com; use the {HostedWordPressApi.TYPE} type")
        super().__init__(url)

    def get_type(self) -> str:
        return "json"

    def get_headers(self) -> dict[str, str]:
        credentials = _credentials()
        if credentials is None:
            return {}
        token = base64.b64encode(f"{credentials[0]}:{credentials[1]}".encode()).decode("ascii")
        return {"Content-Type": "application/json", "Authorization": f"Basic {token}"}

    def api_url(self, path: str) -> str:
        base = self.url if self.url.endswith("/") else f"{self.url}/"
        return urljoin(base, f"wp-json/wp/v2/{path}")

    def get_url(self) -> Callable[[int], str]:
        status = "&status=publish%2Cdraft" if _credentials() else ""

        def page_url(page: int) -> str:
            return self.api_url(f"posts/?page={page}&per_page={POSTS_PER_PAGE}{status}")
        return page_url

    async def is_error_worth_worrying_about(self, error: FetchError) -> bool:
        if error.body:
            try:
                payload = json.loads(error.body)
            except ValueError:
                return True
            if isinstance(payload, dict) and payload.get("code") == _END_OF_PAGES_CODE:
                return False
        return True

    def get_entries_from_data(self, data: Any) -> list[Any]:
        return list(data) if isinstance(data, list) else []

    def get_unique_id_from_entry(self, raw: dict[str, Any]) -> str:
        return self.get_unique_id(_rendered(raw["guid"]))

    async def _fetch_terms(self, source: Source, kind: str, ids: list[int]) -> list[str]:
        async def one(term_id: int) -> str | None:
            try:
                term = await source.get_data(self.api_url(f"{kind}/{term_id}"), "json")
            except FetchError as exc:
                logger.warning("Could not load %s %s: %s", kind, term_id, exc)
                return None
            return term.get("name") if isinstance(term, dict) else None

        names = await asyncio.gather(*(one(term_id) for term_id in ids))
        return [name for name in names if name]

    async def _fetch_author(self, source: Source, author_id: Any) -> dict[str, Any] | None:
        if not author_id:
            return None
        try:
            author = await source.get_data(self.api_url(f"users/{author_id}"), "json")
        except FetchError as exc:
            logger.warning("Could not load author %s: %s", author_id, exc)
            return None
        avatars = author.get("avatar_urls") or {}
        return {
            "name": author.get("name"),
            "url": author.get("url") or author.get("link"),
            "avatarUrl": avatars[max(avatars, key=int)] if avatars else None,
        }

    async def clean_entry(self, raw: dict[str, Any], data: Any, source: Source) -> dict[str, Any]:
        author, categories, tags = await asyncio.gather(
            self._fetch_author(source, raw.get("author")),
            self._fetch_terms(source, "categories", list(raw.get("categories") or [])),
            self._fetch_terms(source, "tags", list(raw.get("tags") or [])),
        )
        metadata: dict[str, Any] = {}
        if raw.get("jetpack_featured_media_url"):
            metadata["featuredImage"] = raw["jetpack_featured_media_url"]
        og_image = (raw.get("yoast_head_json") or {}).get("og_image") or raw.get("og_image")
        if og_image:
            first = og_image[0] if isinstance(og_image, list) else og_image
            metadata["opengraphImage"] = first.get("url") if isinstance(first, dict) else first
        categories = [name for name in categories if name not in IGNORED_CATEGORIES]
        if categories:
            metadata["categories"] = categories
        if tags:
            metadata["tags"] = tags

        return {
            "uuid": self.get_unique_id_from_entry(raw),
            "type": self.TYPE,
            "title": _rendered(raw.get("title")),
            "url": raw["link"],
            "authors": [author] if author else [],
            "date": raw.get("date_gmt") or raw.get("date"),
            "dateUpdated": raw.get("modified_gmt") or raw.get("modified"),
            "content": _rendered(raw.get("content")),
            "contentType": "html",
            "status": raw.get("status"),
            "metadata": metadata or None,
            "tags": categories,
        }
