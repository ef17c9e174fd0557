"""Source types, dispatched by the tag passed to ``Importer.add_source``."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from feedimport.plugins import get_source_types
from feedimport.sources.atom import Atom
from feedimport.sources.base import FeedAdapter, Source, SourceAdapter
from feedimport.sources.rss import Rss
from feedimport.sources.social import BlueskyUser, FediverseUser, YouTubeUser
from feedimport.sources.wordpress import HostedWordPressApi, WordPressApi

SOURCE_TYPES: dict[str, Callable[[str], Any]] = {
    "atom": Atom,
    "rss": Rss,
    "wordpress": WordPressApi,
    "wordpressapi": WordPressApi,
    "wordpressapi-hosted": HostedWordPressApi,
    "fediverse": FediverseUser,
    "mastodon": FediverseUser,
    "bluesky": BlueskyUser,
    "youtube": YouTubeUser,
    "youtubeuser": YouTubeUser,
}


def available_types() -> list[str]:
    return sorted({*SOURCE_TYPES, *get_source_types()})


def create_adapter(type_name: str, identifier: str) -> Any:
    """Build the adapter registered for *type_name*.

    WordPress URLs on ``*.wordpress.com`` go to the hosted API adapter.

    Raises:
        ValueError: unknown type or an identifier the adapter rejects.
    """
    key = type_name.lower()
    if key in ("wordpress", "wordpressapi") and HostedWordPressApi.is_valid(identifier):
        return HostedWordPressApi(identifier)
    factory = get_source_types().get(key) or SOURCE_TYPES.get(key)
    if factory is None:
        raise ValueError(
            f"{type_name!r} is not a supported source type "
            f"(expected one of: {', '.join(available_types())})",
        )
    return factory(identifier)


__all__ = [
    "SOURCE_TYPES",
    "Atom",
    "BlueskyUser",
    "FeedAdapter",
    "FediverseUser",
    "HostedWordPressApi",
    "Rss",
    "Source",
    "SourceAdapter",
    "WordPressApi",
    "YouTubeUser",
    "available_types",
    "create_adapter",
]
