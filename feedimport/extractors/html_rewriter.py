"""Rewrite asset URLs embedded in entry HTML to locally fetched copies."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from bs4 import BeautifulSoup
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

from feedimport.extractors.urlnorm import parse_srcset, resolve_url, rewrite_srcset

if TYPE_CHECKING:
    from bs4 import Tag

    from feedimport.fetcher import Fetcher
    from feedimport.items import Entry

logger = logging.getLogger(__name__)

# tag -> attributes that carry a fetchable asset URL
ASSET_ATTRIBUTES: dict[str, tuple[str, ...]] = {
    "img": ("src", "srcset"),
    "video": ("src", "poster"),
    "source": ("src", "srcset"),
    "link": ("href",),
    "script": ("src",),
    "track": ("src",),
}

_SRCSET_ATTRIBUTES: frozenset[str] = frozenset({"srcset"})

class _SourceOrderFormatter(HTMLFormatter):
    """Serialize attributes in document order (bs4 sorts them by default)."""

    def attributes(self, tag: Tag):  # noqa: ANN201
        return list(tag.attrs.items()) if tag.attrs else []


# Keep markup as close to the input as possible: only escape &, <, >
HTML_FORMATTER = _SourceOrderFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)


class HtmlAssetRewriter:
    """Localize every asset referenced from an entry's HTML.

    All distinct URLs of a document are fetched concurrently and awaited
    together before the markup is serialized.  A failed asset keeps its
    remote URL; its siblings are unaffected.
    """

    def __init__(self, fetcher: Fetcher) -> None:
        self.fetcher = fetcher

    def _collect(self, soup: BeautifulSoup, base_url: str | None) -> dict[str, str]:
        """Return ``{raw attribute URL: absolute URL}`` in document order."""
        found: dict[str, str] = {}
        for tag in soup.find_all(list(ASSET_ATTRIBUTES)):
            for attr in ASSET_ATTRIBUTES[tag.name]:
                for raw in _attribute_urls(tag, attr):
                    absolute = resolve_url(raw, base_url)
                    if absolute and raw not in found:
                        found[raw] = absolute
        return found

    async def rewrite(self, html: str, entry: Entry) -> str:
        """Return *html* with asset URLs replaced by local references."""
        if not html:
            return html
        soup = BeautifulSoup(html, "html.parser")
        found = self._collect(soup, entry.url)
        if not found:
            return html

        unique = list(dict.fromkeys(found.values()))
        results = await asyncio.gather(
            *(self.fetcher.fetch_asset(url, entry) for url in unique),
            return_exceptions=True,
        )
        localized: dict[str, str] = {}
        for url, result in zip(unique, results):
            if isinstance(result, BaseException):
                self.fetcher.errors.add(url)
                logger.error("Asset %s for %s failed: %s", url, entry.url, result)
            elif result:
                localized[url] = result

        mapping = {raw: localized[absolute] for raw, absolute in found.items() if absolute in localized}
        if not mapping:
            return html
        for tag in soup.find_all(list(ASSET_ATTRIBUTES)):
            for attr in ASSET_ATTRIBUTES[tag.name]:
                value = tag.get(attr)
                if not value:
                    continue
                if attr in _SRCSET_ATTRIBUTES:
                    tag[attr] = rewrite_srcset(value, mapping)
                elif value.strip() in mapping:
                    tag[attr] = mapping[value.strip()]
        return soup.decode(formatter=HTML_FORMATTER)

    async def localize_url(self, url: str | None, entry: Entry) -> str | None:
        """Localize a single URL (e.g. a featured image); failures return *url*."""
        absolute = resolve_url(url, entry.url)
        if not absolute:
            return url
        try:
            reference = await self.fetcher.fetch_asset(absolute, entry)
        except OSError as exc:
            self.fetcher.errors.add(absolute)
            logger.error("Asset %s for %s failed: %s", absolute, entry.url, exc)
            reference = None
        return reference or url


def _attribute_urls(tag: Tag, attr: str) -> list[str]:
    value = tag.get(attr)
    if not value or not isinstance(value, str):
        return []
    if attr in _SRCSET_ATTRIBUTES:
        return [candidate.url for candidate in parse_srcset(value)]
    return [value.strip()]
