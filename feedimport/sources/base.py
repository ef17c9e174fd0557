"""Source abstraction: adapters turn raw payloads into :class:`Entry` objects.

An adapter only knows its payload shape.  :class:`Source` wraps one adapter
with the shared :class:`~feedimport.fetcher.Fetcher` and handles what every
source type needs: pagination, test data overrides, skipping malformed
entries, labels and attaching itself to each entry.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlparse

from feedimport.extractors.feed import parse_xml
from feedimport.fetcher import FetchError, Fetcher
from feedimport.items import Entry

logger = logging.getLogger(__name__)

UUID_NAMESPACE = "feedimport"

# Custom path formatter: (entry url, default path) -> path, or None/False to skip
FilePathFormat = Callable[[str, str], "str | None | bool"]

# Raised by adapters (and pydantic) on entries missing expected fields
_MALFORMED_ENTRY_ERRORS = (KeyError, TypeError, ValueError, AttributeError, IndexError)


# ---------------------------------------------------------------------------
# Adapter contract
# ---------------------------------------------------------------------------

@runtime_checkable
class SourceAdapter(Protocol):
    """Capability interface every source type implements."""

    TYPE: str
    TYPE_FRIENDLY: str

    def get_url(self) -> str | Callable[[int], str | None] | None:
        """Return the payload URL, or a ``page_number -> url`` function."""
        ...

    def get_type(self) -> str:
        """Return ``"xml"`` or ``"json"``."""
        ...

    def get_entries_from_data(self, data: Any) -> list[Any]:
        ...

    def get_unique_id_from_entry(self, raw: Any) -> str:
        ...

    async def clean_entry(self, raw: Any, data: Any, source: Source) -> Entry | dict[str, Any]:
        ...


class FeedAdapter(ABC):
    """Defaults shared by the built-in adapters.

    Subclasses supply the three payload-specific methods; the rest have
    working defaults.
    """

    TYPE = "feed"
    TYPE_FRIENDLY = "Feed"

    def __init__(self, url: str) -> None:
        self.url = url

    def get_url(self) -> str | Callable[[int], str | None] | None:
        return self.url

    def get_type(self) -> str:
        return "xml"

    def get_headers(self) -> dict[str, str]:
        return {}

    async def is_error_worth_worrying_about(self, error: FetchError) -> bool:
        return True

    def get_unique_id(self, natural_id: Any) -> str:
        return f"{UUID_NAMESPACE}::{self.TYPE}::{natural_id}"

    @abstractmethod
    def get_unique_id_from_entry(self, raw: Any) -> str:
        ...

    @abstractmethod
    def get_entries_from_data(self, data: Any) -> list[Any]:
        ...

    @abstractmethod
    async def clean_entry(self, raw: Any, data: Any, source: Source) -> Entry | dict[str, Any]:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r})"


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------

class Source:
    """One configured feed/API and the adapter that understands it."""

    def __init__(
        self,
        adapter: SourceAdapter,
        fetcher: Fetcher | None = None,
        *,
        label: str | None = None,
        filepath_format: FilePathFormat | None = None,
    ) -> None:
        self.adapter = adapter
        self.fetcher = fetcher or Fetcher()
        self.label = label
        self.filepath_format = filepath_format
        self._data_overrides: dict[str, Any] = {}

    @property
    def type(self) -> str:
        return getattr(self.adapter, "TYPE", type(self.adapter).__name__.lower())

    @property
    def type_friendly(self) -> str:
        return getattr(self.adapter, "TYPE_FRIENDLY", type(self.adapter).__name__)

    @property
    def display_name(self) -> str:
        return self.label or self.type_friendly

    def __repr__(self) -> str:
        return f"Source({self.adapter!r}, label={self.label!r})"

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def set_data_override(self, url: str, data: Any) -> None:
        """Serve *data* instead of fetching *url* (used by tests and fixtures)."""
        self._data_overrides[url] = data

    def get_headers(self) -> dict[str, str]:
        getter = getattr(self.adapter, "get_headers", None)
        return dict(getter()) if getter else {}

    def _payload_type(self) -> str:
        getter = getattr(self.adapter, "get_type", None)
        return getter() if getter else "json"

    async def get_data(self, url: str, type: str | None = None, *, show_errors: bool = True) -> Any:  # noqa: A002
        """Fetch and decode *url*, honoring data overrides."""
        type = type or self._payload_type()  # noqa: A001
        if self._data_overrides:
            if url not in self._data_overrides:
                raise FetchError(f"Missing data override for {url}", url=url, status=404)
            data = self._data_overrides[url]
            if type == "xml" and isinstance(data, (str, bytes)):
                return parse_xml(data)
            return data
        return await self.fetcher.fetch(url, type, self.get_headers(), show_errors=show_errors)

    async def _is_error_worth_worrying_about(self, error: FetchError) -> bool:
        check = getattr(self.adapter, "is_error_worth_worrying_about", None)
        if check is None:
            return True
        result = check(error)
        return await result if inspect.isawaitable(result) else bool(result)

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def get_entries_from_data(self, data: Any) -> list[Any]:
        raw = self.adapter.get_entries_from_data(data)
        if raw is None:
            return []
        return raw if isinstance(raw, list) else [raw]

    async def clean_entries(self, raw_entries: list[Any], data: Any) -> list[Entry]:
        """Normalize raw entries, skipping (and logging) malformed ones."""
        entries: list[Entry] = []
        for raw in raw_entries:
            try:
                cleaned = self.adapter.clean_entry(raw, data, self)
                if inspect.isawaitable(cleaned):
                    cleaned = await cleaned
                entry = cleaned if isinstance(cleaned, Entry) else Entry.model_validate(cleaned)
            except _MALFORMED_ENTRY_ERRORS as exc:
                logger.warning("Skipping malformed %s entry: %s", self.type_friendly, exc)
                continue
            if self.label and not entry.source_label:
                entry.source_label = self.label
            entry._source = self
            entries.append(entry)
        return entries

    async def get_entries(self) -> list[Entry]:
        """Fetch every page of this source and return normalized entries.

        Raises:
            FetchError: a fetch failed in a way the adapter considers real.
        """
        url = self.adapter.get_url() if hasattr(self.adapter, "get_url") else None
        entries: list[Entry] = []

        if callable(url):
            page = 1
            while True:
                page_url = url(page)
                if not page_url:
                    break
                try:
                    data = await self.get_data(page_url, show_errors=False)
                except FetchError as exc:
                    if await self._is_error_worth_worrying_about(exc):
                        logger.error("Error fetching page %d of %s: %s", page, self.display_name, exc)
                        self.fetcher.errors.add(exc.url or page_url)
                        raise
                    break
                raw_entries = self.get_entries_from_data(data)
                if not raw_entries:
                    break
                entries.extend(await self.clean_entries(raw_entries, data))
                page += 1
        elif url:
            data = await self.get_data(url)
            entries = await self.clean_entries(self.get_entries_from_data(data), data)
        elif hasattr(self.adapter, "get_data"):
            data = self.adapter.get_data()
            if inspect.isawaitable(data):
                data = await data
            entries = await self.clean_entries(self.get_entries_from_data(data), data)
        else:
            raise ValueError(f"{self!r} has neither a URL nor a get_data() method")

        logger.debug("%s yielded %d entries", self.display_name, len(entries))
        return entries

    def default_file_path(self, url: str) -> str:
        """Path an entry would get without a custom formatter."""
        deriver = getattr(self.adapter, "get_file_path", None)
        if deriver is not None:
            return deriver(url)
        return urlparse(url).path
