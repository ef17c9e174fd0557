"""Import orchestration: sources -> paths -> transforms -> sort -> writes.

Typical use::

    importer = Importer(ImportSettings(output_folder="content"))
    importer.add_source("atom", "https://www.11ty.dev/blog/feed.xml")
    importer.add_source("wordpress", {"url": "https://blog.example.com", "label": "Blog"})
    asyncio.run(importer.run())

Paths are computed for every entry, and checked for collisions, before any
asset is fetched or any file is written.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import time
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

import httpx
import yaml

from feedimport.assets import AssetResolver, create_hash
from feedimport.extractors.html_rewriter import HtmlAssetRewriter
from feedimport.extractors.markdown import MarkdownDowngrader
from feedimport.fetcher import FetchError, Fetcher
from feedimport.items import Entry
from feedimport.logger import format_elapsed, log_fs_operation, plural
from feedimport.persist import Persist, PersistError
from feedimport.settings import ImportSettings
from feedimport.sources import create_adapter
from feedimport.sources.base import Source

logger = logging.getLogger(__name__)

OutputFormat = Literal["markdown", "html"]

EXTENSIONS: dict[str, str] = {"markdown": ".md", "html": ".html"}

# Extensions replaced (not doubled) when a URL path already ends in one
_KNOWN_EXTENSIONS: tuple[str, ...] = (".html", ".htm", ".md", ".markdown", ".php")

# Metadata keys holding image URLs that are localized like inline assets
_METADATA_ASSET_KEYS: tuple[str, ...] = ("featuredImage", "opengraphImage")

_NO_DATE = datetime.min.replace(tzinfo=UTC)


class PathConflictError(RuntimeError):
    """Two entries resolved to the same output file."""

    def __init__(self, path: str, first_url: str, second_url: str) -> None:
        super().__init__(
            f"Multiple entries attempted to write to the same place: {path} "
            f"(from {first_url} and {second_url})",
        )
        self.path = path
        self.urls = (first_url, second_url)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def render_document(entry: Entry) -> str:
    """Return the file contents for *entry*: YAML front matter plus body."""
    front_matter = yaml.safe_dump(entry.front_matter(), sort_keys=False, allow_unicode=True)
    body = entry.content or ""
    return f"---\n{front_matter}---\n{body}\n" if body else f"---\n{front_matter}---\n"


def sort_entries(entries: Iterable[Entry]) -> list[Entry]:
    """Newest first; undated entries last; ties keep their input order."""
    return sorted(
        entries,
        key=lambda entry: (entry.date is not None, entry.date or _NO_DATE),
        reverse=True,
    )


def _safe_relative(path: str) -> str:
    """Normalize *path* and drop segments that would climb out of the output folder."""
    parts = [part for part in posixpath.normpath(path).split("/") if part not in ("", ".", "..")]
    return "/".join(parts)


def _with_extension(path: str, extension: str) -> str:
    stem, ext = posixpath.splitext(path)
    if ext.lower() in _KNOWN_EXTENSIONS:
        path = stem
    return f"{path}{extension}"


# ---------------------------------------------------------------------------
# Importer
# ---------------------------------------------------------------------------

class Importer:
    """Run one import: fetch sources, localize assets, write documents.

    Args:
        settings: Run configuration; defaults to :class:`ImportSettings`.
        fetcher: Shared :class:`Fetcher`; built from *settings* when omitted.
        persist: Optional :class:`Persist`; built from ``settings.persist``.
        transport: ``httpx`` transport for the default fetcher (tests).
    """

    def __init__(
        self,
        settings: ImportSettings | None = None,
        *,
        fetcher: Fetcher | None = None,
        persist: Persist | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or ImportSettings()
        if persist is None and self.settings.persist:
            persist = Persist(self.settings.persist)
        self.persist = persist

        self.resolver = AssetResolver(
            output_folder=self.settings.output_folder,
            assets_folder=self.settings.assets_folder,
            reference_type=self.settings.asset_refs,
        )
        self.fetcher = fetcher or Fetcher(
            self.resolver,
            cache_dir=self.settings.cache_dir,
            cache_duration=self.settings.cache_duration,
            safe_mode=self.settings.safe_mode,
            dry_run=self.settings.dry_run,
            verbose=self.settings.verbose,
            timeout=self.settings.timeout,
            max_retries=self.settings.max_retries,
            user_agent=self.settings.user_agent,
            transport=transport,
            persist=persist,
        )
        self.rewriter = HtmlAssetRewriter(self.fetcher)
        self.downgrader = MarkdownDowngrader(
            self.fetcher.resolver,
            self.fetcher,
            preserved_tags=self.settings.preserved_tags,
        )

        self.sources: list[Source] = []
        self.counts: dict[str, int] = {"documents": 0, "errors": 0}
        self._started = time.perf_counter()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def add_source(self, source_type: Any, options: str | dict[str, Any] | None = None) -> Source:
        """Register a source.

        *source_type* is a registered type name (``"atom"``, ``"rss"``,
        ``"wordpress"``, ...), an adapter class or an adapter instance.
        *options* is the URL/identifier, or a mapping with ``url`` or ``id``
        plus optional ``label`` and ``filepath_format``.

        Raises:
            ValueError: unknown type, missing identifier or an object that
                does not implement the adapter interface.
        """
        if isinstance(options, str):
            options = {"url": options}
        options = dict(options or {})
        identifier = options.get("url") or options.get("id")

        if isinstance(source_type, str):
            if not identifier:
                raise ValueError(f"Source type {source_type!r} needs a url or id")
            adapter = create_adapter(source_type, identifier)
        elif isinstance(source_type, type):
            adapter = source_type(identifier) if identifier else source_type()
        else:
            adapter = source_type

        if not callable(getattr(adapter, "get_entries_from_data", None)) or not callable(
            getattr(adapter, "clean_entry", None),
        ):
            raise ValueError(f"{adapter!r} is not a valid source adapter")

        source = Source(
            adapter,
            self.fetcher,
            label=options.get("label"),
            filepath_format=options.get("filepath_format") or options.get("filepathFormat"),
        )
        self.sources.append(source)
        logger.debug("Added source %r", source)
        return source

    def add_data_override(self, url: str, data: Any, source_type: str | None = None) -> None:
        """Serve *data* for *url* instead of fetching it.

        Applies to every source added so far, or only those of *source_type*.
        """
        for source in self.sources:
            if source_type is None or source.type == source_type:
                source.set_data_override(url, data)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def get_file_path(self, entry: Entry, content_type: OutputFormat | None = None) -> str | None:
        """Return where *entry* is written, or None to skip it."""
        content_type = content_type or self.settings.format
        source = entry.source
        default_path = source.default_file_path(entry.url) if source else urlparse(entry.url).path

        formatter = source.filepath_format if source else None
        add_extension = True
        if formatter is not None:
            custom = formatter(entry.url, default_path)
            if custom is None or custom is False:
                return None
            path = str(custom)
            add_extension = False
        else:
            path = default_path or ""

        if path.strip() in ("", "/"):
            path = create_hash(entry.url)
        path = _safe_relative(path.strip().rstrip("/")) or create_hash(entry.url)
        if add_extension:
            path = _with_extension(path, EXTENSIONS.get(content_type, ".html"))

        folders = [self.settings.output_folder]
        if entry.is_draft:
            folders.append(self.settings.drafts_folder)
        return posixpath.normpath(posixpath.join(*folders, path))

    @staticmethod
    def check_conflicts(entries: Iterable[Entry]) -> None:
        """Raise :class:`PathConflictError` if two entries share a file path."""
        seen: dict[str, Entry] = {}
        for entry in entries:
            if entry.file_path is None:
                continue
            other = seen.get(entry.file_path)
            if other is not None:
                raise PathConflictError(entry.file_path, other.url, entry.url)
            seen[entry.file_path] = entry

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def get_entries(self, content_type: OutputFormat | None = None) -> list[Entry]:
        """Fetch, normalize and transform entries from every source.

        Raises:
            PathConflictError: two entries resolve to the same file.
        """
        content_type = content_type or self.settings.format
        results = await asyncio.gather(
            *(source.get_entries() for source in self.sources),
            return_exceptions=True,
        )

        entries: list[Entry] = []
        for source, result in zip(self.sources, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                self._record_source_failure(source, result)
                continue
            entries.extend(result)

        routed: list[Entry] = []
        for entry in entries:
            path = self.get_file_path(entry, content_type)
            if path is None:
                logger.debug("Skipping %s (excluded by file path format)", entry.url)
                continue
            entry.file_path = path
            routed.append(entry)
        self.check_conflicts(routed)

        transformed = await asyncio.gather(
            *(self.transform(entry, content_type) for entry in routed),
            return_exceptions=True,
        )
        finished: list[Entry] = []
        for entry, result in zip(routed, transformed):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                self.counts["errors"] += 1
                logger.error("Could not import %s: %s", entry.url, result)
                continue
            finished.append(result)

        self.downgrader.cleanup()
        return sort_entries(finished)

    async def transform(self, entry: Entry, content_type: OutputFormat) -> Entry:
        """Localize assets in *entry* and convert it to *content_type*."""
        if entry.content_type == "html" and entry.content:
            entry.content = await self.rewriter.rewrite(entry.content, entry)

        if entry.metadata:
            for key in _METADATA_ASSET_KEYS:
                if entry.metadata.get(key):
                    entry.metadata[key] = await self.rewriter.localize_url(entry.metadata[key], entry)

        if content_type == "markdown" and entry.content_type == "html":
            entry.content = self.downgrader.to_markdown(entry.content, entry)
            entry.content_type = "markdown"

        # front matter images outlive the body's srcset pruning
        for key in _METADATA_ASSET_KEYS:
            if entry.metadata and entry.metadata.get(key):
                self.downgrader.keep(entry.metadata[key], entry)
        return entry

    def _record_source_failure(self, source: Source, error: Exception) -> None:
        logger.error("Could not import from %s: %s", source.display_name, error)
        if isinstance(error, FetchError) and error.url:
            self.fetcher.errors.add(error.url)
        else:
            self.counts["errors"] += 1

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def to_files(self, entries: list[Entry]) -> int:
        """Write *entries* to disk; returns how many documents were written.

        Raises:
            PathConflictError: two entries share a file path; nothing is
                written.
        """
        self.check_conflicts(entries)
        written = 0
        for entry in entries:
            if await self._write_entry(entry):
                written += 1
        return written

    async def _write_entry(self, entry: Entry) -> bool:
        if not entry.file_path:
            return False
        kind = "draft" if entry.is_draft else "post"
        path = Path(entry.file_path)
        if self.settings.safe_mode and path.exists():
            if self.settings.verbose:
                log_fs_operation("Skipping", kind, entry.file_path, entry.url, reason="overwrites disabled")
            return False

        document = render_document(entry)
        if self.settings.verbose:
            log_fs_operation(
                "Importing", kind, entry.file_path, entry.url,
                size=len(document.encode("utf-8")), dry_run=self.settings.dry_run,
            )
        self.counts["documents"] += 1
        if self.settings.dry_run:
            return True

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(document, encoding="utf-8")

        if self.persist is not None and not entry.is_draft:
            try:
                await self.persist.persist_file(entry.file_path, document, url=entry.url, type="document")
            except PersistError as exc:
                logger.error("Could not persist %s: %s", entry.file_path, exc)
                self.counts["errors"] += 1
        return True

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_counts(self) -> dict[str, int]:
        return {
            "documents": self.counts["documents"],
            "assets": self.fetcher.counts["assets"],
            "cleaned": self.downgrader.counts["cleaned"],
            "errors": len(self.fetcher.errors) + self.counts["errors"],
        }

    def describe_sources(self) -> str:
        names = []
        for source in self.sources:
            url = getattr(source.adapter, "url", None)
            names.append(f"{source.display_name} ({url})" if url else source.display_name)
        return ", ".join(names) or "no sources"

    def log_results(self) -> str:
        counts = self.get_counts()
        message = (
            f"Wrote {plural(counts['documents'], 'document')} and "
            f"{plural(counts['assets'], 'asset')} ({counts['cleaned']} cleaned) "
            f"from {self.describe_sources()}"
        )
        if counts["errors"]:
            message += f" ({plural(counts['errors'], 'error')})"
        if self.settings.dry_run:
            message += " (dry run)"
        message += f" in {format_elapsed(time.perf_counter() - self._started)}"
        logger.info(message)
        return message

    async def run(self, content_type: OutputFormat | None = None) -> list[Entry]:
        """Import everything and write it out; returns the written entries."""
        self._started = time.perf_counter()
        try:
            async with self.fetcher:
                entries = await self.get_entries(content_type)
                await self.to_files(entries)
        finally:
            if self.persist is not None:
                await self.persist.aclose()
        self.log_results()
        return entries
