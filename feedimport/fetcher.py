"""Network access for feeds, API payloads and assets.

:class:`Fetcher` is shared by every source and transform in a run.  It owns:

  - the ``httpx.AsyncClient`` (one connection pool per run),
  - an on-disk TTL cache keyed by URL hash (:class:`FetchCache`),
  - an in-flight map so concurrent requests for one URL share one download,
  - the asset registry: which local files were resolved and which were
    written during this run.
"""

from __future__ import annotations

import asyncio
import glob
import hashlib
import json
import logging
import re
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, NamedTuple

import httpx

from feedimport.assets import AssetResolver, split_filename
from feedimport.extractors.feed import parse_xml
from feedimport.logger import log_fs_operation
from feedimport.persist import PersistError
from feedimport.settings import DOWNLOAD_TIMEOUT, MAX_RETRIES, USER_AGENT

if TYPE_CHECKING:
    from feedimport.items import Entry
    from feedimport.persist import Persist

logger = logging.getLogger(__name__)

FetchType = Literal["text", "buffer", "json", "xml"]

_RETRY_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhdwy])\s*$", re.IGNORECASE)
_DURATION_UNITS: dict[str, int] = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 60 * 60 * 24,
    "w": 60 * 60 * 24 * 7,
    "y": 60 * 60 * 24 * 365,
}


class FetchError(RuntimeError):
    """Raised when a URL cannot be fetched or decoded.

    Attributes:
        url    -- the URL that failed
        status -- HTTP status code (0 if no response was received)
        body   -- response body text, when there was one
    """

    def __init__(
        self,
        message: str,
        url: str = "",
        status: int = 0,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status = status
        self.body = body


class FetchedResponse(NamedTuple):
    url: str
    status: int
    content_type: str
    body: bytes
    from_cache: bool = False


def parse_duration(value: str | None) -> float | None:
    """Convert ``"24h"``-style durations to seconds.

    ``"*"`` means cached forever and returns None; an empty value is 0.
    """
    if value is None or value == "":
        return 0.0
    if value.strip() == "*":
        return None
    match = _DURATION_RE.match(value)
    if not match:
        raise ValueError(f"Invalid cache duration: {value!r} (expected e.g. 30s, 20m, 24h, 1d, *)")
    return float(match.group(1)) * _DURATION_UNITS[match.group(2).lower()]


def _decode_body(body: bytes, content_type: str) -> str:
    charset = "utf-8"
    for part in content_type.split(";")[1:]:
        key, _, value = part.strip().partition("=")
        if key.lower() == "charset" and value:
            charset = value.strip('"').strip()
    try:
        return body.decode(charset, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# Disk cache
# ---------------------------------------------------------------------------

class FetchCache:
    """Successful responses stored as ``<sha256>.body`` + ``<sha256>.json``."""

    def __init__(self, directory: str | Path, duration: str | None = "24h") -> None:
        self.directory = Path(directory)
        self.duration = duration
        self.max_age = parse_duration(duration)

    @property
    def enabled(self) -> bool:
        return self.max_age is None or self.max_age > 0

    def _paths(self, url: str) -> tuple[Path, Path]:
        key = hashlib.sha256(url.encode("utf-8")).hexdigest()
        return self.directory / f"{key}.body", self.directory / f"{key}.json"

    def get(self, url: str) -> FetchedResponse | None:
        if not self.enabled:
            return None
        body_path, meta_path = self._paths(url)
        if not body_path.exists() or not meta_path.exists():
            return None
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.debug("Ignoring unreadable cache entry for %s: %s", url, exc)
            return None
        if self.max_age is not None and time.time() - float(meta.get("fetched_at", 0)) > self.max_age:
            return None
        return FetchedResponse(
            url=url,
            status=int(meta.get("status", 200)),
            content_type=meta.get("content_type", ""),
            body=body_path.read_bytes(),
            from_cache=True,
        )

    def put(self, response: FetchedResponse) -> None:
        if not self.enabled:
            return
        body_path, meta_path = self._paths(response.url)
        self.directory.mkdir(parents=True, exist_ok=True)
        body_path.write_bytes(response.body)
        meta_path.write_text(
            json.dumps(
                {
                    "url": response.url,
                    "status": response.status,
                    "content_type": response.content_type,
                    "fetched_at": time.time(),
                },
                ensure_ascii=True,
            ),
            encoding="utf-8",
        )


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------

class Fetcher:
    """Cached, deduplicating HTTP access shared by one import run.

    Args:
        resolver: Maps asset URLs to local paths; defaults to a relative
            resolver rooted at the current directory.
        cache_dir: Folder for the response cache, or None to disable it.
        cache_duration: How long cached responses stay fresh (``"24h"``).
        safe_mode: Never overwrite asset files that already exist.
        dry_run: Fetch everything but write nothing.
        transport: Optional ``httpx`` transport (tests use ``MockTransport``).
        persist: Optional :class:`~feedimport.persist.Persist` that receives
            assets written for published entries.
    """

    def __init__(
        self,
        resolver: AssetResolver | None = None,
        *,
        cache_dir: str | Path | None = None,
        cache_duration: str | None = "0s",
        safe_mode: bool = True,
        dry_run: bool = False,
        verbose: bool = True,
        timeout: float = DOWNLOAD_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        user_agent: str = USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
        persist: Persist | None = None,
    ) -> None:
        self.resolver = resolver or AssetResolver()
        self.cache = FetchCache(cache_dir, cache_duration) if cache_dir else None
        self.cache_duration = cache_duration
        self.safe_mode = safe_mode
        self.dry_run = dry_run
        self.verbose = verbose
        self.timeout = timeout
        self.max_retries = max_retries
        self.user_agent = user_agent
        self.persist = persist
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        self.errors: set[str] = set()
        self.counts: dict[str, int] = {"assets": 0, "fetches": 0}
        self.written_asset_files: set[str] = set()
        self._inflight: dict[str, asyncio.Task[FetchedResponse]] = {}
        self._pending_assets: dict[str, asyncio.Task[str]] = {}

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=httpx.Timeout(self.timeout, connect=10.0),
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
                trust_env=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> Fetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch(
        self,
        url: str,
        type: FetchType = "text",  # noqa: A002
        headers: dict[str, str] | None = None,
        *,
        show_errors: bool = True,
    ) -> Any:
        """Fetch *url* and decode it as ``text``, ``buffer``, ``json`` or ``xml``.

        Raises:
            FetchError: on transport failures, HTTP errors and undecodable
                payloads.  The URL is recorded in :attr:`errors` unless
                *show_errors* is False (expected failures such as the page
                after the last one).
        """
        response = await self.fetch_response(url, headers, show_errors=show_errors)
        if type == "buffer":
            return response.body
        if type == "xml":
            return parse_xml(response.body)
        text = _decode_body(response.body, response.content_type)
        if type == "json":
            try:
                return json.loads(text)
            except ValueError as exc:
                error = FetchError(f"Invalid JSON from {url}: {exc}", url=url, status=response.status, body=text)
                self._record_error(error, show_errors)
                raise error from exc
        return text

    async def fetch_response(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        *,
        show_errors: bool = True,
    ) -> FetchedResponse:
        """Return the raw response for *url*, sharing in-flight downloads."""
        if self.cache is not None:
            cached = self.cache.get(url)
            if cached is not None:
                logger.debug("Cache hit for %s", url)
                return cached

        task = self._inflight.get(url)
        if task is None:
            task = asyncio.ensure_future(self._download(url, headers))
            self._inflight[url] = task
            task.add_done_callback(lambda _t, key=url: self._inflight.pop(key, None))
        try:
            return await asyncio.shield(task)
        except FetchError as exc:
            self._record_error(exc, show_errors)
            raise

    def _record_error(self, error: FetchError, show_errors: bool) -> None:
        if not show_errors:
            return
        self.errors.add(error.url)
        logger.error("%s", error)

    async def _download(self, url: str, headers: dict[str, str] | None) -> FetchedResponse:
        if self.verbose:
            cache_note = f" ({self.cache_duration} cache)" if self.cache is not None else ""
            logger.info("Fetching %s%s", url, cache_note)

        last_error: FetchError | None = None
        for attempt in range(self.max_retries + 1):
            try:
                resp = await self.client.get(url, headers=headers)
            except httpx.HTTPError as exc:
                last_error = FetchError(f"Network error fetching {url}: {exc}", url=url)
                if attempt < self.max_retries:
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue
                raise last_error from exc

            if resp.status_code in _RETRY_CODES and attempt < self.max_retries:
                logger.debug("Retrying %s after HTTP %d", url, resp.status_code)
                await asyncio.sleep(0.5 * (attempt + 1))
                continue
            if resp.status_code >= 400:
                raise FetchError(
                    f"Bad response for {url} (HTTP {resp.status_code})",
                    url=url,
                    status=resp.status_code,
                    body=resp.text,
                )

            self.counts["fetches"] += 1
            response = FetchedResponse(
                url=url,
                status=resp.status_code,
                content_type=resp.headers.get("content-type", ""),
                body=resp.content,
            )
            if self.cache is not None:
                self.cache.put(response)
            return response

        raise last_error or FetchError(f"Giving up on {url}", url=url)

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    async def fetch_asset(self, url: str, entry: Entry | None = None) -> str | None:
        """Localize one asset and return the reference *entry* should use.

        Concurrent calls for the same local file share a single download and
        write.  Returns None when the asset could not be fetched; the error
        is already logged and counted.
        """
        context_path = entry.file_path if entry is not None else None
        key = self.resolver.local_stem(url, context_path)
        task = self._pending_assets.get(key)
        if task is None:
            task = asyncio.ensure_future(self._store_asset(url, context_path, entry))
            self._pending_assets[key] = task
        try:
            local_path = await asyncio.shield(task)
        except FetchError:
            return None
        return self.resolver.reference_for(local_path, context_path)

    def _existing_asset(self, url: str, context_path: str | None) -> str | None:
        _, ext = split_filename(url)
        if ext:
            local = self.resolver.local_path(url, None, context_path)
            return local if Path(local).exists() else None
        stem = self.resolver.local_stem(url, context_path)
        if Path(stem).exists():
            return stem
        matches = sorted(glob.glob(f"{glob.escape(stem)}.*"))
        return matches[0] if matches else None

    async def _store_asset(self, url: str, context_path: str | None, entry: Entry | None) -> str:
        if self.safe_mode:
            existing = self._existing_asset(url, context_path)
            if existing:
                if self.verbose:
                    log_fs_operation("Skipping", "asset", existing, url, reason="overwrites disabled")
                return existing

        response = await self.fetch_response(url)
        local_path = self.resolver.local_path(url, response.content_type, context_path)

        if self.verbose:
            log_fs_operation(
                "Importing", "asset", local_path, url,
                size=len(response.body), dry_run=self.dry_run,
            )
        self.counts["assets"] += 1
        if self.dry_run:
            return local_path

        path = Path(local_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(response.body)
        self.written_asset_files.add(local_path)

        if self.persist is not None and entry is not None and not entry.is_draft:
            try:
                await self.persist.persist_file(local_path, response.body, url=url, type="asset")
            except PersistError as exc:
                logger.error("Could not persist %s: %s", local_path, exc)
                self.errors.add(url)
        return local_path

    def get_counts(self) -> dict[str, int]:
        return {"assets": self.counts["assets"], "errors": len(self.errors)}
