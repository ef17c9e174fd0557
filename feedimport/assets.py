"""Deterministic local file names and reference URLs for remote assets.

Every asset gets a name derived from its URL alone::

    https://example.com/wp-content/uploads/photo.jpg?w=300
        -> photo-PRUzTfoNnY3M.jpg

so repeated imports map the same URL onto the same file, and two different
URLs that share a basename never collide.
"""

from __future__ import annotations

import base64
import hashlib
import os
import posixpath
import re
from pathlib import PurePosixPath
from typing import Literal

from feedimport.extractors.urlnorm import url_basename
from feedimport.items import AssetRecord

AssetReferenceType = Literal["relative", "absolute", "colocate"]
ASSET_REFERENCE_TYPES: tuple[str, ...] = ("relative", "absolute", "colocate")

HASH_FILENAME_LENGTH = 12
MAXIMUM_URL_FILENAME_SIZE = 30

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")
_UNSAFE_FILENAME_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f]')
_WHITESPACE_RE = re.compile(r"\s+")

CONTENT_TYPE_TO_EXT: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/avif": "avif",
    "image/bmp": "bmp",
    "image/svg+xml": "svg",
    "image/tiff": "tiff",
    "image/x-icon": "ico",
    "image/vnd.microsoft.icon": "ico",
    "image/heic": "heic",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
    "text/css": "css",
    "text/javascript": "js",
    "application/javascript": "js",
    "text/vtt": "vtt",
    "application/pdf": "pdf",
}


def create_hash(text: str) -> str:
    """Return a short, filename-safe SHA-256 digest of *text*."""
    digest = base64.b64encode(hashlib.sha256(text.encode("utf-8")).digest()).decode("ascii")
    return _NON_ALNUM_RE.sub("", digest)[:HASH_FILENAME_LENGTH]


def extension_for_content_type(content_type: str | None) -> str:
    """Map a ``Content-Type`` header value onto a file extension (no dot)."""
    if not content_type:
        return ""
    mime = content_type.split(";", 1)[0].strip().lower()
    if mime in CONTENT_TYPE_TO_EXT:
        return CONTENT_TYPE_TO_EXT[mime]
    _, _, subtype = mime.partition("/")
    subtype = subtype.split("+", 1)[0]
    return _NON_ALNUM_RE.sub("", subtype)


def split_filename(url: str) -> tuple[str, str]:
    """Return ``(stem, extension)`` of the last URL path segment."""
    name = _WHITESPACE_RE.sub("-", _UNSAFE_FILENAME_RE.sub("", url_basename(url)))
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return name, ""
    return stem, ext


def filename_stem(url: str) -> str:
    """Return the extension-less local file name for *url*."""
    stem, _ = split_filename(url)
    return f"{stem[:MAXIMUM_URL_FILENAME_SIZE]}-{create_hash(url)}"


def filename_from_src(url: str, content_type: str | None = None) -> str:
    """Return the local file name for *url*.

    The extension comes from the URL when it has one, otherwise from
    *content_type*; neither yields a bare ``<stem>-<hash>`` name.
    """
    _, ext = split_filename(url)
    ext = ext or extension_for_content_type(content_type)
    stem = filename_stem(url)
    return f"{stem}.{ext}" if ext else stem


class AssetResolver:
    """Map remote asset URLs onto local paths and reference URLs.

    Args:
        output_folder: Root folder documents are written under.
        assets_folder: Folder (inside *output_folder*) shared assets go to.
        reference_type: ``relative`` (path relative to the referring
            document), ``absolute`` (``/assets/...`` from the site root) or
            ``colocate`` (asset stored beside the document).
    """

    def __init__(
        self,
        output_folder: str = ".",
        assets_folder: str = "assets",
        reference_type: AssetReferenceType = "relative",
    ) -> None:
        if reference_type not in ASSET_REFERENCE_TYPES:
            raise ValueError(
                f"Invalid asset reference type: {reference_type!r} "
                f"(expected one of {', '.join(ASSET_REFERENCE_TYPES)})",
            )
        self.output_folder = output_folder
        self.assets_folder = assets_folder
        self.reference_type: AssetReferenceType = reference_type

    # ------------------------------------------------------------------
    # Local paths
    # ------------------------------------------------------------------

    def asset_directory(self, context_path: str | None = None) -> str:
        """Return the folder an asset referenced from *context_path* lives in."""
        if self.reference_type == "colocate" and context_path:
            return posixpath.normpath(posixpath.dirname(_posix(context_path)) or ".")
        return posixpath.normpath(posixpath.join(_posix(self.output_folder), self.assets_folder))

    def local_stem(self, url: str, context_path: str | None = None) -> str:
        """Return the local path of *url* without its extension.

        Stable before the asset is fetched, so it doubles as the key that
        deduplicates concurrent requests for the same asset.
        """
        return posixpath.join(self.asset_directory(context_path), filename_stem(url))

    def local_path(
        self,
        url: str,
        content_type: str | None = None,
        context_path: str | None = None,
    ) -> str:
        return posixpath.join(
            self.asset_directory(context_path),
            filename_from_src(url, content_type),
        )

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def reference_for(self, local_path: str, context_path: str | None = None) -> str:
        """Return how a document at *context_path* should refer to *local_path*."""
        local_path = _posix(local_path)
        filename = posixpath.basename(local_path)
        if self.reference_type == "colocate":
            return filename
        if self.reference_type == "absolute" or not context_path:
            return f"/{PurePosixPath(self.assets_folder).as_posix().strip('/')}/{filename}"
        start = posixpath.dirname(_posix(context_path)) or "."
        return posixpath.relpath(local_path, start=start)

    def resolve(
        self,
        url: str,
        content_type: str | None = None,
        context_path: str | None = None,
    ) -> AssetRecord:
        """Return the full :class:`AssetRecord` for *url* seen from *context_path*."""
        local = self.local_path(url, content_type, context_path)
        return AssetRecord(
            source_url=url,
            content_hash=create_hash(url),
            local_file_path=local,
            reference_url=self.reference_for(local, context_path),
        )

    def local_path_for_reference(self, reference: str, context_path: str | None = None) -> str | None:
        """Map a reference written into a document back onto its local file.

        Remote URLs return None.
        """
        if not reference or "://" in reference or reference.startswith(("data:", "//")):
            return None
        reference = reference.split("#", 1)[0].split("?", 1)[0]
        if self.reference_type == "colocate":
            base = posixpath.dirname(_posix(context_path)) if context_path else ""
            return posixpath.normpath(posixpath.join(base or ".", reference))
        if reference.startswith("/"):
            return posixpath.normpath(posixpath.join(_posix(self.output_folder), reference.lstrip("/")))
        base = posixpath.dirname(_posix(context_path)) if context_path else ""
        return posixpath.normpath(posixpath.join(base or ".", reference))


def _posix(path: str) -> str:
    return path.replace(os.sep, "/") if os.sep != "/" else path
