"""URL helpers: validation, resolution against a base, and srcset parsing."""

from __future__ import annotations

import re
from typing import NamedTuple
from urllib.parse import unquote, urljoin, urlparse

_HTTP_SCHEMES: frozenset[str] = frozenset({"http", "https"})

# Schemes that never point at a fetchable asset
_SKIP_PREFIXES: tuple[str, ...] = ("data:", "blob:", "javascript:", "mailto:", "tel:", "#")

_DESCRIPTOR_RE = re.compile(r"^(\d+(?:\.\d+)?)([wxh])$", re.IGNORECASE)


class SrcsetCandidate(NamedTuple):
    """One ``url [descriptor]`` pair from a ``srcset`` attribute."""

    url: str
    descriptor: str | None


def is_http_url(url: str | None) -> bool:
    """Return True if *url* is an absolute http(s) URL with a host."""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme.lower() in _HTTP_SCHEMES and bool(parsed.netloc)


def resolve_url(raw: str | None, base_url: str | None = None) -> str | None:
    """Resolve *raw* against *base_url* and return it if it is fetchable.

    Data URIs, fragments and other non-http references return None.
    """
    if not raw:
        return None
    raw = raw.strip()
    if not raw or raw.lower().startswith(_SKIP_PREFIXES):
        return None
    absolute = urljoin(base_url, raw) if base_url else raw
    return absolute if is_http_url(absolute) else None


def url_path(url: str) -> str:
    """Return the unquoted path component of *url* (``""`` on failure)."""
    try:
        return unquote(urlparse(url).path)
    except ValueError:
        return ""


def url_basename(url: str) -> str:
    """Return the last non-empty path segment of *url*."""
    segments = [segment for segment in url_path(url).split("/") if segment]
    return segments[-1] if segments else ""


def parse_srcset(value: str | None) -> list[SrcsetCandidate]:
    """Split a ``srcset`` attribute into candidates.

    Commas inside URLs survive as long as the candidate separator is followed
    by whitespace or the candidate carries a descriptor, which covers the
    ``?w=300,h=200`` CDN style seen in feeds.
    """
    if not value:
        return []
    candidates: list[SrcsetCandidate] = []
    pending: str | None = None
    for token in value.split():
        if pending is not None:
            descriptor, _, rest = token.partition(",")
            if _DESCRIPTOR_RE.match(descriptor):
                candidates.append(SrcsetCandidate(pending, descriptor.lower()))
                pending = rest or None
                continue
            # The pending URL had no descriptor; this token starts a new candidate
            candidates.append(SrcsetCandidate(pending, None))
            pending = None
        if token.endswith(","):
            if token.rstrip(","):
                candidates.append(SrcsetCandidate(token.rstrip(","), None))
        else:
            pending = token
    if pending:
        candidates.append(SrcsetCandidate(pending, None))
    return candidates


def candidate_resolution(candidate: SrcsetCandidate) -> tuple[int, float]:
    """Sort key for a srcset candidate: width descriptors outrank densities."""
    if not candidate.descriptor:
        return (0, 1.0)
    match = _DESCRIPTOR_RE.match(candidate.descriptor)
    if not match:
        return (0, 1.0)
    number, unit = float(match.group(1)), match.group(2).lower()
    return (1, number) if unit in ("w", "h") else (0, number)


def best_srcset_candidate(value: str | None) -> str | None:
    """Return the URL of the highest-resolution candidate, first one on ties."""
    best: SrcsetCandidate | None = None
    for candidate in parse_srcset(value):
        if best is None or candidate_resolution(candidate) > candidate_resolution(best):
            best = candidate
    return best.url if best else None


def rewrite_srcset(value: str, mapping: dict[str, str]) -> str:
    """Replace candidate URLs found in *mapping*, keeping descriptors."""
    parts: list[str] = []
    for candidate in parse_srcset(value):
        url = mapping.get(candidate.url, candidate.url)
        parts.append(f"{url} {candidate.descriptor}" if candidate.descriptor else url)
    return ", ".join(parts)
