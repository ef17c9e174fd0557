"""Decode RSS / Atom / YouTube XML payloads into plain nested dicts.

The shape mirrors what feed adapters want to index into::

    <rss><channel><item><guid isPermaLink="false">42</guid>...</item></channel></rss>

    {"rss": {"channel": {"item": {"guid": {"@_isPermaLink": "false", "#text": "42"}}}}}

Rules:
  - Elements with neither attributes nor children decode to their stripped text.
  - Attributes become ``@_<name>`` keys; element text becomes ``#text``.
  - Repeated child elements become lists; a single child stays a scalar, so
    adapters normalize with :func:`as_list`.
  - Namespaced names use the prefix declared in the document
    (``dc:creator``, ``media:group``, ``yt:videoId``).  The default namespace
    (Atom) stays unprefixed.

No network I/O happens here; :class:`~feedimport.fetcher.Fetcher` hands the
raw bytes in.
"""

from __future__ import annotations

import io
import logging
import xml.etree.ElementTree as ET  # for ET.ParseError only
from typing import Any

import defusedxml.ElementTree as defused_ET
from defusedxml import DefusedXmlException

logger = logging.getLogger(__name__)

# Well-known prefixes for documents that declare namespaces on nested nodes
_KNOWN_PREFIXES: dict[str, str] = {
    "http://purl.org/dc/elements/1.1/": "dc",
    "http://purl.org/rss/1.0/modules/content/": "content",
    "http://search.yahoo.com/mrss/": "media",
    "http://www.youtube.com/xml/schemas/2015": "yt",
    "http://www.w3.org/2005/Atom": "",
}


def as_list(value: Any) -> list[Any]:
    """Normalize a decoded node that may be missing, single or repeated."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _qualified_name(tag: str, prefixes: dict[str, str]) -> str:
    if not tag.startswith("{"):
        return tag
    uri, _, local = tag[1:].partition("}")
    prefix = prefixes.get(uri, _KNOWN_PREFIXES.get(uri, ""))
    return f"{prefix}:{local}" if prefix else local


def _element_to_value(el: ET.Element, prefixes: dict[str, str]) -> Any:
    text = (el.text or "").strip()
    if not el.attrib and len(el) == 0:
        return text

    node: dict[str, Any] = {}
    for name, value in el.attrib.items():
        node[f"@_{_qualified_name(name, prefixes)}"] = value
    for child in el:
        key = _qualified_name(child.tag, prefixes)
        value = _element_to_value(child, prefixes)
        if key in node:
            existing = node[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                node[key] = [existing, value]
        else:
            node[key] = value
    if text:
        node["#text"] = text
    return node


def parse_xml(data: str | bytes) -> dict[str, Any]:
    """Parse an XML document into a ``{root_name: tree}`` dict.

    Returns an empty dict on parse failure rather than raising, so a broken
    feed yields zero entries.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    prefixes: dict[str, str] = {}
    root: ET.Element | None = None
    try:
        for event, item in defused_ET.iterparse(io.BytesIO(data), events=("start-ns", "end")):
            if event == "start-ns":
                prefix, uri = item
                prefixes.setdefault(uri, prefix)
            else:
                root = item
    except (ET.ParseError, DefusedXmlException) as exc:
        logger.warning("Feed XML parse error: %s", exc)
        return {}

    if root is None:
        return {}
    return {_qualified_name(root.tag, prefixes): _element_to_value(root, prefixes)}
