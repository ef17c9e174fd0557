"""Language detection and optional reformatting for ``<pre>`` code blocks."""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING

import defusedxml.minidom

from feedimport.plugins import get_formatters

if TYPE_CHECKING:
    from bs4 import Tag

logger = logging.getLogger(__name__)

_LANGUAGE_CLASS_RE = re.compile(r"^(?:language|lang)-([\w+#.-]+)$", re.IGNORECASE)
# SyntaxHighlighter (WordPress) style: class="brush: jscript; gutter: false"
_BRUSH_RE = re.compile(r"brush:\s*([\w+#.-]+)", re.IGNORECASE)

# Legacy highlighter names mapped onto the names Markdown renderers know
LANGUAGE_ALIASES: dict[str, str] = {
    "jscript": "js",
    "javascript": "js",
    "ecmascript": "js",
    "as3": "actionscript",
    "shell": "bash",
    "sh": "bash",
    "ps": "powershell",
    "py": "python",
    "rb": "ruby",
    "pl": "perl",
    "csharp": "cs",
    "c-sharp": "cs",
    "vb": "vbnet",
    "plain": "text",
    "plaintext": "text",
    "text/html": "html",
    "xhtml": "html",
    "xslt": "xml",
}


def _class_string(el: Tag | None) -> str:
    if el is None:
        return ""
    classes = el.get("class") or []
    if isinstance(classes, str):
        return classes
    return " ".join(classes)


def detect_language(pre: Tag) -> str:
    """Return the language hint of a ``<pre>`` block, or ``""``.

    Looks at ``language-xxx`` classes on the ``<pre>`` and its ``<code>``
    child, then at SyntaxHighlighter ``brush:`` declarations.
    """
    code = pre.find("code")
    for el in (pre, code):
        if el is None:
            continue
        for cls in _class_string(el).split():
            match = _LANGUAGE_CLASS_RE.match(cls)
            if match:
                return canonical_language(match.group(1))
    for el in (pre, code):
        match = _BRUSH_RE.search(_class_string(el))
        if match:
            return canonical_language(match.group(1).rstrip(";"))
    lang = pre.get("data-lang") or pre.get("lang")
    return canonical_language(str(lang)) if lang else ""


def canonical_language(name: str) -> str:
    name = name.strip().lower()
    return LANGUAGE_ALIASES.get(name, name)


# ---------------------------------------------------------------------------
# Built-in formatters
# ---------------------------------------------------------------------------

class JsonFormatter:
    name = "json"
    languages: tuple[str, ...] = ("json",)

    def format(self, code: str, language: str) -> str:
        return json.dumps(json.loads(code), indent=2, ensure_ascii=False)


class XmlFormatter:
    name = "xml"
    languages: tuple[str, ...] = ("xml", "svg")

    def format(self, code: str, language: str) -> str:
        pretty = defusedxml.minidom.parseString(code.strip()).toprettyxml(indent="  ")
        lines = [line for line in pretty.splitlines() if line.strip()]
        if lines and lines[0].startswith("<?xml") and not code.lstrip().startswith("<?xml"):
            lines = lines[1:]
        return "\n".join(lines)


BUILTIN_FORMATTERS = (JsonFormatter(), XmlFormatter())


def format_code(code: str, language: str) -> str:
    """Reformat *code* with the first formatter that handles *language*.

    Formatter failures are logged and the code is returned unchanged.
    """
    if not language:
        return code
    for formatter in (*get_formatters(), *BUILTIN_FORMATTERS):
        if language not in formatter.languages:
            continue
        try:
            return formatter.format(code, language)
        except Exception as exc:
            logger.warning("Could not format %s code block with %s: %s", language, formatter.name, exc)
            return code
    return code
