"""Convert entry HTML to Markdown and prune assets the conversion dropped.

Conversion runs markdownify with an ordered table of rules consulted before
its own per-tag converters.  The first matching rule renders the element:

    icons -> preserved tags -> discarded tags -> <picture> -> <img> -> <pre>

While converting, every asset reference is sorted into the document's
``keep`` set (still referenced by the Markdown) or ``delete`` set (downloaded
by the HTML rewrite but no longer referenced, e.g. the smaller ``srcset``
candidates).  :meth:`MarkdownDowngrader.cleanup` removes the deleted files
once, after every document of the run has been converted.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag
from markdownify import ATX, BACKSLASH, MarkdownConverter

from feedimport.extractors.code import detect_language, format_code
from feedimport.extractors.html_rewriter import ASSET_ATTRIBUTES, HTML_FORMATTER
from feedimport.extractors.urlnorm import best_srcset_candidate, parse_srcset
from feedimport.settings import DEFAULT_PRESERVED_TAGS

if TYPE_CHECKING:
    from feedimport.assets import AssetResolver
    from feedimport.fetcher import Fetcher
    from feedimport.items import Entry

logger = logging.getLogger(__name__)

_EXCESSIVE_BLANK_LINES_RE = re.compile(r"\n{3,}")
_TRAILING_WHITESPACE_RE = re.compile(r"[ \t]+$", re.MULTILINE)
_FENCE_LINE_RE = re.compile(r"^\s*(`{3,}|~{3,})")
_BACKTICK_RUN_RE = re.compile(r"`{3,}")
_WHITESPACE_RUN_RE = re.compile(r"\s+")
_LEADING_WS_RE = re.compile(r"^\s+")
_TRAILING_WS_RE = re.compile(r"\s+$")
_OPEN_TAG_WS_RE = re.compile(r"^(<[^>]*>)\s+")
_CLOSE_TAG_WS_RE = re.compile(r"\s+(</[^>]+>)$")
_BETWEEN_TAGS_WS_RE = re.compile(r">\s+<")

# Preserved elements laid out as their own block
BLOCK_PRESERVED_TAGS: frozenset[str] = frozenset(
    {"table", "details", "iframe", "video", "audio", "figure", "dl"},
)

_ICON_CLASS_RE = re.compile(
    r"^(?:fa|fas|far|fab|fal|fad|fa-[\w-]+|bi|bi-[\w-]+|icon|icon-[\w-]+|"
    r"material-icons(?:-[\w-]+)?|material-symbols-[\w-]+|"
    r"dashicons(?:-[\w-]+)?|glyphicon(?:-[\w-]+)?)$",
)
_FA_PREFIXES: dict[str, str] = {
    "fas": "fa-solid",
    "far": "fa-regular",
    "fab": "fa-brands",
    "fal": "fa-light",
    "fat": "fa-thin",
    "fad": "fa-duotone",
}
_DISCARDED_TAGS: frozenset[str] = frozenset({"script", "link", "style"})


@dataclass
class AssetUsage:
    """Asset references seen while converting one document."""

    context_path: str | None
    keep: set[str] = field(default_factory=set)
    delete: set[str] = field(default_factory=set)
    cleaned: bool = False


class ConversionRule(NamedTuple):
    name: str
    matches: Callable[[Tag, MarkdownDowngrader], bool]
    convert: Callable[[_RuleConverter, Tag, set[str]], str]


# ---------------------------------------------------------------------------
# Rule: icons
# ---------------------------------------------------------------------------

def _icon_classes(node: Tag) -> list[str]:
    return [cls for cls in node.get("class") or [] if _ICON_CLASS_RE.match(cls)]


def _is_icon(node: Tag, downgrader: MarkdownDowngrader) -> bool:
    if node.name in ("i", "span"):
        classes = _icon_classes(node)
        if not classes:
            return False
        # Ligature fonts spell the glyph name as text; other icon fonts are empty
        return not node.get_text(strip=True) or any(cls.startswith("material-") for cls in classes)
    if node.name == "svg":
        classes = node.get("class") or []
        return (
            "svg-inline--fa" in classes
            or node.find("use") is not None
            or bool(_icon_classes(node))
        )
    return False


def _convert_icon(conv: _RuleConverter, node: Tag, parent_tags: set[str]) -> str:
    if node.name == "svg":
        prefix, icon = node.get("data-prefix"), node.get("data-icon")
        if prefix and icon:
            return f'<i class="{_FA_PREFIXES.get(prefix, prefix)} fa-{icon}"></i>'
        use = node.find("use")
        href = (use.get("href") or use.get("xlink:href")) if use is not None else None
        if href:
            classes = " ".join(node.get("class") or [])
            class_attr = f' class="{classes}"' if classes else ""
            return f'<svg{class_attr} aria-hidden="true"><use href="{href}"></use></svg>'
        return _BETWEEN_TAGS_WS_RE.sub("><", node.decode(formatter=HTML_FORMATTER).strip())
    text = node.get_text(strip=True)
    return f'<i class="{" ".join(_icon_classes(node))}">{text}</i>'


# ---------------------------------------------------------------------------
# Rule: preserved tags
# ---------------------------------------------------------------------------

def _is_preserved(node: Tag, downgrader: MarkdownDowngrader) -> bool:
    return node.name in downgrader.preserved_tags


def _convert_preserved(conv: _RuleConverter, node: Tag, parent_tags: set[str]) -> str:
    for url in _asset_urls(node):
        conv.usage.keep.add(url)
    markup = node.decode(formatter=HTML_FORMATTER)
    if node.name in BLOCK_PRESERVED_TAGS:
        if "_inline" in parent_tags:
            return markup
        return f"\n\n{markup.strip()}\n\n"
    return _inline_markup(node, markup)


def _inline_markup(node: Tag, markup: str) -> str:
    """Collapse inner whitespace, moving edge whitespace outside the tags."""
    text = node.get_text()
    markup = _WHITESPACE_RUN_RE.sub(" ", markup)
    markup = _CLOSE_TAG_WS_RE.sub(r"\1", _OPEN_TAG_WS_RE.sub(r"\1", markup))
    prefix = " " if text[:1].isspace() else ""
    suffix = " " if text[-1:].isspace() else ""
    return f"{prefix}{markup}{suffix}"


# ---------------------------------------------------------------------------
# Rule: discarded tags
# ---------------------------------------------------------------------------

def _is_discarded(node: Tag, downgrader: MarkdownDowngrader) -> bool:
    return node.name in _DISCARDED_TAGS


def _convert_discarded(conv: _RuleConverter, node: Tag, parent_tags: set[str]) -> str:
    for url in _asset_urls(node):
        conv.usage.delete.add(url)
    return ""


# ---------------------------------------------------------------------------
# Rules: images
# ---------------------------------------------------------------------------

def _is_picture(node: Tag, downgrader: MarkdownDowngrader) -> bool:
    return node.name == "picture"


def _convert_picture(conv: _RuleConverter, node: Tag, parent_tags: set[str]) -> str:
    for source in node.find_all("source"):
        for url in _asset_urls(source):
            conv.usage.delete.add(url)
    img = node.find("img")
    if img is None:
        return ""
    return _convert_image(conv, img, parent_tags)


def _is_image(node: Tag, downgrader: MarkdownDowngrader) -> bool:
    return node.name == "img"


def _convert_image(conv: _RuleConverter, node: Tag, parent_tags: set[str]) -> str:
    src = (node.get("src") or "").strip()
    srcset = node.get("srcset")
    chosen = best_srcset_candidate(srcset) or src
    for url in [candidate.url for candidate in parse_srcset(srcset)] + [src]:
        if url and url != chosen:
            conv.usage.delete.add(url)
    if not chosen:
        return ""
    conv.usage.keep.add(chosen)

    alt = (node.get("alt") or "").replace("]", r"\]")
    title = node.get("title") or ""
    title_part = ' "%s"' % title.replace('"', r"\"") if title else ""
    return f"![{alt}]({chosen}{title_part})"


# ---------------------------------------------------------------------------
# Rule: code blocks
# ---------------------------------------------------------------------------

def _is_code_block(node: Tag, downgrader: MarkdownDowngrader) -> bool:
    return node.name == "pre"


def _convert_code_block(conv: _RuleConverter, node: Tag, parent_tags: set[str]) -> str:
    language = detect_language(node)
    code = node.get_text().strip("\n")
    if not code.strip():
        return ""
    code = format_code(code, language)
    longest = max((len(run) for run in _BACKTICK_RUN_RE.findall(code)), default=2)
    fence = "`" * max(3, longest + 1)
    return f"\n\n{fence}{language}\n{code}\n{fence}\n\n"


DEFAULT_RULES: tuple[ConversionRule, ...] = (
    ConversionRule("icon", _is_icon, _convert_icon),
    ConversionRule("preserved", _is_preserved, _convert_preserved),
    ConversionRule("discarded", _is_discarded, _convert_discarded),
    ConversionRule("picture", _is_picture, _convert_picture),
    ConversionRule("image", _is_image, _convert_image),
    ConversionRule("code_block", _is_code_block, _convert_code_block),
)


def _asset_urls(node: Tag) -> list[str]:
    """Every asset URL on *node* and its descendants."""
    urls: list[str] = []
    tags = list(node.find_all(list(ASSET_ATTRIBUTES)))
    if node.name in ASSET_ATTRIBUTES:
        tags.insert(0, node)
    for tag in tags:
        for attr in ASSET_ATTRIBUTES[tag.name]:
            value = tag.get(attr)
            if not value or not isinstance(value, str):
                continue
            if attr == "srcset":
                urls.extend(candidate.url for candidate in parse_srcset(value))
            else:
                urls.append(value.strip())
    return urls


# ---------------------------------------------------------------------------
# markdownify bridge
# ---------------------------------------------------------------------------

class _RuleConverter(MarkdownConverter):
    """markdownify converter that consults the rule table first."""

    def __init__(self, downgrader: MarkdownDowngrader, usage: AssetUsage, **options: object) -> None:
        super().__init__(**options)
        self.downgrader = downgrader
        self.usage = usage

    def _matching_rule(self, node: object) -> ConversionRule | None:
        if not isinstance(node, Tag):
            return None
        for rule in self.downgrader.rules:
            if rule.matches(node, self.downgrader):
                return rule
        return None

    def process_tag(self, node, parent_tags=None):  # noqa: ANN001, ANN201
        if parent_tags is None:
            parent_tags = set()
        rule = self._matching_rule(node)
        if rule is not None:
            return rule.convert(self, node, parent_tags)
        return super().process_tag(node, parent_tags=parent_tags)

    def process_text(self, el, parent_tags=None):  # noqa: ANN001, ANN201
        text = super().process_text(el, parent_tags=parent_tags)
        if parent_tags and "pre" in parent_tags:
            return text
        previous, following = el.previous_sibling, el.next_sibling
        if text and self._is_inline_markup(previous):
            edge = "" if _ends_with_space(previous) else " "
            text = _LEADING_WS_RE.sub(edge, text)
        if text and self._is_inline_markup(following):
            edge = "" if _starts_with_space(following) else " "
            text = _TRAILING_WS_RE.sub(edge, text)
        return text

    def _is_inline_markup(self, node: object) -> bool:
        """True for siblings this converter emits as inline raw HTML."""
        rule = self._matching_rule(node)
        if rule is None:
            return False
        if rule.name == "icon":
            return True
        return rule.name == "preserved" and node.name not in BLOCK_PRESERVED_TAGS

    def escape(self, text, parent_tags):  # noqa: ANN001, ANN201
        text = super().escape(text, parent_tags)
        return text.replace("<", r"\<")


def _starts_with_space(node: Tag) -> bool:
    return node.get_text()[:1].isspace()


def _ends_with_space(node: Tag) -> bool:
    return node.get_text()[-1:].isspace()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class MarkdownDowngrader:
    """HTML -> Markdown conversion with run-wide asset bookkeeping.

    Args:
        resolver: Maps references written into documents back onto local
            files for cleanup.  Without one, references are treated as paths
            relative to the current directory.
        fetcher: When given, cleanup only deletes files this fetcher wrote
            during the run (nothing in dry-run mode).
        preserved_tags: Elements copied through as raw HTML.
        rules: Override the conversion rule table.
    """

    def __init__(
        self,
        resolver: AssetResolver | None = None,
        fetcher: Fetcher | None = None,
        preserved_tags: Iterable[str] = DEFAULT_PRESERVED_TAGS,
        rules: Iterable[ConversionRule] | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.resolver = resolver or (fetcher.resolver if fetcher is not None else None)
        self.preserved_tags = frozenset(tag.lower() for tag in preserved_tags)
        self.rules: list[ConversionRule] = list(rules if rules is not None else DEFAULT_RULES)
        self.counts: dict[str, int] = {"cleaned": 0}
        self._usage: list[AssetUsage] = []

    def to_markdown(self, html: str, entry: Entry | None = None) -> str:
        """Convert *html* to Markdown, recording which assets it still uses."""
        usage = AssetUsage(context_path=entry.file_path if entry is not None else None)
        self._usage.append(usage)
        if not html or not html.strip():
            return ""

        try:
            converter = _RuleConverter(
                self,
                usage,
                heading_style=ATX,
                bullets="-",
                newline_style=BACKSLASH,
                escape_misc=False,
            )
            md = converter.convert_soup(BeautifulSoup(html, "html.parser"))
        except Exception as exc:
            # Graceful fallback: strip tags and return plain text
            logger.warning("Markdown conversion failed for %s: %s", entry.url if entry else "document", exc)
            usage.keep.clear()
            usage.delete.clear()
            md = BeautifulSoup(html, "lxml").get_text(separator="\n")

        return _tidy(md)

    def keep(self, reference: str, entry: Entry | None = None) -> None:
        """Mark *reference* as used by *entry* outside its converted body."""
        context_path = entry.file_path if entry is not None else None
        usage = next(
            (u for u in reversed(self._usage) if u.context_path == context_path and not u.cleaned),
            None,
        )
        if usage is None:
            usage = AssetUsage(context_path=context_path)
            self._usage.append(usage)
        usage.keep.add(reference)

    def cleanup(self) -> int:
        """Delete assets no converted document references any more.

        Each document is processed once; an asset any document of the run
        keeps is never deleted.  Returns the number of files removed.
        """
        pending = [usage for usage in self._usage if not usage.cleaned]
        if not pending:
            return 0

        kept: set[str] = set()
        for usage in self._usage:
            for reference in usage.keep:
                path = self._local_path(reference, usage.context_path)
                if path:
                    kept.add(path)

        removed = 0
        for usage in pending:
            usage.cleaned = True
            for reference in sorted(usage.delete):
                path = self._local_path(reference, usage.context_path)
                if not path or path in kept:
                    continue
                if self.fetcher is not None and path not in self.fetcher.written_asset_files:
                    continue
                file = Path(path)
                if not file.is_file():
                    continue
                file.unlink()
                removed += 1
                if self.fetcher is not None:
                    self.fetcher.written_asset_files.discard(path)
                logger.info("Cleaned unused asset %s", path)

        self.counts["cleaned"] += removed
        return removed

    def _local_path(self, reference: str, context_path: str | None) -> str | None:
        if self.resolver is not None:
            return self.resolver.local_path_for_reference(reference, context_path)
        if urlparse(reference).scheme:
            return None
        return reference


def _tidy(md: str) -> str:
    """Trim trailing whitespace and blank-line runs outside code fences."""
    out: list[str] = []
    prose: list[str] = []
    fence: str | None = None

    def flush() -> None:
        if prose:
            chunk = _TRAILING_WHITESPACE_RE.sub("", "\n".join(prose))
            out.append(_EXCESSIVE_BLANK_LINES_RE.sub("\n\n", chunk))
            prose.clear()

    for line in md.split("\n"):
        match = _FENCE_LINE_RE.match(line)
        if fence is None:
            if match:
                flush()
                fence = match.group(1)
                out.append(line)
            else:
                prose.append(line)
        else:
            out.append(line)
            if match and match.group(1).startswith(fence) and not line.strip()[len(match.group(1)):]:
                fence = None
    flush()
    return "\n".join(out).strip()
