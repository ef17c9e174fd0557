"""Tests for MarkdownDowngrader: rule table, escaping and asset cleanup."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from feedimport.assets import AssetResolver
from feedimport.extractors.code import detect_language, format_code
from feedimport.extractors.markdown import ConversionRule, MarkdownDowngrader
from feedimport.items import Entry
from feedimport.plugins import register_formatter


def md(html: str, **kwargs) -> str:
    return MarkdownDowngrader(**kwargs).to_markdown(html)


def _entry(file_path: str) -> Entry:
    return Entry(uuid="feedimport::rss::1", type="rss", url="https://example.com/p/", file_path=file_path)


# ---------------------------------------------------------------------------
# Basic conversion
# ---------------------------------------------------------------------------

class TestBasics:
    def test_atx_headings(self):
        assert md("<h2>Title</h2><p>Body</p>") == "## Title\n\nBody"

    def test_dash_bullets(self):
        assert md("<ul><li>one</li><li>two</li></ul>") == "- one\n- two"

    def test_links(self):
        assert md('<p><a href="https://example.com/">site</a></p>') == "[site](https://example.com/)"

    def test_escapes_angle_bracket(self):
        assert md("<p>Use &lt;div&gt; here</p>") == r"Use \<div> here"

    def test_blank_line_runs_collapse(self):
        result = md("<p>a</p><p></p><p></p><br><br><p>b</p>")
        assert "\n\n\n" not in result

    def test_empty_input(self):
        assert md("") == ""
        assert md("   ") == ""


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

class TestImages:
    def test_highest_srcset_candidate_wins(self):
        assert md('<img srcset="a.jpg 1x, b.jpg 2x" src="c.jpg">') == "![](b.jpg)"

    def test_alt_and_title(self):
        assert md('<img src="a.png" alt="A cat" title="Cat">') == '![A cat](a.png "Cat")'

    def test_width_descriptors(self):
        assert md('<img srcset="s.jpg 320w, l.jpg 1024w" src="s.jpg" alt="x">') == "![x](l.jpg)"

    def test_picture_uses_img(self):
        html = '<picture><source srcset="a.webp 1x" type="image/webp"><img src="b.jpg" alt="B"></picture>'
        assert md(html) == "![B](b.jpg)"

    def test_image_in_paragraph(self):
        assert md('<p>See <img src="x.png" alt="x"> here</p>') == "See ![x](x.png) here"


# ---------------------------------------------------------------------------
# Code blocks
# ---------------------------------------------------------------------------

class TestCodeBlocks:
    def test_brush_alias(self):
        assert md('<pre class="brush:jscript">x=1;</pre>') == "```js\nx=1;\n```"

    def test_brush_with_options(self):
        assert md('<pre class="brush: php; gutter: false">echo 1;</pre>') == "```php\necho 1;\n```"

    def test_language_class_on_code(self):
        html = '<pre><code class="language-python">print(1)\n</code></pre>'
        assert md(html) == "```python\nprint(1)\n```"

    def test_entities_decoded_and_markup_stripped(self):
        html = '<pre class="language-html"><code><span class="tag">&lt;b&gt;</span> &amp;</code></pre>'
        assert md(html) == "```html\n<b> &\n```"

    def test_fence_grows_with_backticks(self):
        result = md("<pre>```\ncode\n```</pre>")
        assert result.startswith("````\n")
        assert result.endswith("\n````")

    def test_no_language(self):
        assert md("<pre>plain</pre>") == "```\nplain\n```"

    def test_json_reformatted(self):
        assert md('<pre class="language-json">{"a":1}</pre>') == '```json\n{\n  "a": 1\n}\n```'

    def test_formatter_failure_keeps_code(self):
        assert md('<pre class="language-json">{bad</pre>') == "```json\n{bad\n```"

    def test_plugin_formatter(self):
        class Upper:
            name = "upper"
            languages = ("sql",)

            def format(self, code, language):
                return code.upper()

        register_formatter(Upper())
        assert md('<pre class="language-sql">select 1</pre>') == "```sql\nSELECT 1\n```"


class TestCodeHelpers:
    def test_detect_language_data_lang(self):
        from bs4 import BeautifulSoup

        pre = BeautifulSoup('<pre data-lang="Shell">ls</pre>', "html.parser").pre
        assert detect_language(pre) == "bash"

    def test_format_code_unknown_language(self):
        assert format_code("x", "cobol") == "x"


# ---------------------------------------------------------------------------
# Preserved, discarded and icon elements
# ---------------------------------------------------------------------------

class TestPreserved:
    def test_inline_preserved_verbatim(self):
        assert md("<p>Old <del>price</del> and <ins>new</ins> one</p>") == "Old <del>price</del> and <ins>new</ins> one"

    def test_table_verbatim(self):
        html = "<p>Before</p><table><tr><td>1</td><td>2</td></tr></table><p>After</p>"
        assert md(html) == "Before\n\n<table><tr><td>1</td><td>2</td></tr></table>\n\nAfter"

    def test_whitespace_never_doubled(self):
        assert md('<p>a  <abbr title="x">HTML</abbr>   b</p>') == 'a <abbr title="x">HTML</abbr> b'

    def test_edge_whitespace_moved_outside(self):
        assert md("<p>a<mark> hi </mark>b</p>") == "a <mark>hi</mark> b"

    def test_custom_preserved_tags(self):
        assert md("<p><del>x</del></p>", preserved_tags=["table"]) == "~~x~~"


class TestDiscarded:
    def test_script_and_style_dropped(self):
        html = '<p>a</p><script src="x.js"></script><style>p{}</style><link rel="stylesheet" href="s.css">'
        assert md(html) == "a"


class TestIcons:
    def test_font_icon(self):
        assert md('<p>Star <i class="fa fa-star"></i> rating</p>') == 'Star <i class="fa fa-star"></i> rating'

    def test_font_awesome_svg_collapsed(self):
        html = '<p>Go <svg class="svg-inline--fa" data-prefix="fas" data-icon="star"><path d="M0 0"></path></svg> now</p>'
        assert md(html) == 'Go <i class="fa-solid fa-star"></i> now'

    def test_use_svg(self):
        html = '<svg class="icon"><use href="#icon-rss"></use></svg>'
        assert md(html) == '<svg class="icon" aria-hidden="true"><use href="#icon-rss"></use></svg>'

    def test_italic_text_is_not_icon(self):
        assert md("<p><i>emphasis</i></p>") == "*emphasis*"


class TestFallback:
    def test_conversion_error_falls_back_to_text(self):
        def explode(conv, node, parent_tags):
            raise RuntimeError("nope")

        rules = [ConversionRule("explode", lambda node, d: node.name == "p", explode)]
        assert md("<p>Hello <b>world</b></p>", rules=rules) == "Hello\nworld"


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------

@pytest.fixture
def out(tmp_path):
    assets = tmp_path / "out" / "assets"
    assets.mkdir(parents=True)
    for name in ("a.jpg", "b.jpg", "c.jpg", "x.js"):
        (assets / name).write_bytes(b"data")
    return tmp_path / "out"


class TestCleanup:
    def _downgrader(self, out, fetcher=None):
        resolver = AssetResolver(str(out), "assets", "absolute")
        return MarkdownDowngrader(resolver, fetcher)

    def test_unused_candidates_deleted(self, out):
        downgrader = self._downgrader(out)
        result = downgrader.to_markdown(
            '<img srcset="/assets/a.jpg 1x, /assets/b.jpg 2x" src="/assets/c.jpg">',
            _entry(str(out / "post.md")),
        )
        assert result == "![](/assets/b.jpg)"
        assert downgrader.cleanup() == 2
        assert not (out / "assets" / "a.jpg").exists()
        assert not (out / "assets" / "c.jpg").exists()
        assert (out / "assets" / "b.jpg").exists()
        assert downgrader.counts["cleaned"] == 2

    def test_kept_by_another_document(self, out):
        downgrader = self._downgrader(out)
        downgrader.to_markdown('<img srcset="/assets/a.jpg 1x, /assets/b.jpg 2x">', _entry(str(out / "one.md")))
        downgrader.to_markdown('<img src="/assets/a.jpg">', _entry(str(out / "two.md")))
        assert downgrader.cleanup() == 0
        assert (out / "assets" / "a.jpg").exists()

    def test_explicitly_kept_reference(self, out):
        downgrader = self._downgrader(out)
        entry = _entry(str(out / "post.md"))
        downgrader.to_markdown('<img srcset="/assets/a.jpg 1x, /assets/b.jpg 2x" src="/assets/c.jpg">', entry)
        downgrader.keep("/assets/c.jpg", entry)
        assert downgrader.cleanup() == 1
        assert not (out / "assets" / "a.jpg").exists()
        assert (out / "assets" / "c.jpg").exists()

    def test_discarded_script_deleted(self, out):
        downgrader = self._downgrader(out)
        downgrader.to_markdown('<p>x</p><script src="/assets/x.js"></script>', _entry(str(out / "post.md")))
        assert downgrader.cleanup() == 1
        assert not (out / "assets" / "x.js").exists()

    def test_preserved_keeps_assets(self, out):
        downgrader = self._downgrader(out)
        downgrader.to_markdown(
            '<video src="/assets/a.jpg"></video><script src="/assets/a.jpg"></script>',
            _entry(str(out / "post.md")),
        )
        assert downgrader.cleanup() == 0

    def test_each_document_cleaned_once(self, out):
        downgrader = self._downgrader(out)
        downgrader.to_markdown('<img srcset="/assets/a.jpg 1x, /assets/b.jpg 2x">', _entry(str(out / "post.md")))
        assert downgrader.cleanup() == 1
        (out / "assets" / "a.jpg").write_bytes(b"again")
        assert downgrader.cleanup() == 0
        assert (out / "assets" / "a.jpg").exists()

    def test_no_marks_is_safe(self, out):
        assert self._downgrader(out).cleanup() == 0

    def test_only_files_written_this_run(self, out):
        written = {str(out / "assets" / "c.jpg")}
        fetcher = SimpleNamespace(written_asset_files=written)
        downgrader = self._downgrader(out, fetcher)
        downgrader.to_markdown(
            '<img srcset="/assets/a.jpg 1x, /assets/b.jpg 2x" src="/assets/c.jpg">',
            _entry(str(out / "post.md")),
        )
        assert downgrader.cleanup() == 1
        assert (out / "assets" / "a.jpg").exists()
        assert not (out / "assets" / "c.jpg").exists()
        assert written == set()

    def test_remote_references_ignored(self, out):
        downgrader = self._downgrader(out)
        downgrader.to_markdown(
            '<img srcset="https://cdn.example.com/a.jpg 1x, https://cdn.example.com/b.jpg 2x">',
            _entry(str(out / "post.md")),
        )
        assert downgrader.cleanup() == 0
