"""Tests for HtmlAssetRewriter with a fake fetcher."""

from __future__ import annotations

import asyncio

from feedimport.extractors.html_rewriter import HtmlAssetRewriter
from feedimport.items import Entry

BASE = "https://example.com/blog/post/"


class FakeFetcher:
    """Maps each URL to ``/assets/<basename>``; URLs in *failing* fail."""

    def __init__(self, failing=(), raising=()):
        self.failing = set(failing)
        self.raising = set(raising)
        self.calls: list[str] = []
        self.errors: set[str] = set()

    async def fetch_asset(self, url, entry=None):
        self.calls.append(url)
        await asyncio.sleep(0)
        if url in self.raising:
            raise RuntimeError(f"boom {url}")
        if url in self.failing:
            self.errors.add(url)
            return None
        return "/assets/" + url.rsplit("/", 1)[-1]


def _entry() -> Entry:
    return Entry(uuid="feedimport::rss::1", type="rss", url=BASE, file_path="out/blog/post.md")


def _rewrite(html: str, fetcher: FakeFetcher | None = None) -> tuple[str, FakeFetcher, HtmlAssetRewriter]:
    fetcher = fetcher or FakeFetcher()
    rewriter = HtmlAssetRewriter(fetcher)
    return asyncio.run(rewriter.rewrite(html, _entry())), fetcher, rewriter


class TestRewrite:
    def test_no_assets_returned_unchanged(self):
        html = "<p>Just <em>text</em> &amp; a <a href='/x'>link</a></p>"
        result, fetcher, _ = _rewrite(html)
        assert result is html
        assert fetcher.calls == []

    def test_relative_src_resolved_and_rewritten(self):
        result, fetcher, _ = _rewrite('<p>Hi <img src="/img/a.png" alt="x" class="wide"></p>')
        assert fetcher.calls == ["https://example.com/img/a.png"]
        assert result == '<p>Hi <img src="/assets/a.png" alt="x" class="wide"></p>'

    def test_attribute_order_kept(self):
        result, _, _ = _rewrite('<img width="10" src="https://cdn.example.com/z.png" alt="z">')
        assert result == '<img width="10" src="/assets/z.png" alt="z">'

    def test_srcset_rewritten_with_descriptors(self):
        result, fetcher, _ = _rewrite('<img srcset="a.jpg 1x, b.jpg 2x" src="c.jpg">')
        assert sorted(fetcher.calls) == [BASE + "a.jpg", BASE + "b.jpg", BASE + "c.jpg"]
        assert 'srcset="/assets/a.jpg 1x, /assets/b.jpg 2x"' in result
        assert 'src="/assets/c.jpg"' in result

    def test_video_poster_source_and_track(self):
        html = (
            '<video poster="p.jpg"><source src="v.mp4" type="video/mp4">'
            '<track src="subs.vtt" kind="captions"></video>'
        )
        result, _, _ = _rewrite(html)
        assert 'poster="/assets/p.jpg"' in result
        assert 'src="/assets/v.mp4"' in result
        assert 'src="/assets/subs.vtt"' in result

    def test_duplicate_urls_fetched_once(self):
        _, fetcher, _ = _rewrite('<img src="a.png"><img src="a.png"><img src="https://example.com/blog/post/a.png">')
        assert fetcher.calls == [BASE + "a.png"]

    def test_data_uri_left_alone(self):
        html = '<img src="data:image/gif;base64,R0lGODlhAQABAAAAACw=">'
        result, fetcher, _ = _rewrite(html)
        assert result is html
        assert fetcher.calls == []

    def test_failed_asset_keeps_remote_url(self):
        fetcher = FakeFetcher(failing={BASE + "broken.png"})
        result, _, _ = _rewrite('<img src="broken.png"><img src="ok.png">', fetcher)
        assert 'src="broken.png"' in result
        assert 'src="/assets/ok.png"' in result
        assert fetcher.errors == {BASE + "broken.png"}

    def test_exception_isolated_to_one_asset(self):
        fetcher = FakeFetcher(raising={BASE + "bad.png"})
        result, _, _ = _rewrite('<img src="bad.png"><img src="good.png">', fetcher)
        assert 'src="bad.png"' in result
        assert 'src="/assets/good.png"' in result
        assert fetcher.errors == {BASE + "bad.png"}

    def test_non_asset_markup_preserved(self):
        html = '<p class="lead">A &lt;tag&gt; <img src="a.png"> <a href="/about">about</a></p>'
        result, _, _ = _rewrite(html)
        assert result == '<p class="lead">A &lt;tag&gt; <img src="/assets/a.png"> <a href="/about">about</a></p>'


class TestLocalizeUrl:
    def test_localizes(self):
        rewriter = HtmlAssetRewriter(FakeFetcher())
        result = asyncio.run(rewriter.localize_url("https://example.com/hero.png", _entry()))
        assert result == "/assets/hero.png"

    def test_failure_returns_original(self):
        url = "https://example.com/hero.png"
        rewriter = HtmlAssetRewriter(FakeFetcher(failing={url}))
        assert asyncio.run(rewriter.localize_url(url, _entry())) == url

    def test_non_http_returned_as_is(self):
        rewriter = HtmlAssetRewriter(FakeFetcher())
        assert asyncio.run(rewriter.localize_url("data:image/png;base64,AA", _entry())) == "data:image/png;base64,AA"

    def test_write_error_recorded_on_fetcher(self):
        class DiskFull(FakeFetcher):
            async def fetch_asset(self, url, entry=None):
                raise OSError("No space left on device")

        url = "https://example.com/hero.png"
        fetcher = DiskFull()
        rewriter = HtmlAssetRewriter(fetcher)
        assert asyncio.run(rewriter.localize_url(url, _entry())) == url
        assert fetcher.errors == {url}
