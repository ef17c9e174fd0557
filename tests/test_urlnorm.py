"""Unit tests for URL helpers and srcset handling."""

from __future__ import annotations

from feedimport.extractors.urlnorm import (
    SrcsetCandidate,
    best_srcset_candidate,
    is_http_url,
    parse_srcset,
    resolve_url,
    rewrite_srcset,
    url_basename,
)


class TestIsHttpUrl:
    def test_https(self):
        assert is_http_url("https://example.com/feed.xml")

    def test_relative_is_not(self):
        assert not is_http_url("/feed.xml")

    def test_tag_uri_is_not(self):
        assert not is_http_url("tag:example.com,2022:first-post")

    def test_none(self):
        assert not is_http_url(None)


class TestResolveUrl:
    def test_relative_against_base(self):
        assert resolve_url("/img/a.png", "https://example.com/blog/post/") == "https://example.com/img/a.png"

    def test_sibling_relative(self):
        assert resolve_url("a.png", "https://example.com/blog/post/") == "https://example.com/blog/post/a.png"

    def test_data_uri_skipped(self):
        assert resolve_url("data:image/png;base64,AAAA", "https://example.com/") is None

    def test_fragment_skipped(self):
        assert resolve_url("#top", "https://example.com/") is None

    def test_relative_without_base_skipped(self):
        assert resolve_url("a.png") is None

    def test_whitespace_trimmed(self):
        assert resolve_url("  https://cdn.example.com/a.png ") == "https://cdn.example.com/a.png"


class TestUrlBasename:
    def test_last_segment(self):
        assert url_basename("https://example.com/wp-content/uploads/photo.jpg?w=300") == "photo.jpg"

    def test_trailing_slash(self):
        assert url_basename("https://example.com/blog/post/") == "post"

    def test_unquotes(self):
        assert url_basename("https://example.com/my%20photo.png") == "my photo.png"

    def test_root(self):
        assert url_basename("https://example.com/") == ""


class TestParseSrcset:
    def test_density_descriptors(self):
        assert parse_srcset("a.jpg 1x, b.jpg 2x") == [
            SrcsetCandidate("a.jpg", "1x"),
            SrcsetCandidate("b.jpg", "2x"),
        ]

    def test_width_descriptors_without_spaces(self):
        assert parse_srcset("a.jpg 300w,b.jpg 600w") == [
            SrcsetCandidate("a.jpg", "300w"),
            SrcsetCandidate("b.jpg", "600w"),
        ]

    def test_missing_descriptor(self):
        assert parse_srcset("a.jpg, b.jpg 2x") == [
            SrcsetCandidate("a.jpg", None),
            SrcsetCandidate("b.jpg", "2x"),
        ]

    def test_comma_inside_url(self):
        candidates = parse_srcset("https://cdn.example.com/a.jpg?w=300,h=200 300w, https://cdn.example.com/b.jpg 600w")
        assert [c.url for c in candidates] == [
            "https://cdn.example.com/a.jpg?w=300,h=200",
            "https://cdn.example.com/b.jpg",
        ]

    def test_empty(self):
        assert parse_srcset("") == []
        assert parse_srcset(None) == []


class TestBestSrcsetCandidate:
    def test_highest_density(self):
        assert best_srcset_candidate("a.jpg 1x, b.jpg 2x") == "b.jpg"

    def test_widest(self):
        assert best_srcset_candidate("small.jpg 320w, large.jpg 1024w, medium.jpg 640w") == "large.jpg"

    def test_no_descriptor_counts_as_1x(self):
        assert best_srcset_candidate("a.jpg, b.jpg 1.5x") == "b.jpg"

    def test_first_wins_ties(self):
        assert best_srcset_candidate("a.jpg 1x, b.jpg") == "a.jpg"

    def test_none(self):
        assert best_srcset_candidate(None) is None


class TestRewriteSrcset:
    def test_replaces_known_urls(self):
        result = rewrite_srcset("a.jpg 1x, b.jpg 2x", {"b.jpg": "/assets/b-123.jpg"})
        assert result == "a.jpg 1x, /assets/b-123.jpg 2x"
