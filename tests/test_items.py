"""Tests for the Entry / Author / AssetRecord models."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from feedimport.items import AssetRecord, Entry


def _entry(**overrides):
    data = {
        "uuid": "feedimport::rss::1",
        "type": "rss",
        "url": "https://example.com/post/",
        "title": "Post",
        "date": "2023-01-05T14:03:09Z",
        "content": "<p>Body</p>",
        "contentType": "html",
    }
    data.update(overrides)
    return Entry.model_validate(data)


class TestEntry:
    def test_camel_case_aliases(self):
        entry = _entry(dateUpdated="2023-02-01T00:00:00Z", sourceLabel="News")
        assert entry.date_updated == datetime(2023, 2, 1, tzinfo=UTC)
        assert entry.source_label == "News"
        assert entry.content_type == "html"

    def test_snake_case_names(self):
        entry = Entry(uuid="u", type="rss", url="https://example.com/", content_type="text")
        assert entry.content_type == "text"

    def test_title_unwrapped_and_stripped(self):
        assert _entry(title={"@_type": "html", "#text": "  Hi  "}).title == "Hi"

    def test_unparseable_date_is_none(self):
        assert _entry(date="zzzz").date is None

    def test_xhtml_maps_to_html(self):
        assert _entry(contentType="xhtml").content_type == "html"

    @pytest.mark.parametrize("status", ["draft", "pending", "private", "future"])
    def test_non_publish_statuses_are_drafts(self, status):
        entry = _entry(status=status)
        assert entry.status == "draft"
        assert entry.is_draft

    def test_publish(self):
        assert _entry(status="publish").status == "publish"

    def test_single_author_listified(self):
        entry = _entry(authors={"name": "Sam", "avatarUrl": "https://example.com/a.png"})
        assert [author.name for author in entry.authors] == ["Sam"]
        assert entry.authors[0].avatar_url == "https://example.com/a.png"

    def test_missing_url_rejected(self):
        with pytest.raises(ValidationError):
            Entry.model_validate({"uuid": "u", "type": "rss"})

    def test_source_not_serialized(self):
        entry = _entry()
        entry._source = object()
        assert "_source" not in entry.model_dump()


class TestFrontMatter:
    def test_excluded_keys(self):
        entry = _entry(dateUpdated="2023-02-01T00:00:00Z", filePath="out/post.md")
        data = entry.front_matter()
        for key in ("content", "contentType", "dateUpdated", "filePath"):
            assert key not in data
        assert data["title"] == "Post"
        assert data["url"] == "https://example.com/post/"

    def test_none_values_omitted(self):
        assert "tags" not in _entry().front_matter()

    def test_draft_disables_publishing(self):
        data = _entry(status="draft").front_matter()
        assert data["permalink"] is False
        assert data["draft"] is True

    def test_published_has_no_draft_keys(self):
        data = _entry(status="publish").front_matter()
        assert "permalink" not in data
        assert "draft" not in data


class TestAssetRecord:
    def test_aliases(self):
        record = AssetRecord.model_validate({
            "sourceUrl": "https://example.com/a.png",
            "contentHash": "abc",
            "localFilePath": "out/assets/a-abc.png",
            "referenceUrl": "/assets/a-abc.png",
        })
        assert record.local_file_path == "out/assets/a-abc.png"
        assert record.model_dump(by_alias=True)["referenceUrl"] == "/assets/a-abc.png"
