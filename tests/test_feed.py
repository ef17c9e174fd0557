"""Tests for XML payload decoding and date helpers."""

from __future__ import annotations

from datetime import UTC, datetime

from feedimport.extractors.dates import parse_date, to_readable_date
from feedimport.extractors.feed import as_list, parse_xml


class TestParseXml:
    def test_rss_shape(self, rss_xml):
        data = parse_xml(rss_xml)
        items = data["rss"]["channel"]["item"]
        assert isinstance(items, list)
        assert len(items) == 2
        assert items[0]["title"] == "Launch day"

    def test_attributes_and_text(self, rss_xml):
        guid = parse_xml(rss_xml)["rss"]["channel"]["item"][0]["guid"]
        assert guid == {"@_isPermaLink": "false", "#text": "news-42"}

    def test_namespace_prefixes(self, rss_xml):
        item = parse_xml(rss_xml)["rss"]["channel"]["item"][0]
        assert item["dc:creator"] == ["Sam", "Alex"]
        assert item["content:encoded"] == "<p>Full <strong>launch</strong> story.</p>"

    def test_atom_default_namespace_unprefixed(self, atom_xml):
        data = parse_xml(atom_xml)
        assert "feed" in data
        assert len(data["feed"]["entry"]) == 2

    def test_youtube_prefixes(self, youtube_xml):
        entry = parse_xml(youtube_xml)["feed"]["entry"]
        assert entry["yt:videoId"] == "abc123XYZ"
        assert entry["media:group"]["media:description"] == "A walkthrough of importing feeds."

    def test_bytes_input(self):
        assert parse_xml(b"<a><b>1</b></a>") == {"a": {"b": "1"}}

    def test_malformed_returns_empty(self):
        assert parse_xml("<rss><channel>") == {}

    def test_entity_expansion_refused(self):
        bomb = (
            '<?xml version="1.0"?><!DOCTYPE lolz [<!ENTITY lol "lol">'
            '<!ENTITY lol2 "&lol;&lol;">]><lolz>&lol2;</lolz>'
        )
        assert parse_xml(bomb) == {}


class TestAsList:
    def test_none(self):
        assert as_list(None) == []

    def test_scalar(self):
        assert as_list({"a": 1}) == [{"a": 1}]

    def test_list_unchanged(self):
        value = [1, 2]
        assert as_list(value) is value


class TestDates:
    def test_iso_with_z(self):
        assert parse_date("2023-01-05T14:03:09Z") == datetime(2023, 1, 5, 14, 3, 9, tzinfo=UTC)

    def test_rfc822(self):
        assert parse_date("Thu, 05 Jan 2023 14:03:09 +0000") == datetime(2023, 1, 5, 14, 3, 9, tzinfo=UTC)

    def test_offset_converted_to_utc(self):
        assert parse_date("2023-01-05T16:03:09+02:00") == datetime(2023, 1, 5, 14, 3, 9, tzinfo=UTC)

    def test_naive_is_utc(self):
        assert parse_date("2023-02-03T04:05:06") == datetime(2023, 2, 3, 4, 5, 6, tzinfo=UTC)

    def test_epoch(self):
        assert parse_date(0) == datetime(1970, 1, 1, tzinfo=UTC)

    def test_unparseable(self):
        assert parse_date("zzzz") is None
        assert parse_date("") is None
        assert parse_date(None) is None

    def test_readable(self):
        assert to_readable_date("2023-01-05T14:03:09Z") == "January 5, 2023, 2:03:09 PM UTC"

    def test_readable_midnight(self):
        assert to_readable_date("2023-01-05T00:00:00Z") == "January 5, 2023, 12:00:00 AM UTC"
