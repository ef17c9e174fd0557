"""Shared pytest fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from feedimport.plugins import clear_plugins

FIXTURES_DIR = Path(__file__).parent / "fixtures"

# One 1x1 transparent GIF; enough bytes to look like an image
GIF_BYTES = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff!\xf9\x04\x01\x00"
    b"\x00\x00\x00,\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02D\x01\x00;"
)


def read_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


class FakeServer:
    """Route table for ``httpx.MockTransport`` that records every request.

    Routes map a full URL to ``(status, content_type, body)``; unknown URLs
    answer 404.
    """

    def __init__(self, routes: dict[str, tuple[int, str, bytes | str]] | None = None) -> None:
        self.routes: dict[str, tuple[int, str, bytes | str]] = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def add(self, url: str, body: bytes | str, content_type: str = "text/html", status: int = 200) -> None:
        self.routes[url] = (status, content_type, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, content_type, body = self.routes.get(str(request.url), (404, "text/plain", b"not found"))
        content = body.encode("utf-8") if isinstance(body, str) else body
        return httpx.Response(status, headers={"content-type": content_type}, content=content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def hits(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url) == url)


@pytest.fixture(autouse=True)
def _reset_plugins() -> Any:
    clear_plugins()
    yield
    clear_plugins()


@pytest.fixture(autouse=True)
def _no_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("WORDPRESS_USERNAME", "WORDPRESS_PASSWORD", "GITHUB_TOKEN"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def fixture_text() -> Callable[[str], str]:
    return read_fixture


@pytest.fixture
def atom_xml() -> str:
    return read_fixture("atom.xml")


@pytest.fixture
def rss_xml() -> str:
    return read_fixture("rss.xml")


@pytest.fixture
def youtube_xml() -> str:
    return read_fixture("youtube.xml")


@pytest.fixture
def mastodon_rss() -> str:
    return read_fixture("mastodon.rss")


@pytest.fixture
def wordpress_posts() -> str:
    return read_fixture("wordpress_posts.json")
