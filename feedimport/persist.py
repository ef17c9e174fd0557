"""Commit imported files to a remote repository as they are written.

Targets use the form ``github:<owner>/<repo>[#branch]``.  Writes go through
the GitHub contents API and need a ``GITHUB_TOKEN`` with contents:write
access.
"""

from __future__ import annotations

import base64
import logging
import os
from typing import NamedTuple
from urllib.parse import quote

import httpx

from feedimport.settings import DOWNLOAD_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)

SUPPORTED_TYPES: tuple[str, ...] = ("github",)
GITHUB_API = "https://api.github.com"


class PersistError(RuntimeError):
    """Raised when a file cannot be committed to the persist target."""


class PersistTarget(NamedTuple):
    type: str
    username: str
    repository: str
    branch: str | None = None


class Persist:
    """Push written documents and assets to a GitHub repository."""

    def __init__(
        self,
        target: str | None = None,
        *,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.target: PersistTarget | None = None
        self._token = token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.counts: dict[str, int] = {"files": 0}
        if target:
            self.set_target(target)

    @staticmethod
    def parse_target(target: str) -> PersistTarget:
        """Split ``github:owner/repo#branch`` into its parts.

        >>> Persist.parse_target("github:11ty/eleventy#main")
        PersistTarget(type='github', username='11ty', repository='eleventy', branch='main')
        """
        kind, sep, rest = target.partition(":")
        if not sep or not rest:
            raise ValueError(f"Invalid persist target: {target!r} (expected type:owner/repo[#branch])")
        location, _, branch = rest.partition("#")
        username, slash, repository = location.partition("/")
        if not slash or not username or not repository:
            raise ValueError(f"Invalid persist target: {target!r} (expected type:owner/repo[#branch])")
        return PersistTarget(kind, username, repository, branch or None)

    def set_target(self, target: str) -> None:
        parsed = self.parse_target(target)
        if parsed.type not in SUPPORTED_TYPES:
            raise ValueError(f"Invalid persist type: {parsed.type}")
        self.target = parsed

    @property
    def token(self) -> str | None:
        return self._token or os.environ.get("GITHUB_TOKEN")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=GITHUB_API,
                transport=self._transport,
                timeout=DOWNLOAD_TIMEOUT,
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept": "application/vnd.github+json",
                    "X-GitHub-Api-Version": "2022-11-28",
                },
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def persist_file(
        self,
        path: str,
        content: str | bytes,
        *,
        url: str | None = None,
        type: str = "document",  # noqa: A002
    ) -> bool:
        """Create or update *path* in the target repository.

        Returns False when no target is configured.

        Raises:
            PersistError: missing token or a rejected API call.
        """
        if self.target is None:
            return False
        token = self.token
        if not token:
            raise PersistError("Missing GITHUB_TOKEN environment variable for persist")

        repo_path = path.replace(os.sep, "/").removeprefix("./").lstrip("/")
        endpoint = (
            f"/repos/{quote(self.target.username)}/{quote(self.target.repository)}"
            f"/contents/{quote(repo_path)}"
        )
        headers = {"Authorization": f"Bearer {token}"}
        params = {"ref": self.target.branch} if self.target.branch else None
        raw = content.encode("utf-8") if isinstance(content, str) else content

        try:
            existing = await self.client.get(endpoint, headers=headers, params=params)
            sha = existing.json().get("sha") if existing.status_code == 200 else None

            payload: dict[str, str] = {
                "message": f"Import {type} {url or repo_path}",
                "content": base64.b64encode(raw).decode("ascii"),
            }
            if self.target.branch:
                payload["branch"] = self.target.branch
            if sha:
                payload["sha"] = sha
            resp = await self.client.put(endpoint, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise PersistError(f"Could not reach GitHub for {repo_path}: {exc}") from exc

        if resp.status_code not in (200, 201):
            raise PersistError(
                f"GitHub rejected {repo_path} (HTTP {resp.status_code}): {resp.text[:200]}",
            )
        self.counts["files"] += 1
        logger.info("Persisted %s %s to %s/%s", type, repo_path, self.target.username, self.target.repository)
        return True
