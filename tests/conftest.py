"""Shared fixtures: an in-memory GitHub REST API behind ``httpx.MockTransport``."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterator

import httpx
import pytest

from prolice.config import DIFF_MEDIA_TYPE
from prolice.pool import GitHubConnectionPool

BASE_URL = "https://api.github.test"

DEFAULT_DIFF = """\
diff --git a/src/parser.py b/src/parser.py
index 1111111..2222222 100644
--- a/src/parser.py
+++ b/src/parser.py
@@ -1,2 +1,3 @@
 import re
-x = 1
+x = 2
+y = 3
diff --git a/tests/test_parser.py b/tests/test_parser.py
new file mode 100644
index 0000000..3333333
--- /dev/null
+++ b/tests/test_parser.py
@@ -0,0 +1,1 @@
+def test_parser(): pass
"""


@dataclass
class Route:
    status: int = 200
    payload: Any = None
    text: str | None = None
    delay: float = 0.0

    def response(self) -> httpx.Response:
        if self.text is not None:
            return httpx.Response(self.status, content=self.text.encode())
        if self.payload is None:
            return httpx.Response(self.status, content=b"")
        return httpx.Response(self.status, json=self.payload)


class FakeGitHub:
    """Routes keyed by URL path; diff requests are told apart by their Accept header."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, bool], Route] = {}
        self.requests: list[httpx.Request] = []
        self.completed: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        wants_diff = request.headers.get("Accept") == DIFF_MEDIA_TYPE
        route = self.routes.get((request.url.path, wants_diff))
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if route.delay:
            await asyncio.sleep(route.delay)
        self.completed.append(request)
        return route.response()

    def add(
        self,
        path: str,
        payload: Any = None,
        status: int = 200,
        text: str | None = None,
        delay: float = 0.0,
        diff: bool = False,
    ) -> None:
        self.routes[(path, diff)] = Route(status, payload, text, delay)

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    # ── Canned resources ────────────────────────────────────────────────

    def add_repository(self, owner: str = "acme", name: str = "widgets") -> None:
        self.add(
            f"/orgs/{owner}/repos",
            [
                {"name": "other", "owner": {"login": owner}},
                {
                    "name": name,
                    "owner": {"login": owner},
                    "full_name": f"{owner}/{name}",
                    "html_url": f"https://github.com/{owner}/{name}",
                    "default_branch": "main",
                },
            ],
        )

    def add_pull_request(
        self,
        number: int,
        owner: str = "acme",
        repo: str = "widgets",
        title: str | None = None,
        merged: bool = True,
        commits: list[dict] | None = None,
        diff: str = DEFAULT_DIFF,
        delay: float = 0.0,
    ) -> dict:
        """Register every sub-resource of one PR and return its raw header."""
        prefix = f"/repos/{owner}/{repo}"
        raw = _make_raw_pr(number, owner, repo, title=title, merged=merged)
        self.add(f"{prefix}/pulls/{number}", raw)
        self.add(f"{prefix}/pulls/{number}", text=diff, diff=True, delay=delay)
        self.add(
            f"{prefix}/issues/{number}/comments",
            [
                {"user": {"login": "alice"}, "body": "Please review", "created_at": "2024-03-01T11:00:00Z"},
                {"user": {"login": "bob"}, "body": "On it", "created_at": "2024-03-01T12:00:00Z"},
            ],
        )
        self.add(f"{prefix}/pulls/{number}/comments", [{"user": {"login": "bob"}, "body": "nit", "path": "src/parser.py"}])
        self.add(
            f"{prefix}/pulls/{number}/reviews",
            [{"user": {"login": "carol"}, "body": "", "state": "APPROVED", "submitted_at": "2024-03-02T09:00:00Z"}],
        )
        if commits is None:
            commits = [{"sha": f"c{number}", "commit": {"author": {"date": "2024-02-28T09:00:00Z"}, "message": "wip"}}]
        self.add(f"{prefix}/pulls/{number}/commits", commits)
        return raw

    def add_listing(self, raws: list[dict], owner: str = "acme", repo: str = "widgets") -> None:
        self.add(f"/repos/{owner}/{repo}/pulls", raws)


def _make_raw_pr(
    number: int,
    owner: str = "acme",
    repo: str = "widgets",
    title: str | None = None,
    merged: bool = True,
) -> dict:
    prefix = f"{BASE_URL}/repos/{owner}/{repo}/pulls/{number}"
    return {
        "number": number,
        "user": {"login": "alice"},
        "title": title or f"PR #{number}",
        "body": "Implements the parser.",
        "created_at": "2024-03-01T10:00:00Z",
        "merged_at": "2024-03-03T10:00:00Z" if merged else None,
        "closed_at": "2024-03-03T10:00:00Z",
        "review_comments_url": f"{prefix}/comments",
        "commits_url": f"{prefix}/commits",
    }


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    # The CLI turns logging off process-wide in silent mode.
    yield
    logging.disable(logging.NOTSET)


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
async def pool(github: FakeGitHub) -> AsyncIterator[GitHubConnectionPool]:
    async with GitHubConnectionPool("test-token", base_url=BASE_URL, transport=github.transport) as p:
        yield p
