"""Domain models for pull-request analysis.

Raw REST payloads are mapped into these dataclasses by the ``from_api``
constructors. Only the fields the scorer needs are kept; missing optional
fields default the way GitHub omits them, while missing required fields raise
``KeyError``/``TypeError``/``ValueError`` for the caller to wrap.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from prolice.diff import DiffStats

if TYPE_CHECKING:
    from prolice.scoring import Score


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a GitHub ISO-8601 timestamp (``Z`` suffix allowed)."""
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _login(raw: dict[str, Any] | None) -> str:
    # Deleted accounts come back as null users.
    return (raw or {}).get("login") or "ghost"


class ReviewState(str, Enum):
    """Review verdicts.

    The REST API reports these upper-case, webhook payloads lower-case; both
    spellings are accepted, nothing else is.
    """

    APPROVED = "APPROVED"
    PENDING = "PENDING"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    DISMISSED = "DISMISSED"

    @classmethod
    def parse(cls, value: str) -> ReviewState:
        for state in cls:
            if value in (state.value, state.value.lower()):
                return state
        expected = ", ".join(f"`{s.value.lower()}`" for s in cls)
        raise ValueError(f"unknown variant `{value}`, expected one of {expected}")


@dataclass(frozen=True)
class RepositoryHandle:
    """Canonical identity of a resolved repository."""

    owner: str
    name: str
    full_name: str = ""
    html_url: str = ""
    default_branch: str = ""

    @classmethod
    def from_api(cls, owner: str, raw: dict[str, Any]) -> RepositoryHandle:
        return cls(
            owner=_login(raw.get("owner")) if raw.get("owner") else owner,
            name=raw["name"],
            full_name=raw.get("full_name") or f"{owner}/{raw['name']}",
            html_url=raw.get("html_url") or "",
            default_branch=raw.get("default_branch") or "",
        )


@dataclass(frozen=True)
class PullRequestHeader:
    """A PR's own fields, as returned by the pulls endpoints."""

    number: int
    author_login: str
    title: str
    body: str
    created_at: datetime
    merged_at: datetime | None
    closed_at: datetime | None
    review_comments_url: str
    commits_url: str

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> PullRequestHeader:
        created_at = parse_timestamp(raw["created_at"])
        if created_at is None:
            raise ValueError(f"PR #{raw.get('number')} has no creation date")
        return cls(
            number=int(raw["number"]),
            author_login=_login(raw.get("user")),
            title=raw.get("title") or "",
            body=raw.get("body") or "",
            created_at=created_at,
            merged_at=parse_timestamp(raw.get("merged_at")),
            closed_at=parse_timestamp(raw.get("closed_at")),
            review_comments_url=raw["review_comments_url"],
            commits_url=raw["commits_url"],
        )

    @property
    def is_merge_pr(self) -> bool:
        """Branch-sync PRs such as "Merge develop into main"."""
        return self.title.lower().startswith("merge")


@dataclass(frozen=True)
class IssueComment:
    """A plain conversation comment on the PR."""

    author_login: str
    body: str | None
    created_at: datetime | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> IssueComment:
        return cls(
            author_login=_login(raw.get("user")),
            body=raw.get("body"),
            created_at=parse_timestamp(raw.get("created_at")),
        )


@dataclass(frozen=True)
class CommitComment:
    """A comment on a line of the PR's diff (review thread comment)."""

    author_login: str
    body: str
    path: str = ""

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> CommitComment:
        return cls(
            author_login=_login(raw.get("user")),
            body=raw.get("body") or "",
            path=raw.get("path") or "",
        )


@dataclass(frozen=True)
class Review:
    author_login: str
    body: str | None
    state: ReviewState | None
    submitted_at: datetime | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Review:
        state = raw.get("state")
        return cls(
            author_login=_login(raw.get("user")),
            body=raw.get("body"),
            state=ReviewState.parse(state) if state is not None else None,
            submitted_at=parse_timestamp(raw.get("submitted_at")),
        )


@dataclass(frozen=True)
class Commit:
    sha: str
    author_date: datetime
    message: str = ""

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> Commit:
        inner = raw["commit"]
        author_date = parse_timestamp(inner["author"]["date"])
        if author_date is None:
            raise ValueError(f"commit {raw.get('sha')} has no author date")
        return cls(sha=raw["sha"], author_date=author_date, message=inner.get("message") or "")


@dataclass(frozen=True)
class PullRequestBundle:
    """A PR with all five sub-resources retrieved. Never partial."""

    repo_name: str
    header: PullRequestHeader
    merged_at: datetime
    closed_at: datetime
    comments: tuple[IssueComment, ...]
    commit_comments: tuple[CommitComment, ...]
    reviews: tuple[Review, ...]
    commits: tuple[Commit, ...]
    diff: DiffStats = field(default_factory=DiffStats)

    def __post_init__(self) -> None:
        if not self.commits:
            raise ValueError(
                f"[{self.repo_name}]/[{self.number}] must contain at least one commit"
            )

    @property
    def number(self) -> int:
        return self.header.number

    @property
    def author_login(self) -> str:
        return self.header.author_login

    @property
    def title(self) -> str:
        return self.header.title

    @property
    def created_at(self) -> datetime:
        return self.header.created_at

    @property
    def is_merge_pr(self) -> bool:
        return self.header.is_merge_pr

    @property
    def first_commit_at(self) -> datetime:
        return min(c.author_date for c in self.commits)

    def score(self) -> Score:
        from prolice.scoring import score_pull_request

        return score_pull_request(self)


@dataclass
class RepositorySample:
    """Successfully retrieved bundles of one repository's PR sample."""

    repository: RepositoryHandle
    bundles: list[PullRequestBundle] = field(default_factory=list)

    @property
    def timeline(self) -> list[tuple[datetime, datetime]]:
        return [(b.created_at, b.closed_at) for b in self.bundles]

    def score(self) -> Score:
        from prolice.scoring import score_repository

        return score_repository(self.bundles)
