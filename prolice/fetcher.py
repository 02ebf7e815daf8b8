"""Concurrent pull-request retrieval: PR listing → five sub-resources per PR.

Every sampled PR is retrieved in its own task, and inside each PR the five
sub-resources (issue comments, review comments, reviews, commits, diff) are
fetched concurrently, each over its own leased connection. A PR is
all-or-nothing: one failed sub-fetch fails the whole PR, but never the rest of
the sample.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, TypeVar

from prolice.config import (
    DIFF_MEDIA_TYPE,
    ISSUE_COMMENTS_ENDPOINT,
    MAX_SAMPLE_SIZE,
    MIN_SAMPLE_SIZE,
    PULL_ENDPOINT,
    PULLS_ENDPOINT,
    REVIEWS_ENDPOINT,
)
from prolice.diff import DiffStats, parse_diff
from prolice.errors import (
    AsyncTaskError,
    JsonMappingError,
    NoCommitsFound,
    ProliceError,
    PullRequestDataRetrievalError,
    PullRequestIncompleteData,
    PullRequestNotFound,
)
from prolice.models import (
    Commit,
    CommitComment,
    IssueComment,
    PullRequestBundle,
    PullRequestHeader,
    RepositoryHandle,
    Review,
)
from prolice.pool import GitHubConnectionPool
from prolice.timing import trace_time

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetrievalOutcome:
    """Result of retrieving one PR: a bundle or a failure, never both."""

    pr_number: int | None
    bundle: PullRequestBundle | None = None
    error: ProliceError | None = None

    @property
    def ok(self) -> bool:
        return self.bundle is not None

    def unwrap(self) -> PullRequestBundle:
        """Return the bundle, or raise the captured failure."""
        if self.bundle is None:
            raise self.error or ProliceError(f"No data for PR #{self.pr_number}")
        return self.bundle


def _map_items(raw: Any, build: Callable[[dict[str, Any]], T], what: str) -> list[T]:
    """Map a decoded JSON array through *build*; ``None`` (empty body) maps to []."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise JsonMappingError(f"{what} is not a JSON array")
    try:
        return [build(item) for item in raw]
    except (KeyError, TypeError, ValueError) as exc:
        raise JsonMappingError(f"error mapping {what}", cause=exc) from exc


class PullRequestFetcher:
    """Retrieves PR bundles for one resolved repository."""

    def __init__(self, pool: GitHubConnectionPool, repository: RepositoryHandle) -> None:
        self._pool = pool
        self.repository = repository

    @property
    def _path_args(self) -> dict[str, str]:
        return {"owner": self.repository.owner, "repo": self.repository.name}

    # ── Entry points ────────────────────────────────────────────────────

    async def retrieve_one(self, pr_number: int) -> RetrievalOutcome:
        """Retrieve a single PR by number."""
        start = time.perf_counter()
        repo = self.repository.name
        logger.info("Analyzing repository [%s]'s PR#[%d]...", repo, pr_number)

        try:
            async with self._pool.lease() as client:
                raw = await client.get_json(PULL_ENDPOINT.format(number=pr_number, **self._path_args))
            header = PullRequestHeader.from_api(raw)
        except (ProliceError, KeyError, TypeError, ValueError) as exc:
            logger.error("There was a problem during initial PR-retrieval task.")
            return RetrievalOutcome(pr_number, error=PullRequestNotFound(repo, pr_number, cause=exc))

        outcome = await self._retrieve(header)
        logger.info(
            "Time elapsed retrieving data for [%s]/[%d] was: %.2fs",
            repo,
            pr_number,
            time.perf_counter() - start,
        )
        return outcome

    async def retrieve_sample(self, sample_size: int) -> list[RetrievalOutcome]:
        """Retrieve the *sample_size* most recently created closed PRs.

        Outcomes come back in listing order regardless of which task finishes
        first.
        """
        if not MIN_SAMPLE_SIZE <= sample_size <= MAX_SAMPLE_SIZE:
            raise ValueError(
                f"Sample size must be between {MIN_SAMPLE_SIZE} and {MAX_SAMPLE_SIZE}, "
                f"but was {sample_size}"
            )

        start = time.perf_counter()
        repo = self.repository.name
        listing = await self.list_closed_pull_requests(sample_size)
        logger.info("Analyzing repository [%s] using a sample of [%d] PRs...", repo, len(listing))

        results = await asyncio.gather(
            *(self._retrieve_listed(raw) for raw in listing),
            return_exceptions=True,
        )

        outcomes: list[RetrievalOutcome] = []
        for raw, result in zip(listing, results):
            if isinstance(result, RetrievalOutcome):
                outcomes.append(result)
            elif isinstance(result, Exception):
                logger.error("There was a problem during async PR-data-retrieval task.")
                outcomes.append(RetrievalOutcome(raw.get("number"), error=AsyncTaskError(result)))
            else:
                raise result
        logger.info("Finished fetching [%d] sample PRs for [%s].", len(outcomes), repo)

        failures = [o for o in outcomes if not o.ok]
        if failures:
            logger.error(
                "There were [%d] PRs whose data-retrieval process ended in error and "
                "therefore could not be successfully fetched:",
                len(failures),
            )
            for failed in failures:
                logger.error("PR #%s: %s", failed.pr_number, failed.error)

        logger.info(
            "Time elapsed retrieving data for [%s] was: %.2fs", repo, time.perf_counter() - start
        )
        return outcomes

    @trace_time
    async def list_closed_pull_requests(self, sample_size: int) -> list[dict[str, Any]]:
        """First page of closed PRs, newest first."""
        async with self._pool.lease() as client:
            raw = await client.get_json(
                PULLS_ENDPOINT.format(**self._path_args),
                params={
                    "state": "closed",
                    "sort": "created",
                    "direction": "desc",
                    "per_page": sample_size,
                    "page": 1,
                },
            )
        if not isinstance(raw, list):
            raise JsonMappingError(f"pull request listing for [{self.repository.name}] is not a JSON array")
        if not all(isinstance(item, dict) for item in raw):
            raise JsonMappingError(f"pull request listing for [{self.repository.name}] holds non-object items")
        return raw

    # ── Bundle retrieval ────────────────────────────────────────────────

    async def _retrieve_listed(self, raw: dict[str, Any]) -> RetrievalOutcome:
        try:
            header = PullRequestHeader.from_api(raw)
        except (KeyError, TypeError, ValueError) as exc:
            return RetrievalOutcome(
                raw.get("number"), error=JsonMappingError("error mapping pull request", cause=exc)
            )
        return await self._retrieve(header)

    async def _retrieve(self, header: PullRequestHeader) -> RetrievalOutcome:
        try:
            bundle = await self.fetch_bundle(header)
        except ProliceError as exc:
            logger.debug("Retrieval of [%s]/[%d] failed: %s", self.repository.name, header.number, exc)
            return RetrievalOutcome(header.number, error=exc)
        return RetrievalOutcome(header.number, bundle=bundle)

    async def fetch_bundle(self, header: PullRequestHeader) -> PullRequestBundle:
        """Fetch all five sub-resources of *header*'s PR concurrently.

        Raises :class:`PullRequestIncompleteData` before any request when the
        PR is not finalized, and :class:`PullRequestDataRetrievalError` wrapping
        the first failed sub-fetch otherwise. Siblings of a failed sub-fetch
        are left to finish; their results are discarded.
        """
        repo = self.repository.name
        number = header.number
        merged_at, closed_at = self._finalized_dates(header)
        if not header.body:
            logger.warning("No PR body could be retrieved for [%s]/[%d].", repo, number)

        logger.debug("Retrieving data for [%s][%d]...", repo, number)
        start = time.perf_counter()
        results = await asyncio.gather(
            self.fetch_issue_comments(number),
            self.fetch_commit_comments(header.review_comments_url),
            self.fetch_reviews(number),
            self.fetch_commits(header.commits_url),
            self.fetch_diff(number),
            return_exceptions=True,
        )
        logger.debug(
            "Time elapsed retrieving inner data structures for [%s]/[%d] was: %.2fs",
            repo,
            number,
            time.perf_counter() - start,
        )

        failure = next((r for r in results if isinstance(r, BaseException)), None)
        if failure is not None:
            if not isinstance(failure, Exception):
                raise failure
            raise PullRequestDataRetrievalError(repo, number, failure) from failure

        comments, commit_comments, reviews, commits, diff = results
        logger.debug("Total modifications for [%s]/[%d]: %d", repo, number, diff.total_changes)
        return PullRequestBundle(
            repo_name=repo,
            header=header,
            merged_at=merged_at,
            closed_at=closed_at,
            comments=tuple(comments),
            commit_comments=tuple(commit_comments),
            reviews=tuple(reviews),
            commits=tuple(commits),
            diff=diff,
        )

    @staticmethod
    def _finalized_dates(header: PullRequestHeader) -> tuple[datetime, datetime]:
        if header.merged_at is None:
            raise PullRequestIncompleteData(
                header.number, "No merged date. Only properly merged PRs can be analyzed in full."
            )
        if header.closed_at is None:
            raise PullRequestIncompleteData(
                header.number, "No closed date. Only properly closed PRs can be analyzed in full."
            )
        return header.merged_at, header.closed_at

    # ── Sub-resources ───────────────────────────────────────────────────

    @trace_time
    async def fetch_issue_comments(self, number: int) -> list[IssueComment]:
        """Plain conversation comments (the 'Comment' button, not a review)."""
        async with self._pool.lease() as client:
            raw = await client.get_json(
                ISSUE_COMMENTS_ENDPOINT.format(number=number, **self._path_args), allow_empty=True
            )
        return _map_items(raw, IssueComment.from_api, f"comments of PR #{number}")

    @trace_time
    async def fetch_commit_comments(self, review_comments_url: str) -> list[CommitComment]:
        """Comments on lines of the diff, from the PR's own ``review_comments_url``."""
        async with self._pool.lease() as client:
            raw = await client.get_json(review_comments_url, allow_empty=True)
        return _map_items(raw, CommitComment.from_api, f"commit comments in [{review_comments_url}]")

    @trace_time
    async def fetch_reviews(self, number: int) -> list[Review]:
        """Reviews, requested raw so that every review state (DISMISSED included) maps."""
        async with self._pool.lease() as client:
            raw = await client.get_json(
                REVIEWS_ENDPOINT.format(number=number, **self._path_args), allow_empty=True
            )
        return _map_items(raw, Review.from_api, f"reviews of PR #{number}")

    @trace_time
    async def fetch_commits(self, commits_url: str) -> list[Commit]:
        """Commits from the PR's own ``commits_url``. A PR always has at least one."""
        async with self._pool.lease() as client:
            raw = await client.get_json(commits_url, allow_empty=True)
        commits = _map_items(raw, Commit.from_api, f"commits in [{commits_url}]")
        if not commits:
            raise NoCommitsFound(commits_url)
        return commits

    @trace_time
    async def fetch_diff(self, number: int) -> DiffStats:
        async with self._pool.lease() as client:
            text = await client.get_text(
                PULL_ENDPOINT.format(number=number, **self._path_args), accept=DIFF_MEDIA_TYPE
            )
        return parse_diff(text, repo_name=self.repository.name, pr_number=number)
