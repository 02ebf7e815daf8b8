"""Repository and single-PR analysis: resolve → retrieve → filter → score."""

from __future__ import annotations

import logging

from prolice.config import DEFAULT_SAMPLE_SIZE
from prolice.fetcher import PullRequestFetcher
from prolice.models import PullRequestBundle, RepositoryHandle, RepositorySample
from prolice.pool import GitHubConnectionPool
from prolice.resolver import RepositoryResolver
from prolice.scoring import Score, score_pull_request, score_repository

logger = logging.getLogger(__name__)


def exclude_merge_prs(bundles: list[PullRequestBundle]) -> list[PullRequestBundle]:
    """Drop branch-sync PRs, whose titles start with "merge" in any case."""
    kept: list[PullRequestBundle] = []
    for bundle in bundles:
        if bundle.is_merge_pr:
            logger.debug("Ignoring merge PR #%d: %s", bundle.number, bundle.title)
            continue
        kept.append(bundle)
    return kept


async def sample_repository(
    pool: GitHubConnectionPool,
    repository: RepositoryHandle,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    include_merge_prs: bool = False,
) -> RepositorySample:
    """Retrieve a repository's PR sample, keeping only successful bundles."""
    outcomes = await PullRequestFetcher(pool, repository).retrieve_sample(sample_size)
    bundles = [o.bundle for o in outcomes if o.bundle is not None]
    logger.info("Retrieved %d/%d PR(s) successfully.", len(bundles), len(outcomes))

    if not include_merge_prs:
        before = len(bundles)
        bundles = exclude_merge_prs(bundles)
        if before != len(bundles):
            logger.info("Excluded %d merge PR(s) from the sample.", before - len(bundles))

    return RepositorySample(repository=repository, bundles=bundles)


async def analyze_repository(
    pool: GitHubConnectionPool,
    owner: str,
    repository: str,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    include_merge_prs: bool = False,
) -> Score:
    """Score *owner*/*repository* from its most recent closed PRs.

    Failed PRs are left out of the average. Raises
    :class:`~prolice.errors.NoPullRequestsToScore` when none remain.
    """
    handle = await RepositoryResolver(pool).resolve(owner, repository)
    sample = await sample_repository(pool, handle, sample_size, include_merge_prs)
    return score_repository(sample.bundles)


async def analyze_pull_request(
    pool: GitHubConnectionPool,
    owner: str,
    repository: str,
    pr_number: int,
) -> Score:
    """Score a single PR. Any retrieval failure is raised."""
    handle = await RepositoryResolver(pool).resolve(owner, repository)
    outcome = await PullRequestFetcher(pool, handle).retrieve_one(pr_number)
    return score_pull_request(outcome.unwrap())
