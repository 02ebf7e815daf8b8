"""Failure taxonomy for repository and pull-request analysis.

Every error keeps the originating exception both as ``__cause__`` (when
raised with ``raise ... from``) and on the ``cause`` attribute, so failures
captured as values inside a sample still carry their nested cause.
"""

from __future__ import annotations


class ProliceError(Exception):
    """Base class for every analysis failure."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        message = super().__str__()
        if self.cause is not None:
            return f"{message}; nested = {self.cause!r}"
        return message


# ── Startup / pool ──────────────────────────────────────────────────────────

class PoolInitializationError(ProliceError):
    """The connection pool could not be built. Process-fatal."""


class PoolTimeoutError(ProliceError):
    """No pooled connection became available before the acquire timeout."""

    def __init__(self, timeout: float | None) -> None:
        super().__init__(
            f"Could not lease a GitHub connection within {timeout}s "
            "(pool exhausted?)"
        )
        self.timeout = timeout


# ── Remote API ──────────────────────────────────────────────────────────────

class GitHubAPIError(ProliceError):
    """Transport failure or non-success HTTP status."""

    def __init__(
        self,
        message: str,
        url: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(f"GitHub API error: {message} [{url}]", cause)
        self.url = url
        self.status_code = status_code


class ResponseBodyError(ProliceError):
    """The response body was empty or could not be decoded."""

    def __init__(self, message: str, url: str, cause: BaseException | None = None) -> None:
        super().__init__(f"GitHub API response body error: {message} [{url}]", cause)
        self.url = url


class JsonMappingError(ProliceError):
    """Decoded JSON did not fit the expected model."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(f"JSON mapping error: {message}", cause)


# ── Repository / pull request ───────────────────────────────────────────────

class RepositoryNotFound(ProliceError):
    """Neither the organization nor the user lookup found the repository."""

    def __init__(self, owner: str, repo_name: str) -> None:
        super().__init__(
            f"Could not find repository [{repo_name}] under owner [{owner}] "
            "(is it misspelled?)"
        )
        self.owner = owner
        self.repo_name = repo_name


class PullRequestNotFound(ProliceError):
    def __init__(self, repo_name: str, pr_number: int, cause: BaseException | None = None) -> None:
        super().__init__(
            f"Could not retrieve PR#[{pr_number}] for repository [{repo_name}]", cause
        )
        self.repo_name = repo_name
        self.pr_number = pr_number


class PullRequestIncompleteData(ProliceError):
    """The PR is not finalized (no merge or close timestamp)."""

    def __init__(self, pr_number: int, reason: str) -> None:
        super().__init__(f"Incomplete data for PR #{pr_number}: {reason}")
        self.pr_number = pr_number
        self.reason = reason


class NoCommitsFound(ProliceError):
    def __init__(self, url: str | None = None) -> None:
        super().__init__(
            "Parsed commits' JSON produced an array with zero elements! "
            "At least one commit should exist in a PR."
        )
        self.url = url


class DiffParseError(ProliceError):
    def __init__(
        self,
        repo_name: str | None,
        pr_number: int | None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(f"Error parsing diff for [{repo_name}/{pr_number}]", cause)
        self.repo_name = repo_name
        self.pr_number = pr_number


class PullRequestDataRetrievalError(ProliceError):
    """One or more of a PR's concurrent sub-fetches failed."""

    def __init__(self, repo_name: str, pr_number: int, cause: BaseException) -> None:
        super().__init__(
            "An unrecoverable error has occurred in one or more data-fetching "
            f"steps for [{repo_name}]/[{pr_number}]",
            cause,
        )
        self.repo_name = repo_name
        self.pr_number = pr_number


class AsyncTaskError(ProliceError):
    """An unexpected exception escaped a per-PR retrieval task."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__("Error during async task execution", cause)


# ── Scoring ─────────────────────────────────────────────────────────────────

class NoPullRequestsToScore(ProliceError):
    def __init__(self) -> None:
        super().__init__("No successfully retrieved pull requests left to score.")
