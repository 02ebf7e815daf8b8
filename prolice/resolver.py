"""Owner/repository resolution.

GitHub namespaces organizations and individual users differently and has no
single endpoint telling them apart, so the owner is first tried as an
organization and then searched as a user.
"""

from __future__ import annotations

import logging
from typing import Any

from prolice.config import ORG_REPOS_ENDPOINT, REPO_LISTING_PAGE_SIZE, USER_REPO_SEARCH_ENDPOINT
from prolice.errors import GitHubAPIError, JsonMappingError, RepositoryNotFound, ResponseBodyError
from prolice.models import RepositoryHandle
from prolice.pool import GitHubConnectionPool
from prolice.timing import trace_time

logger = logging.getLogger(__name__)


class RepositoryResolver:
    def __init__(self, pool: GitHubConnectionPool) -> None:
        self._pool = pool

    @trace_time
    async def resolve(self, owner: str, name: str) -> RepositoryHandle:
        """Return the canonical handle for *owner*/*name*.

        Raises :class:`RepositoryNotFound` when neither lookup matches.
        """
        logger.debug("Resolving repository %s/%s...", owner, name)

        raw = await self._find_organization_repository(owner, name)
        if raw is None:
            logger.debug(
                "Could not find repository [%s] under owner [%s] as an organization. "
                "Retrying search as individual user...",
                name,
                owner,
            )
            raw = await self._find_personal_repository(owner, name)

        if raw is None:
            raise RepositoryNotFound(owner, name)

        try:
            handle = RepositoryHandle.from_api(owner, raw)
        except (KeyError, TypeError, ValueError) as exc:
            raise JsonMappingError(f"repository {owner}/{name}", cause=exc) from exc

        logger.info("Resolved repository %s", handle.full_name)
        return handle

    async def _find_organization_repository(self, owner: str, name: str) -> dict[str, Any] | None:
        """Case-insensitive match among the organization's repositories."""
        async with self._pool.lease() as client:
            try:
                repos = await client.get_json(
                    ORG_REPOS_ENDPOINT.format(owner=owner),
                    params={"type": "all", "sort": "pushed", "per_page": REPO_LISTING_PAGE_SIZE},
                )
            except (GitHubAPIError, ResponseBodyError) as exc:
                logger.debug("Owner [%s] is not an organization: %s", owner, exc)
                return None

        if not isinstance(repos, list):
            raise JsonMappingError(f"organization repositories of [{owner}] is not a list")

        target = name.lower()
        return next((r for r in repos if str(r.get("name", "")).lower() == target), None)

    async def _find_personal_repository(self, owner: str, name: str) -> dict[str, Any] | None:
        """Exact (case-sensitive) match among the user's searched repositories."""
        async with self._pool.lease() as client:
            try:
                page = await client.get_json(
                    USER_REPO_SEARCH_ENDPOINT,
                    params={"q": f"user:{owner}", "per_page": REPO_LISTING_PAGE_SIZE},
                    allow_empty=True,
                )
            except GitHubAPIError as exc:
                # Unknown users are rejected with 422; only transport failures propagate.
                if exc.status_code is None:
                    raise
                logger.debug("User search for [%s] failed: %s", owner, exc)
                return None

        if page is None:
            return None
        if not isinstance(page, dict) or not isinstance(page.get("items"), list):
            raise JsonMappingError(f"repository search page for [{owner}] has no items")

        return next((r for r in page["items"] if r.get("name") == name), None)
