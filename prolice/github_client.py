"""Async GitHub REST client with rate-limit handling."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

import httpx

from prolice.config import (
    GITHUB_API_BASE,
    JSON_MEDIA_TYPE,
    RATE_LIMIT_BUFFER,
    REQUEST_TIMEOUT,
    RETRY_BACKOFF,
    RETRY_MAX,
)
from prolice.errors import GitHubAPIError, ResponseBodyError

logger = logging.getLogger(__name__)


class GitHubClient:
    """Authenticated REST client. One instance is one pooled connection."""

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ValueError("A GitHub personal access token is required.")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": JSON_MEDIA_TYPE,
            },
            timeout=REQUEST_TIMEOUT,
            transport=transport,
        )
        self._remaining: int = 5000
        self._reset_at: float = 0.0

    # ── Requests ────────────────────────────────────────────────────────

    def url_for(self, endpoint: str) -> str:
        """Join a relative endpoint to the API base; absolute URLs pass through."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}{endpoint}"

    async def get(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        accept: str | None = None,
    ) -> httpx.Response:
        """Send a GET request and return the successful response.

        Transport errors are retried; anything else non-2xx raises
        :class:`GitHubAPIError`.
        """
        url = self.url_for(endpoint)
        headers = {"Accept": accept} if accept else None

        for attempt in range(1, RETRY_MAX + 1):
            await self._wait_if_rate_limited()

            try:
                resp = await self._client.get(url, params=params, headers=headers)
            except httpx.TransportError as exc:
                logger.warning("Transport error (attempt %d/%d): %s", attempt, RETRY_MAX, exc)
                if attempt == RETRY_MAX:
                    raise GitHubAPIError(
                        f"all {RETRY_MAX} retries exhausted", url, cause=exc
                    ) from exc
                await asyncio.sleep(RETRY_BACKOFF ** attempt)
                continue

            self._track_rate_limit(resp)

            if resp.is_success:
                return resp

            raise GitHubAPIError(
                f"HTTP {resp.status_code}",
                url,
                status_code=resp.status_code,
                cause=httpx.HTTPStatusError(
                    f"HTTP {resp.status_code}", request=resp.request, response=resp
                ),
            )

        raise GitHubAPIError(f"all {RETRY_MAX} retries exhausted", url)

    async def get_json(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        allow_empty: bool = False,
    ) -> Any:
        """GET and decode a JSON body.

        An empty body raises :class:`ResponseBodyError` unless *allow_empty*,
        in which case ``None`` is returned.
        """
        resp = await self.get(endpoint, params=params)
        url = str(resp.request.url)

        if not resp.content.strip():
            if allow_empty:
                logger.warning("No content received from [%s].", url)
                return None
            raise ResponseBodyError("empty body", url)

        try:
            return resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.debug("Raw response = %s", resp.text)
            raise ResponseBodyError("body is not valid JSON", url, cause=exc) from exc

    async def get_text(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        accept: str | None = None,
    ) -> str:
        """GET a raw text body (e.g. a unified diff).

        Undecodable bytes become replacement characters rather than failing
        the request.
        """
        resp = await self.get(endpoint, params=params, accept=accept)
        return resp.text

    # ── Rate-limit helpers ──────────────────────────────────────────────

    def _track_rate_limit(self, resp: httpx.Response) -> None:
        remaining = resp.headers.get("X-RateLimit-Remaining")
        reset_ts = resp.headers.get("X-RateLimit-Reset")
        if remaining is not None:
            self._remaining = int(remaining)
        if reset_ts is not None:
            self._reset_at = float(reset_ts)

    async def _wait_if_rate_limited(self) -> None:
        """Sleep if remaining API points are below the safety buffer."""
        if self._remaining < RATE_LIMIT_BUFFER:
            wait = max(0.0, self._reset_at - time.time()) + 5
            logger.info(
                "Rate limit low (%d remaining). Sleeping %.0fs.",
                self._remaining,
                wait,
            )
            await asyncio.sleep(wait)
            self._remaining = RATE_LIMIT_BUFFER

    # ── Context manager ─────────────────────────────────────────────────

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
