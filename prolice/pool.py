"""Bounded pool of authenticated GitHub clients.

Clients are created lazily, up to ``max_size``, and recycled between leases.
A lease is exclusively owned by the task that acquired it until released::

    async with GitHubConnectionPool(token) as pool:
        async with pool.lease() as client:
            data = await client.get_json("/user")
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from prolice.config import CONNECTION_POOL_SIZE, GITHUB_API_BASE, POOL_ACQUIRE_TIMEOUT
from prolice.errors import PoolInitializationError, PoolTimeoutError
from prolice.github_client import GitHubClient

logger = logging.getLogger(__name__)


class GitHubConnectionPool:
    """Issues and reclaims :class:`GitHubClient` leases."""

    def __init__(
        self,
        token: str | None,
        max_size: int = CONNECTION_POOL_SIZE,
        acquire_timeout: float | None = POOL_ACQUIRE_TIMEOUT,
        base_url: str = GITHUB_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise PoolInitializationError(
                "GITHUB_TOKEN is required. Pass --github-token or set it as an "
                "environment variable."
            )
        if max_size < 1:
            raise PoolInitializationError(f"Pool size must be at least 1, got {max_size}.")

        self._token = token
        self._base_url = base_url
        self._transport = transport
        self.max_size = max_size
        self.acquire_timeout = acquire_timeout

        self._slots = asyncio.Semaphore(max_size)
        self._idle: list[GitHubClient] = []
        self._created: list[GitHubClient] = []

    @property
    def size(self) -> int:
        """Number of clients created so far."""
        return len(self._created)

    @property
    def available(self) -> int:
        """Number of leases that can be handed out without waiting."""
        return self.max_size - (self.size - len(self._idle))

    async def acquire(self) -> GitHubClient:
        """Wait for a free slot and hand out a client.

        Raises :class:`PoolTimeoutError` once ``acquire_timeout`` elapses.
        """
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.acquire_timeout)
        except asyncio.TimeoutError as exc:
            logger.error(
                "Could not lease a GitHub connection despite the pool being "
                "initialized (%d/%d in use).",
                self.size - len(self._idle),
                self.max_size,
            )
            raise PoolTimeoutError(self.acquire_timeout) from exc

        if self._idle:
            logger.debug("Recycling connection from the pool...")
            return self._idle.pop()

        logger.debug("Creating new pooled connection (%d/%d)...", self.size + 1, self.max_size)
        client = GitHubClient(self._token, base_url=self._base_url, transport=self._transport)
        self._created.append(client)
        return client

    def release(self, client: GitHubClient) -> None:
        """Return *client* to the pool."""
        if not client.is_closed:
            self._idle.append(client)
        else:
            self._created.remove(client)
        self._slots.release()

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[GitHubClient]:
        client = await self.acquire()
        try:
            yield client
        finally:
            self.release(client)

    async def close(self) -> None:
        """Close every client the pool has created."""
        for client in self._created:
            await client.close()
        self._created.clear()
        self._idle.clear()

    async def __aenter__(self) -> GitHubConnectionPool:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
