"""Centralised configuration and constants."""

from __future__ import annotations

import os
from pathlib import Path

# ── Paths ───────────────────────────────────────────────────────────────────
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
DATA_DIR: Path = PROJECT_ROOT / "data"
REPORTS_DIR: Path = DATA_DIR / "reports"

# ── GitHub API ──────────────────────────────────────────────────────────────
GITHUB_TOKEN: str | None = os.getenv("GITHUB_TOKEN")
GITHUB_API_BASE: str = os.getenv("PROLICE_API_BASE", "https://api.github.com")
REQUEST_TIMEOUT: int = 30  # seconds
RATE_LIMIT_BUFFER: int = 5
RETRY_MAX: int = 3
RETRY_BACKOFF: float = 2.0  # seconds, exponential base

# Media types
JSON_MEDIA_TYPE: str = "application/vnd.github+json"
DIFF_MEDIA_TYPE: str = "application/vnd.github.v3.diff"

# ── Endpoint templates ─────────────────────────────────────────────────────
ORG_REPOS_ENDPOINT: str = "/orgs/{owner}/repos"
USER_REPO_SEARCH_ENDPOINT: str = "/search/repositories"
PULLS_ENDPOINT: str = "/repos/{owner}/{repo}/pulls"
PULL_ENDPOINT: str = "/repos/{owner}/{repo}/pulls/{number}"
REVIEWS_ENDPOINT: str = "/repos/{owner}/{repo}/pulls/{number}/reviews"
ISSUE_COMMENTS_ENDPOINT: str = "/repos/{owner}/{repo}/issues/{number}/comments"
REPO_LISTING_PAGE_SIZE: int = 100

# ── Sampling ───────────────────────────────────────────────────────────────
DEFAULT_SAMPLE_SIZE: int = 100
MIN_SAMPLE_SIZE: int = 1
MAX_SAMPLE_SIZE: int = DEFAULT_SAMPLE_SIZE

# ── Connection pool ────────────────────────────────────────────────────────
# Bigger pools tend to trip GitHub's secondary (abuse) rate limits, and any
# PR with a single rejected sub-request is dropped from the sample.
CONNECTION_POOL_SIZE: int = DEFAULT_SAMPLE_SIZE
POOL_ACQUIRE_TIMEOUT: float = float(os.getenv("PROLICE_POOL_TIMEOUT", "300"))  # seconds

# ── Logging ────────────────────────────────────────────────────────────────
DEFAULT_LOG_LEVEL: str = os.getenv("PROLICE_LOG_LEVEL", "INFO")
LOG_FORMAT: str = "%(asctime)s %(levelname)s %(message)s"
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "OFF")
