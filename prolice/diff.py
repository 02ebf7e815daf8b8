"""Unified-diff analysis.

Turns a PR's raw diff into per-file, per-hunk line statistics. Test files are
recognised by a naive rule: the token ``test`` appearing anywhere in the
path, case-insensitively. Paths such as ``src/contest.py`` are therefore
counted as tests too.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from unidiff import PatchedFile, PatchSet
from unidiff.errors import UnidiffParseError

from prolice.errors import DiffParseError

logger = logging.getLogger(__name__)


class FileChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"  # rename with no content change


@dataclass(frozen=True)
class HunkStats:
    """Line counts for one hunk."""

    added: int
    removed: int

    @property
    def changes(self) -> int:
        return self.added + self.removed

    @property
    def net_added(self) -> int:
        """Added minus removed lines, floored at zero."""
        return max(self.added - self.removed, 0)


@dataclass(frozen=True)
class FileDiff:
    """A single file touched by the diff."""

    path: str
    change_type: FileChangeType
    hunks: tuple[HunkStats, ...] = ()

    @property
    def is_test(self) -> bool:
        return "test" in self.path.lower()

    @property
    def added(self) -> int:
        return sum(h.added for h in self.hunks)

    @property
    def removed(self) -> int:
        return sum(h.removed for h in self.hunks)

    @property
    def net_added(self) -> int:
        """Sum of per-hunk net additions (each hunk floored at zero)."""
        return sum(h.net_added for h in self.hunks)


@dataclass(frozen=True)
class DiffStats:
    """Parsed statistics for a whole PR diff."""

    files: tuple[FileDiff, ...] = ()

    def of_type(self, *types: FileChangeType) -> list[FileDiff]:
        return [f for f in self.files if f.change_type in types]

    @property
    def total_changes(self) -> int:
        """Added plus removed lines across every hunk of every file."""
        return sum(h.changes for f in self.files for h in f.hunks)

    def _net_added(self, tests: bool) -> int:
        return sum(
            f.net_added
            for f in self.of_type(FileChangeType.ADDED, FileChangeType.MODIFIED)
            if f.is_test is tests
        )

    @property
    def net_test_lines(self) -> int:
        return self._net_added(tests=True)

    @property
    def net_non_test_lines(self) -> int:
        return self._net_added(tests=False)


def _change_type(patched: PatchedFile) -> FileChangeType:
    if patched.is_added_file:
        return FileChangeType.ADDED
    if patched.is_removed_file:
        return FileChangeType.DELETED
    if patched.is_rename and len(patched) == 0:
        return FileChangeType.RENAMED
    return FileChangeType.MODIFIED


def parse_diff(
    diff_text: str,
    repo_name: str | None = None,
    pr_number: int | None = None,
) -> DiffStats:
    """Parse *diff_text* into :class:`DiffStats`.

    *repo_name* and *pr_number* only label a :class:`DiffParseError`.
    """
    try:
        patch_set = PatchSet(diff_text)
    except UnidiffParseError as exc:
        raise DiffParseError(repo_name, pr_number, cause=exc) from exc

    files: list[FileDiff] = []
    for patched in patch_set:
        change_type = _change_type(patched)
        hunks = tuple(HunkStats(added=h.added, removed=h.removed) for h in patched)
        logger.debug(
            "[%s/%s] %s (%s): %d hunk(s)",
            repo_name,
            pr_number,
            patched.path,
            change_type.value,
            len(hunks),
        )
        files.append(FileDiff(path=patched.path, change_type=change_type, hunks=hunks))

    return DiffStats(files=tuple(files))
