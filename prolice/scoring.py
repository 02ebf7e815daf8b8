"""Scoring engine for pull-request quality.

A single PR is scored from its :class:`PullRequestBundle`; a repository score
is the average of its PRs' scores plus the Pull Request Flow Ratio, which only
exists across PRs:

    FlowRatio = mean over days D (created_on(D) / closed_on(D))

where only days with both creations and closures are counted.

Key invariants:
    - Net added lines are floored at zero per hunk, so deletion-heavy hunks
      never subtract from a PR's contribution.
    - Test-to-code ratio is exactly 0 whenever no non-test lines were added.
    - Every metric kind is handled by an exhaustive ``match``; adding a kind
      fails type-checking until each scorer handles it.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Protocol, Sequence, assert_never, runtime_checkable

from prolice.errors import NoPullRequestsToScore
from prolice.models import PullRequestBundle

logger = logging.getLogger(__name__)

ATTACHMENT_PATTERN = re.compile(r"!?\[.*\]\(.*?\)")

NET_TEST_LINES = "net_test_lines"
NET_NON_TEST_LINES = "net_non_test_lines"


class MetricKind(str, Enum):
    """Qualities of a PR or repository worth measuring."""

    AMOUNT_OF_PARTICIPANTS = "amount_of_participants"
    AMOUNT_OF_REVIEWERS = "amount_of_reviewers"
    ATTACHMENTS = "attachments"
    AUTHOR_COMMENTARY_TO_CHANGES_RATIO = "author_commentary_to_changes_ratio"
    PULL_REQUESTS_DISCUSSION_SIZE = "pull_requests_discussion_size"
    PULL_REQUEST_FLOW_RATIO = "pull_request_flow_ratio"
    PULL_REQUEST_LEAD_TIME = "pull_request_lead_time"
    PULL_REQUEST_SIZE = "pull_request_size"
    TEST_TO_CODE_RATIO = "test_to_code_ratio"
    TIME_TO_MERGE = "time_to_merge"

    @property
    def is_ratio(self) -> bool:
        """Ratio kinds are averaged as floats; the rest are rounded-up counts."""
        return self in _RATIO_KINDS

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def legend(self) -> str:
        return METRIC_LEGENDS[self]


_RATIO_KINDS = frozenset({
    MetricKind.AUTHOR_COMMENTARY_TO_CHANGES_RATIO,
    MetricKind.PULL_REQUEST_FLOW_RATIO,
    MetricKind.TEST_TO_CODE_RATIO,
})

METRIC_LEGENDS: dict[MetricKind, str] = {
    MetricKind.AMOUNT_OF_PARTICIPANTS: (
        "The amount of non-authoring people participating in a PR's discussion. "
        "Bigger participation may enrich discussion and produce higher quality code."
    ),
    MetricKind.AMOUNT_OF_REVIEWERS: (
        "The amount of non-authoring people that have taken a stand on a PR's outcome, "
        "either by approving or requesting changes. It measures the participants that "
        "effectively decide on a PR's fate."
    ),
    MetricKind.ATTACHMENTS: (
        "Attachments can be anything ranging from added screenshots to embedded PDF "
        "files. Particularly useful for PRs with a visual component."
    ),
    MetricKind.AUTHOR_COMMENTARY_TO_CHANGES_RATIO: (
        "Characters of commentary written by the PR's author per changed line. A slim "
        "commentary makes for an ambiguous PR and shifts the burden of understanding "
        "onto the reviewer; too much commentary pollutes the PR with noise."
    ),
    MetricKind.PULL_REQUESTS_DISCUSSION_SIZE: (
        "Characters of commentary in a PR irrespective of who wrote them. Too much "
        "discussion may point at misaligned teams or imprecise requirements; almost "
        "none means code review is not part of the team's habits."
    ),
    MetricKind.PULL_REQUEST_FLOW_RATIO: (
        "PRs opened in a day divided by PRs closed that same day, averaged over days "
        "where both happened. The closer to 1:1, the healthier the review queue."
    ),
    MetricKind.PULL_REQUEST_LEAD_TIME: (
        "Days between a PR being opened and being closed."
    ),
    MetricKind.PULL_REQUEST_SIZE: (
        "Changed lines (additions plus deletions). Large PRs strain the reviewer's "
        "attention, push Time To Merge up and quality down."
    ),
    MetricKind.TEST_TO_CODE_RATIO: (
        "Net added test lines per net added non-test line. As a rule of thumb, at "
        "least half of a PR should be tests whenever possible."
    ),
    MetricKind.TIME_TO_MERGE: (
        "Days between a branch's first commit and its merge. Compared with the Lead "
        "Time it shows how long work sat on a branch before a PR was opened."
    ),
}


def metric_legends() -> str:
    """Render every metric's legend as a plain-text block."""
    lines: list[str] = []
    for kind in MetricKind:
        rule = "-" * len(kind.label)
        lines.extend(["", rule, kind.label, rule, "", kind.legend])
    return "\n".join(lines) + "\n"


# ── Score container ────────────────────────────────────────────────────────

@dataclass
class Score:
    """Metric values for one PR (``pr_number`` set) or one repository.

    ``line_counts`` carries the net added test and non-test lines behind the
    test-to-code ratio, reported as their own keys.
    """

    values: dict[MetricKind, float | int] = field(default_factory=dict)
    pr_number: int | None = None
    line_counts: dict[str, int] = field(default_factory=dict)

    def __getitem__(self, kind: MetricKind) -> float | int:
        return self.values[kind]

    def __contains__(self, kind: object) -> bool:
        return kind in self.values

    def to_dict(self) -> dict[str, float | int | None]:
        """Flat key → value document."""
        doc: dict[str, float | int | None] = {}
        if self.pr_number is not None:
            doc["pr_number"] = self.pr_number
        doc.update({kind.value: value for kind, value in self.values.items()})
        doc.update(self.line_counts)
        return doc

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def __str__(self) -> str:
        return self.to_json()


@runtime_checkable
class Scorable(Protocol):
    """Anything able to produce a :class:`Score` from its own data."""

    def score(self) -> Score: ...


# ── Helpers ─────────────────────────────────────────────────────────────────

def truncate(value: float, digits: int = 2) -> float:
    """Drop (not round) everything past *digits* decimals."""
    factor = 10 ** digits
    return math.trunc(value * factor) / factor


def whole_days(start: datetime, end: datetime) -> int:
    """Whole days between two instants, truncated toward zero."""
    return int((end - start).total_seconds() / 86400)


def author_commentary(bundle: PullRequestBundle) -> list[str]:
    """PR body plus every comment, review-comment and review by the PR's author.

    Replies to reviewers are counted too: whatever the intent, they are part
    of the PR's discussion.
    """
    author = bundle.author_login
    texts = [bundle.header.body]
    texts += [c.body for c in bundle.comments if c.author_login == author and c.body is not None]
    texts += [c.body for c in bundle.commit_comments if c.author_login == author]
    texts += [r.body for r in bundle.reviews if r.author_login == author and r.body is not None]
    logger.debug("Commentary from [%s]: %r", author, texts)
    return texts


def all_commentary(bundle: PullRequestBundle) -> list[str]:
    texts = [bundle.header.body]
    texts += [c.body for c in bundle.comments if c.body is not None]
    texts += [c.body for c in bundle.commit_comments]
    texts += [r.body for r in bundle.reviews if r.body is not None]
    return texts


def non_authoring_participants(bundle: PullRequestBundle) -> set[str]:
    logins = {c.author_login for c in bundle.comments}
    logins |= {r.author_login for r in bundle.reviews}
    logins |= {c.author_login for c in bundle.commit_comments}
    logins.discard(bundle.author_login)
    return logins


def non_authoring_reviewers(bundle: PullRequestBundle) -> set[str]:
    return {r.author_login for r in bundle.reviews} - {bundle.author_login}


def attachments(texts: Iterable[str]) -> list[str]:
    """Markdown images and links (``[..](..)``, optionally ``!``-prefixed)."""
    return [m.group(0) for text in texts for m in ATTACHMENT_PATTERN.finditer(text)]


def commentary_to_changes_ratio(commentary_chars: int, changes: int) -> float:
    # A PR without line changes has no meaningful ratio; report 0.
    if changes == 0:
        return 0.0
    return truncate(commentary_chars / changes)


def compute_test_to_code_ratio(net_test_lines: int, net_non_test_lines: int) -> float:
    if net_non_test_lines == 0:
        return 0.0
    return abs(truncate(net_test_lines / net_non_test_lines))


# ── Per-PR scoring ─────────────────────────────────────────────────────────

def score_pull_request(bundle: PullRequestBundle) -> Score:
    """Derive every per-PR metric from a complete bundle.

    Flow ratio has no meaning for a single PR and is left out.
    """
    diff = bundle.diff
    changes = diff.total_changes
    all_chars = sum(len(t) for t in all_commentary(bundle))
    author_texts = author_commentary(bundle)
    author_chars = sum(len(t) for t in author_texts)
    commentary_ratio = commentary_to_changes_ratio(author_chars, changes)
    logger.debug(
        "[%s]: changes=%d all comments=%d author comments=%d ratio=%s",
        bundle.number, changes, all_chars, author_chars, commentary_ratio,
    )

    net_test = diff.net_test_lines
    net_non_test = diff.net_non_test_lines
    test_ratio = compute_test_to_code_ratio(net_test, net_non_test)
    logger.debug(
        "[%s]: net test lines=%d net non-test lines=%d test-to-code=%s",
        bundle.number, net_test, net_non_test, test_ratio,
    )

    participants = non_authoring_participants(bundle)
    reviewers = non_authoring_reviewers(bundle)
    found_attachments = attachments(author_texts)
    lead_time = whole_days(bundle.created_at, bundle.closed_at)
    time_to_merge = whole_days(bundle.first_commit_at, bundle.merged_at)
    logger.debug(
        "[%s]: participants=%s reviewers=%s attachments=%d lead time=%d time to merge=%d",
        bundle.number, sorted(participants), sorted(reviewers),
        len(found_attachments), lead_time, time_to_merge,
    )

    values: dict[MetricKind, float | int] = {}
    for kind in MetricKind:
        match kind:
            case MetricKind.AMOUNT_OF_PARTICIPANTS:
                values[kind] = len(participants)
            case MetricKind.AMOUNT_OF_REVIEWERS:
                values[kind] = len(reviewers)
            case MetricKind.ATTACHMENTS:
                values[kind] = len(found_attachments)
            case MetricKind.AUTHOR_COMMENTARY_TO_CHANGES_RATIO:
                values[kind] = commentary_ratio
            case MetricKind.PULL_REQUESTS_DISCUSSION_SIZE:
                values[kind] = all_chars
            case MetricKind.PULL_REQUEST_FLOW_RATIO:
                logger.debug("Flow ratio only applies to repositories; skipped for PR #%d.", bundle.number)
            case MetricKind.PULL_REQUEST_LEAD_TIME:
                values[kind] = lead_time
            case MetricKind.PULL_REQUEST_SIZE:
                values[kind] = changes
            case MetricKind.TEST_TO_CODE_RATIO:
                values[kind] = test_ratio
            case MetricKind.TIME_TO_MERGE:
                values[kind] = time_to_merge
            case _:
                assert_never(kind)

    return Score(
        values=values,
        pr_number=bundle.number,
        line_counts={NET_TEST_LINES: net_test, NET_NON_TEST_LINES: net_non_test},
    )


# ── Repository aggregation ─────────────────────────────────────────────────

def compute_flow_ratio(timeline: Iterable[tuple[datetime, datetime]]) -> float:
    """Average of created/closed per calendar day, over days having both.

    Returns 0.0 when no day saw both a creation and a closure.
    """
    created: Counter[date] = Counter()
    closed: Counter[date] = Counter()
    for created_at, closed_at in timeline:
        created[created_at.date()] += 1
        closed[closed_at.date()] += 1
    logger.debug("Flow ratio created map: %s; closed map: %s", dict(created), dict(closed))

    daily = [created[day] / closed[day] for day in created if day in closed]
    if not daily:
        return 0.0
    return sum(daily) / len(daily)


def aggregate_scores(
    scores: Sequence[Score],
    timeline: Iterable[tuple[datetime, datetime]],
) -> Score:
    """Combine per-PR scores into a repository score.

    Count kinds are averaged and rounded up, ratio kinds averaged as floats,
    and the flow ratio is computed from *timeline* ``(created_at, closed_at)``
    pairs. Filtering (merge PRs, sample bounds) is the caller's job.
    """
    total = len(scores)
    if total == 0:
        raise NoPullRequestsToScore()

    sums: dict[MetricKind, float] = {kind: 0 for kind in MetricKind}
    line_sums: dict[str, int] = {}
    for s in scores:
        for kind, value in s.values.items():
            sums[kind] += value
        for key, count in s.line_counts.items():
            line_sums[key] = line_sums.get(key, 0) + count

    values: dict[MetricKind, float | int] = {}
    for kind in MetricKind:
        match kind:
            case (
                MetricKind.AMOUNT_OF_PARTICIPANTS
                | MetricKind.AMOUNT_OF_REVIEWERS
                | MetricKind.ATTACHMENTS
                | MetricKind.PULL_REQUESTS_DISCUSSION_SIZE
                | MetricKind.PULL_REQUEST_LEAD_TIME
                | MetricKind.PULL_REQUEST_SIZE
                | MetricKind.TIME_TO_MERGE
            ):
                values[kind] = math.ceil(sums[kind] / total)
            case MetricKind.AUTHOR_COMMENTARY_TO_CHANGES_RATIO | MetricKind.TEST_TO_CODE_RATIO:
                values[kind] = sums[kind] / total
            case MetricKind.PULL_REQUEST_FLOW_RATIO:
                values[kind] = compute_flow_ratio(timeline)
            case _:
                assert_never(kind)

    logger.info("Aggregated scores of %d PR(s).", total)
    # Whole lines, truncated.
    line_counts = {key: lines // total for key, lines in line_sums.items()}
    return Score(values=values, line_counts=line_counts)


def score_repository(bundles: Sequence[PullRequestBundle]) -> Score:
    """Score each bundle and aggregate them into one repository score."""
    scores = [score_pull_request(b) for b in bundles]
    return aggregate_scores(scores, [(b.created_at, b.closed_at) for b in bundles])
