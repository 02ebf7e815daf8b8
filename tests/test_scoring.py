"""Tests for per-PR scoring and repository aggregation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from prolice.diff import DiffStats, FileChangeType, FileDiff, HunkStats
from prolice.errors import NoPullRequestsToScore
from prolice.models import (
    Commit,
    CommitComment,
    IssueComment,
    PullRequestBundle,
    PullRequestHeader,
    RepositoryHandle,
    RepositorySample,
    Review,
    ReviewState,
)
from prolice.scoring import (
    NET_NON_TEST_LINES,
    NET_TEST_LINES,
    MetricKind,
    Scorable,
    Score,
    aggregate_scores,
    attachments,
    commentary_to_changes_ratio,
    compute_flow_ratio,
    compute_test_to_code_ratio,
    metric_legends,
    score_pull_request,
    score_repository,
    truncate,
)


# ── Helpers ─────────────────────────────────────────────────────────────────

CREATED = datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
CLOSED = datetime(2024, 3, 4, 9, tzinfo=timezone.utc)

BODY = "Adds parser. ![shot](https://x/y.png)"
AUTHOR_COMMENT = "See [docs](https://d)"
OTHER_COMMENT = "Looks good to me"
REVIEW_BODY = "LGTM"


def _make_diff(test: tuple[int, int] = (10, 2), source: tuple[int, int] = (20, 5)) -> DiffStats:
    return DiffStats(files=(
        FileDiff("tests/test_parser.py", FileChangeType.MODIFIED, (HunkStats(*test),)),
        FileDiff("src/parser.py", FileChangeType.MODIFIED, (HunkStats(*source),)),
    ))


def _make_bundle(
    number: int = 1,
    author: str = "alice",
    title: str = "Add parser",
    body: str = BODY,
    comments: list[IssueComment] | None = None,
    commit_comments: list[CommitComment] | None = None,
    reviews: list[Review] | None = None,
    commit_dates: list[datetime] | None = None,
    diff: DiffStats | None = None,
    created_at: datetime = CREATED,
    closed_at: datetime = CLOSED,
) -> PullRequestBundle:
    """Build a PullRequestBundle for tests (the end-to-end scenario by default)."""
    if comments is None:
        comments = [IssueComment(author, AUTHOR_COMMENT), IssueComment("bob", OTHER_COMMENT)]
    if reviews is None:
        reviews = [Review("carol", REVIEW_BODY, ReviewState.APPROVED)]
    if commit_dates is None:
        commit_dates = [datetime(2024, 2, 27, tzinfo=timezone.utc), datetime(2024, 2, 25, 12, tzinfo=timezone.utc)]
    header = PullRequestHeader(
        number=number,
        author_login=author,
        title=title,
        body=body,
        created_at=created_at,
        merged_at=closed_at,
        closed_at=closed_at,
        review_comments_url=f"https://api.github.com/repos/o/r/pulls/{number}/comments",
        commits_url=f"https://api.github.com/repos/o/r/pulls/{number}/commits",
    )
    return PullRequestBundle(
        repo_name="r",
        header=header,
        merged_at=closed_at,
        closed_at=closed_at,
        comments=tuple(comments),
        commit_comments=tuple(commit_comments or ()),
        reviews=tuple(reviews),
        commits=tuple(Commit(f"sha{i}", d) for i, d in enumerate(commit_dates)),
        diff=diff if diff is not None else _make_diff(),
    )


# ── End-to-end PR scoring ───────────────────────────────────────────────────


def test_end_to_end_pull_request_score() -> None:
    bundle = _make_bundle()
    score = score_pull_request(bundle)

    assert bundle.diff.net_test_lines == 8
    assert bundle.diff.net_non_test_lines == 15
    assert score[MetricKind.TEST_TO_CODE_RATIO] == 0.53
    assert score[MetricKind.AMOUNT_OF_PARTICIPANTS] == 2
    assert score[MetricKind.AMOUNT_OF_REVIEWERS] == 1
    assert score[MetricKind.PULL_REQUEST_SIZE] == 37
    assert score[MetricKind.ATTACHMENTS] == 2
    assert score[MetricKind.PULL_REQUEST_LEAD_TIME] == 2
    assert score[MetricKind.TIME_TO_MERGE] == 7
    assert score[MetricKind.PULL_REQUESTS_DISCUSSION_SIZE] == (
        len(BODY) + len(AUTHOR_COMMENT) + len(OTHER_COMMENT) + len(REVIEW_BODY)
    )
    assert score[MetricKind.AUTHOR_COMMENTARY_TO_CHANGES_RATIO] == 1.56
    assert score.pr_number == 1


def test_score_reports_net_line_counts() -> None:
    doc = score_pull_request(_make_bundle()).to_dict()
    assert doc[NET_TEST_LINES] == 8
    assert doc[NET_NON_TEST_LINES] == 15
    assert doc["test_to_code_ratio"] == 0.53


def test_pull_request_score_covers_every_kind_but_flow_ratio() -> None:
    score = score_pull_request(_make_bundle())
    assert MetricKind.PULL_REQUEST_FLOW_RATIO not in score
    assert set(score.values) == set(MetricKind) - {MetricKind.PULL_REQUEST_FLOW_RATIO}


def test_author_reviews_and_commit_comments_count_as_commentary() -> None:
    bundle = _make_bundle(
        comments=[],
        reviews=[Review("alice", "Replying", ReviewState.COMMENTED), Review("dave", None, None)],
        commit_comments=[CommitComment("alice", "nit fixed"), CommitComment("erin", "nit")],
    )
    score = score_pull_request(bundle)
    # Self-review is not a reviewer; null review bodies are skipped.
    assert score[MetricKind.AMOUNT_OF_REVIEWERS] == 1
    assert score[MetricKind.AMOUNT_OF_PARTICIPANTS] == 2
    assert score[MetricKind.PULL_REQUESTS_DISCUSSION_SIZE] == len(BODY) + len("Replying") + len("nit fixed") + len("nit")
    assert score[MetricKind.AUTHOR_COMMENTARY_TO_CHANGES_RATIO] == truncate(
        (len(BODY) + len("Replying") + len("nit fixed")) / 37
    )


def test_zero_change_pull_request_has_zero_commentary_ratio() -> None:
    bundle = _make_bundle(diff=DiffStats())
    score = score_pull_request(bundle)
    assert score[MetricKind.PULL_REQUEST_SIZE] == 0
    assert score[MetricKind.AUTHOR_COMMENTARY_TO_CHANGES_RATIO] == 0.0
    assert score[MetricKind.TEST_TO_CODE_RATIO] == 0.0


def test_bundle_requires_a_commit() -> None:
    with pytest.raises(ValueError):
        _make_bundle(commit_dates=[])


# ── Helpers ─────────────────────────────────────────────────────────────────


def test_test_to_code_ratio_is_zero_without_source_lines() -> None:
    assert compute_test_to_code_ratio(50, 0) == 0.0
    assert compute_test_to_code_ratio(0, 10) == 0.0
    assert compute_test_to_code_ratio(1, 3) == 0.33


def test_commentary_ratio_truncates() -> None:
    assert commentary_to_changes_ratio(2, 3) == 0.66
    assert commentary_to_changes_ratio(10, 0) == 0.0


def test_truncate_does_not_round() -> None:
    assert truncate(0.539) == 0.53
    assert truncate(1.999, 1) == 1.9


def test_attachments_match_images_and_links() -> None:
    found = attachments(["![img](a.png)", "see [here](b.pdf)", "no links", "[broken]"])
    assert found == ["![img](a.png)", "[here](b.pdf)"]


# ── Repository aggregation ──────────────────────────────────────────────────


def test_flow_ratio_averages_days_with_creations_and_closures() -> None:
    x = datetime(2024, 3, 1, 9, tzinfo=timezone.utc)
    y = x + timedelta(days=1)
    z = x + timedelta(days=5)
    timeline = [(x, x + timedelta(hours=2)), (x, x + timedelta(hours=5)), (x, z), (y, z)]
    assert compute_flow_ratio(timeline) == 1.5


def test_flow_ratio_without_shared_days_is_zero() -> None:
    x = datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert compute_flow_ratio([(x, x + timedelta(days=1))]) == 0.0
    assert compute_flow_ratio([]) == 0.0


def test_aggregate_rounds_counts_up_and_averages_ratios() -> None:
    scores = [
        Score({MetricKind.AMOUNT_OF_PARTICIPANTS: 1, MetricKind.TEST_TO_CODE_RATIO: 0.5}, pr_number=1),
        Score({MetricKind.AMOUNT_OF_PARTICIPANTS: 2, MetricKind.TEST_TO_CODE_RATIO: 0.25}, pr_number=2),
    ]
    aggregate = aggregate_scores(scores, [(CREATED, CREATED)])
    assert aggregate[MetricKind.AMOUNT_OF_PARTICIPANTS] == 2
    assert aggregate[MetricKind.TEST_TO_CODE_RATIO] == pytest.approx(0.375)
    assert aggregate[MetricKind.PULL_REQUEST_FLOW_RATIO] == 1.0
    assert aggregate[MetricKind.ATTACHMENTS] == 0
    assert set(aggregate.values) == set(MetricKind)
    assert aggregate.pr_number is None


def test_aggregate_without_scores_raises() -> None:
    with pytest.raises(NoPullRequestsToScore):
        aggregate_scores([], [])


def test_score_repository_and_sample_agree() -> None:
    bundles = [_make_bundle(number=1), _make_bundle(number=2, comments=[])]
    sample = RepositorySample(RepositoryHandle("o", "r"), bundles)
    assert sample.score() == score_repository(bundles)
    assert sample.score()[MetricKind.AMOUNT_OF_PARTICIPANTS] == 2



def test_repository_line_counts_are_truncated_means() -> None:
    bundles = [_make_bundle(number=1), _make_bundle(number=2, diff=_make_diff(test=(3, 0)))]
    doc = score_repository(bundles).to_dict()
    assert doc[NET_TEST_LINES] == 5
    assert doc[NET_NON_TEST_LINES] == 15

# ── Score container and metadata ────────────────────────────────────────────


def test_bundle_and_sample_are_scorable() -> None:
    bundle = _make_bundle()
    assert isinstance(bundle, Scorable)
    assert isinstance(RepositorySample(RepositoryHandle("o", "r"), [bundle]), Scorable)
    assert bundle.score() == score_pull_request(bundle)


def test_score_to_dict_is_flat() -> None:
    doc = Score({MetricKind.PULL_REQUEST_SIZE: 3}, pr_number=9).to_dict()
    assert doc == {"pr_number": 9, "pull_request_size": 3}


def test_ratio_kinds() -> None:
    ratios = {k for k in MetricKind if k.is_ratio}
    assert ratios == {
        MetricKind.AUTHOR_COMMENTARY_TO_CHANGES_RATIO,
        MetricKind.PULL_REQUEST_FLOW_RATIO,
        MetricKind.TEST_TO_CODE_RATIO,
    }


def test_every_kind_has_a_legend() -> None:
    text = metric_legends()
    for kind in MetricKind:
        assert kind.label in text
        assert kind.legend
