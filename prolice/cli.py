"""Command-line interface for PRolice."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import typer

from prolice import __version__
from prolice.analysis import analyze_pull_request, analyze_repository
from prolice.config import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_SAMPLE_SIZE,
    GITHUB_TOKEN,
    LOG_FORMAT,
    LOG_LEVELS,
    MAX_SAMPLE_SIZE,
    MIN_SAMPLE_SIZE,
)
from prolice.errors import ProliceError
from prolice.pool import GitHubConnectionPool
from prolice.report import save_report
from prolice.scoring import Score, metric_legends

logger = logging.getLogger(__name__)

LOGO = r"""
 ____  ____       _ _
|  _ \|  _ \ ___ | (_) ___ ___
| |_) | |_) / _ \| | |/ __/ _ \
|  __/|  _ < (_) | | | (_|  __/
|_|   |_| \_\___/|_|_|\___\___|
"""

app = typer.Typer(add_completion=False)


def configure_logging(level: str, silent: bool) -> None:
    """Set up root logging; silent mode or level OFF turns logging off."""
    if silent or level.upper() == "OFF":
        logging.disable(logging.CRITICAL)
        return
    logging.disable(logging.NOTSET)
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)


async def _run(
    token: str | None,
    owner: str,
    repository: str,
    sample_size: int,
    pr_number: int | None,
    include_merge_prs: bool,
) -> Score:
    async with GitHubConnectionPool(token) as pool:
        if pr_number is not None:
            return await analyze_pull_request(pool, owner, repository, pr_number)
        return await analyze_repository(pool, owner, repository, sample_size, include_merge_prs)


@app.command()
def main(
    owner: str = typer.Option(..., "--owner", "-O", help="Owner of the repository to analyze."),
    repository: str = typer.Option(
        ..., "--repository", "-R", help="Name of the repository to analyze."
    ),
    github_token: str | None = typer.Option(
        None,
        "--github-token",
        "-G",
        envvar="GITHUB_TOKEN",
        show_default=False,
        help="GitHub personal access token. Defaults to $GITHUB_TOKEN.",
    ),
    sample_size: int | None = typer.Option(
        None,
        "--sample-size",
        "-S",
        min=MIN_SAMPLE_SIZE,
        max=MAX_SAMPLE_SIZE,
        help=f"Number of most recent closed PRs to analyze [default: {DEFAULT_SAMPLE_SIZE}].",
    ),
    pr_number: int | None = typer.Option(
        None, "--pr-number", "-P", help="Analyze a single PR instead of a sample."
    ),
    include_merge_prs: bool = typer.Option(
        False, "--include-merge-prs", "-m", help="Keep PRs whose title starts with 'merge'."
    ),
    print_legends: bool = typer.Option(
        False, "--print-legends", "-l", help="Explain every metric after the score."
    ),
    silent_mode: bool = typer.Option(
        False, "--silent-mode", "-s", help="Print only the resulting score."
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-L",
        help=f"One of {', '.join(LOG_LEVELS)} [default: {DEFAULT_LOG_LEVEL}].",
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Directory to also write the JSON report to."
    ),
) -> None:
    """Score the quality of a GitHub repository's pull requests."""
    if pr_number is not None and sample_size is not None:
        raise typer.BadParameter(
            "--pr-number cannot be combined with --sample-size.", param_hint="--pr-number"
        )
    if silent_mode and log_level is not None:
        raise typer.BadParameter(
            "--log-level cannot be combined with --silent-mode.", param_hint="--log-level"
        )
    level = (log_level or DEFAULT_LOG_LEVEL).upper()
    if level not in LOG_LEVELS:
        raise typer.BadParameter(
            f"expected one of {', '.join(LOG_LEVELS)}, got {log_level!r}.", param_hint="--log-level"
        )

    # Piped output only carries the score.
    silent = silent_mode or not sys.stdout.isatty()
    configure_logging(level, silent)

    if not silent:
        typer.echo(LOGO)
        target = f"PR #{pr_number}" if pr_number is not None else "a sample of PRs"
        typer.echo(f"PRolice v{__version__} analyzing {target} of {owner}/{repository}\n")

    try:
        score = asyncio.run(
            _run(
                github_token or GITHUB_TOKEN,
                owner,
                repository,
                sample_size or DEFAULT_SAMPLE_SIZE,
                pr_number,
                include_merge_prs,
            )
        )
    except ProliceError as exc:
        logger.error("Analysis failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None

    typer.echo(score.to_json())

    if print_legends:
        typer.echo(metric_legends())

    if output is not None:
        path = save_report(score, owner, repository, out_dir=output)
        if not silent:
            typer.echo(f"\nReport saved to {path}")


if __name__ == "__main__":
    app()
