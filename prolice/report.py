"""JSON score reports on disk, read back by the dashboard."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from prolice import __version__
from prolice.config import REPORTS_DIR
from prolice.scoring import Score

logger = logging.getLogger(__name__)

REPORT_GLOB = "score_*.json"


def save_report(
    score: Score,
    owner: str,
    repository: str,
    out_dir: Path = REPORTS_DIR,
) -> Path:
    """Write *score* under *out_dir* and return the file's path."""
    out_dir.mkdir(parents=True, exist_ok=True)
    now = datetime.now(timezone.utc)
    timestamp = now.strftime("%Y%m%dT%H%M%S%f")
    out_path = out_dir / f"score_{timestamp}.json"

    serialized = {
        "_metadata": {
            "owner": owner,
            "repository": repository,
            "pr_number": score.pr_number,
            "computed_at": now.isoformat(),
            "prolice_version": __version__,
        },
        "score": score.to_dict(),
    }

    out_path.write_text(json.dumps(serialized, indent=2))
    logger.info("Saved score → %s", out_path)
    return out_path


def list_reports(report_dir: Path = REPORTS_DIR) -> list[Path]:
    """Report files in *report_dir*, oldest first."""
    return sorted(report_dir.glob(REPORT_GLOB))


def load_report(path: Path) -> dict[str, Any]:
    logger.info("Loading report from %s", path)
    return json.loads(path.read_text())


def load_latest_report(report_dir: Path = REPORTS_DIR) -> dict[str, Any] | None:
    """Return the most recent report in *report_dir*, or None if there is none."""
    files = list_reports(report_dir)
    if not files:
        return None
    return load_report(files[-1])
