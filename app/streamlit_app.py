"""Streamlit dashboard for PRolice score reports."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from prolice.config import REPORTS_DIR
from prolice.report import list_reports, load_report
from prolice.scoring import NET_NON_TEST_LINES, NET_TEST_LINES, MetricKind


# ── Data loading (cached) ──────────────────────────────────────────────────

@st.cache_data
def _load(path_str: str) -> tuple[dict, dict]:
    """Load one report file. Returns (score, metadata)."""
    data = load_report(Path(path_str))
    return data.get("score", {}), data.get("_metadata", {})


def _score_frame(score: dict) -> pd.DataFrame:
    """One row per metric kind present in *score*."""
    rows = [
        {
            "kind": kind.value,
            "Metric": kind.label,
            "Value": score[kind.value],
            "is_ratio": kind.is_ratio,
            "Legend": kind.legend,
        }
        for kind in MetricKind
        if kind.value in score
    ]
    return pd.DataFrame(rows)


def _format_value(value: float, is_ratio: bool) -> str:
    return f"{value:.2f}" if is_ratio else f"{int(value)}"


# ── Dashboard ───────────────────────────────────────────────────────────────

def main() -> None:
    """Render the Streamlit dashboard."""
    st.set_page_config(page_title="PRolice", layout="wide")

    reports = list_reports(REPORTS_DIR)
    if not reports:
        st.error(
            "No score reports found. Run an analysis first:\n\n"
            "```bash\n"
            f"prolice -O <owner> -R <repository> -o {REPORTS_DIR}\n"
            "```"
        )
        return

    # ── Sidebar ──────────────────────────────────────────────────────────
    with st.sidebar:
        st.header("Report")
        selected = st.selectbox(
            "Score report",
            options=list(reversed(reports)),
            format_func=lambda p: p.name,
        )

    score, metadata = _load(str(selected))

    owner = metadata.get("owner", "?")
    repository = metadata.get("repository", "?")
    pr_number = metadata.get("pr_number")
    computed_at = metadata.get("computed_at", "")
    try:
        computed_label = datetime.fromisoformat(computed_at).strftime("%b %d, %Y %H:%M")
    except ValueError:
        computed_label = computed_at or "unknown"

    # ── Compact header ───────────────────────────────────────────────────
    col_h1, col_h2 = st.columns([3, 2])
    with col_h1:
        st.markdown(f"## {owner}/{repository}")
        st.caption(f"PR #{pr_number}" if pr_number is not None else "Repository sample score")
    with col_h2:
        st.caption(f"computed {computed_label} · prolice v{metadata.get('prolice_version', '?')}")

    df = _score_frame(score)
    if df.empty:
        st.warning("The selected report holds no metrics.")
        return

    counts = df[~df["is_ratio"]]
    ratios = df[df["is_ratio"]]

    # ── Side-by-side: table (left) + chart (right) ──────────────────────
    col_table, col_chart = st.columns([2, 3])

    with col_table:
        st.markdown("**Metrics**")
        display_df = df[["Metric", "Value", "is_ratio"]].copy()
        display_df["Value"] = display_df.apply(
            lambda row: _format_value(row["Value"], row["is_ratio"]), axis=1
        )
        display_df = display_df.drop(columns="is_ratio").reset_index(drop=True)
        display_df.index = display_df.index + 1
        st.dataframe(display_df, use_container_width=True)
        if NET_TEST_LINES in score:
            st.caption(
                f"Net added lines: {score[NET_TEST_LINES]} test, "
                f"{score.get(NET_NON_TEST_LINES, 0)} non-test"
            )

    with col_chart:
        st.markdown("**Count metrics**")
        fig = go.Figure()
        fig.add_trace(go.Bar(
            x=counts["Metric"],
            y=counts["Value"],
            marker_color="#4ECDC4",
        ))
        fig.update_layout(
            yaxis_title="Value",
            margin=dict(t=10, b=40, l=50, r=10),
            height=320,
        )
        st.plotly_chart(fig, use_container_width=True)

    # ── Ratio gauges ─────────────────────────────────────────────────────
    if not ratios.empty:
        st.markdown("**Ratios**")
        for col, (_, row) in zip(st.columns(len(ratios)), ratios.iterrows()):
            with col:
                gauge = go.Figure(go.Indicator(
                    mode="gauge+number",
                    value=row["Value"],
                    number={"valueformat": ".2f"},
                    title={"text": row["Metric"]},
                    gauge={"bar": {"color": "#FF6B6B"}},
                ))
                gauge.update_layout(margin=dict(t=40, b=10, l=20, r=20), height=220)
                st.plotly_chart(gauge, use_container_width=True)

    # ── Legends ──────────────────────────────────────────────────────────
    with st.expander("What the metrics mean"):
        for _, row in df.iterrows():
            st.markdown(f"**{row['Metric']}**: {row['Legend']}")


if __name__ == "__main__":
    main()
