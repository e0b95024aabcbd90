from __future__ import annotations

from pathlib import Path
from typing import Any

import plotly.colors
import plotly.graph_objects as go
from plotly.subplots import make_subplots
from rich.console import Console

from compiler_bench.core.storage import MEMORY_HEADER, ONGOING_HEADER, read_ongoing_csv


def build_html_report(*, csv_path: Path, out_html_path: Path, console: Console) -> dict[str, Any]:
    rows = list(read_ongoing_csv(csv_path))
    if not rows:
        raise ValueError("No records found")

    label_col, size_col, time_col = ONGOING_HEADER
    has_memory = MEMORY_HEADER in rows[0]

    # label -> {num_functions -> (seconds, kb)}; failed trials stay None and show as gaps.
    series: dict[str, dict[int, tuple[float | None, float | None]]] = {}
    for r in rows:
        try:
            n = int(r[size_col])
        except (KeyError, ValueError):
            console.print(f"Skipping malformed row: {r}", markup=False)
            continue
        seconds = _to_float(r.get(time_col))
        kb = _to_float(r.get(MEMORY_HEADER)) if has_memory else None
        series.setdefault(r.get(label_col, "?"), {})[n] = (seconds, kb)

    palette = (
        plotly.colors.qualitative.Plotly
        + plotly.colors.qualitative.Safe
        + plotly.colors.qualitative.D3
    )

    n_cols = 2 if has_memory else 1
    titles = ("Compile time (s)", "Peak memory (MB)") if has_memory else ("Compile time (s)",)
    fig = make_subplots(rows=1, cols=n_cols, subplot_titles=titles, shared_yaxes=False)

    for idx, (label, points) in enumerate(series.items()):
        color = palette[idx % len(palette)]
        sizes = sorted(points)
        seconds = [points[n][0] for n in sizes]

        fig.add_trace(
            go.Scatter(
                x=sizes,
                y=seconds,
                mode="lines+markers",
                name=label,
                legendgroup=label,
                line=dict(color=color),
                marker=dict(color=color),
                hovertemplate="%{fullData.name}<br>Functions=%{x}<br>Time=%{y:.2f} s<extra></extra>",
            ),
            row=1,
            col=1,
        )

        if has_memory:
            mem_mb = [None if points[n][1] is None else points[n][1] / 1024.0 for n in sizes]
            fig.add_trace(
                go.Scatter(
                    x=sizes,
                    y=mem_mb,
                    mode="lines+markers",
                    name=label,
                    legendgroup=label,
                    showlegend=False,
                    line=dict(color=color, dash="dot"),
                    marker=dict(color=color),
                    hovertemplate="%{fullData.name}<br>Functions=%{x}<br>Memory=%{y:.1f} MB<extra></extra>",
                ),
                row=1,
                col=2,
            )

    fig.update_layout(
        title=f"compiler-bench report: {csv_path.name}",
        template="plotly_white",
        height=620,
        font=dict(size=14),
        legend=dict(orientation="h", yanchor="bottom", y=1.05, xanchor="left", x=0),
        margin=dict(l=60, r=20, t=120, b=60),
        hovermode="x unified",
    )
    for c in range(1, n_cols + 1):
        fig.update_xaxes(title_text="Number of functions", row=1, col=c)
        fig.update_yaxes(rangemode="tozero", row=1, col=c)

    n_failed = sum(1 for r in rows if not (r.get(time_col) or "").strip())
    html = "".join(
        [
            "<!doctype html>",
            "<html><head><meta charset='utf-8' />",
            f"<title>compiler-bench report: {csv_path.name}</title>",
            "<meta name='viewport' content='width=device-width, initial-scale=1' />",
            "<style>body{max-width:1200px;margin:0 auto;padding:16px;font-family:system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial,sans-serif}</style>",
            "</head><body>",
            "<h1 style='margin:0 0 12px 0'>compiler-bench report</h1>",
            f"<div style='color:#444;margin:0 0 18px 0'>Source: {csv_path.name} &nbsp;·&nbsp; Trials: {len(rows)} &nbsp;·&nbsp; Failed or skipped: {n_failed}</div>",
            fig.to_html(full_html=False, include_plotlyjs="cdn"),
            "</body></html>",
        ]
    )
    out_html_path.write_text(html, encoding="utf-8")

    return {"n_records": len(rows), "n_series": len(series)}


def _to_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        return None
