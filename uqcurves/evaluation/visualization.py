"""Static figures of persisted robust curves.

Provides matplotlib/seaborn summaries of ``TraceRow`` collections for
reports. All functions save to disk and never call plt.show() (Agg
backend is set at module level).
"""

from __future__ import annotations

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend -- must precede pyplot import

from collections.abc import Sequence
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from uqcurves.data.trace_store import TraceRow

METHOD_COLORS: dict[str, str] = {
    "TTA": "#2196F3",
    "MCd": "#FF9800",
    "ckp-DE": "#4CAF50",
    "DE": "#F44336",
    "OOD": "#9C27B0",
}


def _row_label(row: TraceRow) -> str:
    parts = [row.method, f"{row.drop_level:.1f}", row.metric]
    if row.aggregation:
        parts.append(row.aggregation.lstrip("_"))
    if row.metric_aggregation:
        parts.append(row.metric_aggregation)
    return "|".join(parts)


def plot_robust_curves(
    rows: Sequence[TraceRow],
    output_path: str | Path,
    title: str | None = None,
) -> None:
    """Plot precision at target FNR against the quality threshold.

    One line per row, colored by method. Missing points (NaN) leave gaps.

    Args:
        rows: Trace rows, typically one dataset and one target FNR.
        output_path: File path to save the PNG.
        title: Optional figure title.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(figsize=(9, 6))

    seen_methods: set[str] = set()
    for row in rows:
        color = METHOD_COLORS.get(row.method, "gray")
        label = row.method if row.method not in seen_methods else None
        seen_methods.add(row.method)
        ax.plot(row.xs, row.ys, color=color, linewidth=1.2, alpha=0.6, label=label)

    ax.set_xlabel("Quality threshold", fontsize=12)
    ax.set_ylabel("Precision at target FNR", fontsize=12)
    ax.set_title(title or "Robust Operating Curves", fontsize=14)
    if seen_methods:
        ax.legend(loc="lower left", fontsize=10)
    ax.grid(alpha=0.3)
    ax.set_ylim([0.0, 1.05])

    fig.tight_layout()
    fig.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)


def plot_precision_heatmap(
    rows: Sequence[TraceRow],
    output_path: str | Path,
    title: str | None = None,
) -> None:
    """Heatmap of precision with one row per trace and one column per quality threshold.

    Args:
        rows: Trace rows sharing the same quality-threshold grid.
        output_path: File path to save the PNG.
        title: Optional figure title.

    Raises:
        ValueError: If *rows* is empty or the rows use different grids.
    """
    if not rows:
        raise ValueError("No trace rows to plot")
    grid = np.asarray(rows[0].xs)
    if any(not np.array_equal(np.asarray(r.xs), grid) for r in rows):
        raise ValueError("All rows must share the same quality-threshold grid")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    frame = pd.DataFrame(
        [np.asarray(r.ys) for r in rows],
        index=[f"{_row_label(r)} @ {r.fnr:.2f}" for r in rows],
        columns=[f"{v:.2f}" for v in grid],
    )

    height = max(4.0, 0.25 * len(rows) + 2.0)
    fig, ax = plt.subplots(figsize=(max(8.0, 0.4 * len(grid) + 4.0), height))
    sns.heatmap(
        frame,
        cmap="viridis",
        vmin=0,
        vmax=1,
        linewidths=0.2,
        cbar_kws={"shrink": 0.8, "label": "Precision"},
        ax=ax,
    )
    ax.set_xlabel("Quality threshold", fontsize=12)
    ax.set_ylabel("")
    ax.set_title(title or "Precision at Target FNR", fontsize=14)

    fig.tight_layout()
    fig.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
