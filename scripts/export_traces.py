#!/usr/bin/env python3
"""Export persisted robust curves to JSON and summary figures.

Reads a trace database written by compute_robust.py and writes:
  - precomputed.json           list of trace rows (NaN -> null)
  - robust_curves_fnr{q}.png   one figure per target FNR (optional)
  - precision_heatmap.png      precision per trace and quality threshold (optional)

Usage:
    python scripts/export_traces.py --traces results/Brats_last_final_traces.db
    python scripts/export_traces.py --traces results/Brats_last_final_traces.db --method MCd --plots
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections import defaultdict
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from uqcurves.data.trace_store import TraceRow, load_traces
from uqcurves.utils.logging import setup_logging

logger = logging.getLogger("uqcurves.export_traces")


def main() -> int:
    parser = argparse.ArgumentParser(description="Export robust-curve traces.")
    parser.add_argument("--traces", type=str, required=True, help="Path to a *_traces.db file")
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Output directory (default: next to the trace database)",
    )
    parser.add_argument("--method", type=str, default=None, help="Only export this method")
    parser.add_argument("--metric", type=str, default=None, help="Only export this metric")
    parser.add_argument("--plots", action="store_true", help="Also write PNG figures")
    args = parser.parse_args()

    setup_logging()

    traces_path = Path(args.traces)
    if not traces_path.exists():
        logger.error("Trace database not found: %s", traces_path)
        return 1
    output_dir = Path(args.output_dir) if args.output_dir else traces_path.parent
    output_dir.mkdir(parents=True, exist_ok=True)

    filters = {}
    if args.method:
        filters["method"] = args.method
    if args.metric:
        filters["metric"] = args.metric
    rows = load_traces(traces_path, **filters)
    logger.info("Loaded %d trace rows from %s", len(rows), traces_path)

    json_path = output_dir / "precomputed.json"
    with open(json_path, "w") as f:
        json.dump([row.to_dict() for row in rows], f, indent=2)
    logger.info("Saved %s", json_path)

    if args.plots and rows:
        # Deferred: matplotlib is only needed for figures
        from uqcurves.evaluation.visualization import plot_precision_heatmap, plot_robust_curves

        by_fnr: dict[float, list[TraceRow]] = defaultdict(list)
        for row in rows:
            by_fnr[row.fnr].append(row)
        for fnr, fnr_rows in sorted(by_fnr.items()):
            fig_path = output_dir / f"robust_curves_fnr{fnr:.2f}.png"
            plot_robust_curves(fnr_rows, fig_path, title=f"Robust curves at FNR = {fnr:.2f}")
            logger.info("Saved %s", fig_path)

        heatmap_path = output_dir / "precision_heatmap.png"
        plot_precision_heatmap(rows, heatmap_path)
        logger.info("Saved %s", heatmap_path)

    return 0


if __name__ == "__main__":
    sys.exit(main())
