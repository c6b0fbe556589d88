#!/usr/bin/env python3
"""Compute robust operating curves for every dataset and combination.

For each dataset in the config:
  1. load the needed metric columns (SQLite cache, else JSON export)
  2. run the bootstrap engine for every (combination, target FNR)
  3. persist one trace row per curve via a single writer thread

Outputs per dataset (under paths.results_dir):
  - {dataset}_traces.db           trace_data table (robust curves)
  - {dataset}_batch_report.json   counts and skipped/failed combinations

Usage:
    python scripts/compute_robust.py --config configs/default.yaml
    python scripts/compute_robust.py --datasets Brats_last_final --n-bootstrap 200
    python scripts/compute_robust.py --override bootstrap.aggregation=percentile engine.boundary=nan

Ctrl-C once to stop scheduling new combinations; finished curves are
still committed.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from uqcurves.data.combinations import build_grids, combinations_from_config, needed_columns
from uqcurves.data.loader import load_dataset
from uqcurves.data.trace_store import TraceWriter
from uqcurves.errors import ConfigurationError, DatasetUnreadable
from uqcurves.orchestrator import RunSettings, make_jobs, run_batch
from uqcurves.utils.config import load_config
from uqcurves.utils.logging import setup_logging
from uqcurves.utils.reproducibility import set_seed

logger = logging.getLogger("uqcurves.compute_robust")


def _resolve(base: Path, pattern: str, dataset: str, pref: str) -> Path:
    return base / pattern.format(dataset=dataset, pref=pref)


def _install_cancel_handler(cancel_event: threading.Event) -> None:
    def _handler(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning("Cancellation requested; finishing running combinations")
        cancel_event.set()

    signal.signal(signal.SIGINT, _handler)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Compute bootstrap robust operating curves."
    )
    parser.add_argument(
        "--config",
        type=str,
        default="configs/default.yaml",
        help="Path to YAML config file (default: configs/default.yaml)",
    )
    parser.add_argument(
        "--override",
        nargs="*",
        default=[],
        help="Config overrides in key.subkey=value format",
    )
    parser.add_argument(
        "--datasets",
        type=str,
        default=None,
        help="Comma-separated dataset names (default: config datasets)",
    )
    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Worker processes (default: config runtime.max_workers)",
    )
    parser.add_argument(
        "--n-bootstrap",
        type=int,
        default=None,
        help="Override bootstrap.n_bootstrap",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar",
    )
    args = parser.parse_args()

    cfg = load_config(args.config, overrides=args.override)
    if args.n_bootstrap is not None:
        cfg["bootstrap"]["n_bootstrap"] = args.n_bootstrap
    if args.max_workers is not None:
        cfg["runtime"]["max_workers"] = args.max_workers

    setup_logging(config=cfg)
    set_seed(cfg.get("seed", 42))

    datasets = args.datasets.split(",") if args.datasets else list(cfg["datasets"])
    if not datasets:
        logger.error("No datasets configured")
        return 2

    # Configuration errors stop the run before any data is loaded
    try:
        grids = build_grids(cfg)
        settings = RunSettings.from_config(cfg, grids)
        settings.validate()
        combinations = combinations_from_config(cfg)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    pref = str(cfg["pref"])
    paths = cfg["paths"]
    data_dir = PROJECT_ROOT / paths["data_dir"]
    results_dir = PROJECT_ROOT / paths["results_dir"]
    results_dir.mkdir(parents=True, exist_ok=True)

    logger.info(
        "%d datasets x %d combinations x %d target FNRs; %d quality thresholds, %d quantiles",
        len(datasets),
        len(combinations),
        len(settings.target_fnrs),
        len(settings.quality_thresholds),
        len(settings.quantiles),
    )
    logger.info("Engine policy: %s", settings.policy)

    cancel_event = threading.Event()
    _install_cancel_handler(cancel_event)

    unreadable: list[str] = []
    for dataset in datasets:
        if cancel_event.is_set():
            logger.warning("Cancelled; not starting dataset %s", dataset)
            break

        logger.info("=" * 70)
        logger.info("DATASET: %s", dataset)
        logger.info("=" * 70)

        json_path = _resolve(data_dir, paths["json_pattern"], dataset, pref)
        cache_path = _resolve(data_dir, paths["cache_pattern"], dataset, pref)
        traces_path = _resolve(results_dir, paths["traces_pattern"], dataset, pref)

        try:
            table = load_dataset(json_path, cache_path, needed_columns(combinations, pref))
        except DatasetUnreadable as exc:
            logger.error("Skipping dataset %s: %s", dataset, exc)
            unreadable.append(dataset)
            continue

        jobs = make_jobs(dataset, combinations, pref, settings.inverted_scale_markers)

        with TraceWriter(traces_path) as writer:
            report = run_batch(
                table,
                jobs,
                settings,
                sink=writer,
                max_workers=cfg["runtime"]["max_workers"],
                job_timeout_s=cfg["runtime"]["job_timeout_s"],
                cancel_event=cancel_event,
                show_progress=not args.no_progress,
            )
            # One transaction per dataset
            writer.flush()
            logger.info("Saved %d trace rows: %s", writer.rows_written, traces_path)

        report_path = results_dir / f"{dataset}_batch_report.json"
        with open(report_path, "w") as f:
            json.dump(report.to_dict(), f, indent=2)
        logger.info("Saved batch report: %s", report_path)

    if unreadable:
        logger.error("Unreadable datasets: %s", ", ".join(unreadable))
        return 1

    logger.info("Completed pipeline.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
