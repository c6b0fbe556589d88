"""Parameter grids, method combinations and their column names.

Provides pure functions for:
- Building the quality-threshold, quantile and target-FNR grids from config
- Enumerating (method, drop level, metric, aggregation, metric aggregation)
  combinations
- Resolving a combination to its (x, y) column names in a metrics table
- Flagging metrics whose scale is inverted (lower is better)

This is the only module that knows the column naming scheme; the engine
only ever receives resolved numeric sequences.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from uqcurves.errors import ConfigurationError, UnknownMethod

METHODS: tuple[str, ...] = ("TTA", "MCd", "ckp-DE", "DE", "OOD")

DROP_LEVELS: dict[str, tuple[float, ...]] = {
    "MCd": (0.1, 0.2, 0.3, 0.4, 0.5),
    "TTA": (0.0, 0.1, 0.2, 0.3, 0.4, 0.5),
    "OOD": (0.0, 0.1, 0.2, 0.3, 0.4, 0.5),
}
DEFAULT_DROP_LEVELS: tuple[float, ...] = (0.0,)

METRICS: tuple[str, ...] = ("dice", "sdice")
AGGREGATIONS: tuple[str, ...] = ("", "_union", "_inter", "_consensus", "_logit")
METRIC_AGGREGATIONS: tuple[str, ...] = ("mean", "max", "min", "logitmean")


@dataclass(frozen=True)
class Combination:
    method: str
    drop_level: float
    metric: str
    aggregation: str
    metric_aggregation: str

    def label(self) -> str:
        """Short human-readable identifier used in logs and plots."""
        parts = [self.method, f"{self.drop_level:.1f}", self.metric]
        if self.aggregation:
            parts.append(self.aggregation.lstrip("_"))
        if self.metric_aggregation:
            parts.append(self.metric_aggregation)
        return "|".join(parts)


@dataclass(frozen=True)
class Grids:
    quality_thresholds: np.ndarray
    quantiles: np.ndarray
    target_fnrs: tuple[float, ...]


def linear_grid(start: float, step: float, count: int) -> np.ndarray:
    """Return ``[start + step * i for i in range(count)]`` as float64."""
    if count < 1:
        raise ConfigurationError(f"Grid count must be >= 1, got {count}")
    return start + step * np.arange(count, dtype=np.float64)


def _grid_from_entry(entry: Any, name: str) -> np.ndarray:
    # A grid is either an explicit list or a {start, step, count} mapping
    if isinstance(entry, dict):
        try:
            return linear_grid(float(entry["start"]), float(entry["step"]), int(entry["count"]))
        except KeyError as exc:
            raise ConfigurationError(f"Grid '{name}' is missing key {exc}") from exc
    if isinstance(entry, (list, tuple)) and entry:
        return np.asarray(entry, dtype=np.float64)
    raise ConfigurationError(f"Grid '{name}' must be a non-empty list or a start/step/count mapping")


def build_grids(cfg: dict[str, Any]) -> Grids:
    """Build the run grids from the ``grids`` config section.

    Raises:
        ConfigurationError: If a grid is malformed, a target FNR lies
            outside [0, 1], or the quantile grid is not ascending.
    """
    section = cfg.get("grids", {})
    quality = _grid_from_entry(section.get("quality_thresholds"), "quality_thresholds")
    quantiles = _grid_from_entry(section.get("quantiles"), "quantiles")
    target_fnrs = tuple(float(v) for v in _grid_from_entry(section.get("target_fnrs"), "target_fnrs"))

    if np.any(np.diff(quantiles) <= 0):
        raise ConfigurationError("Quantile grid must be strictly ascending")
    bad = [q for q in target_fnrs if not 0.0 <= q <= 1.0]
    if bad:
        raise ConfigurationError(f"Target FNRs must lie in [0, 1], got {bad}")

    return Grids(quality_thresholds=quality, quantiles=quantiles, target_fnrs=target_fnrs)


def build_combinations(
    methods: Iterable[str] = METHODS,
    metrics: Sequence[str] = METRICS,
    aggregations: Sequence[str] = AGGREGATIONS,
    metric_aggregations: Sequence[str] = METRIC_AGGREGATIONS,
) -> list[Combination]:
    """Enumerate every parameter combination for the given methods.

    OOD runs are not ensembles, so they only take the empty aggregation
    and metric aggregation.

    Raises:
        UnknownMethod: If a method has no column naming scheme.
    """
    combinations: list[Combination] = []
    for method in methods:
        if method not in METHODS:
            raise UnknownMethod(method)
        drop_levels = DROP_LEVELS.get(method, DEFAULT_DROP_LEVELS)
        if method == "OOD":
            aggs: Sequence[str] = ("",)
            met_aggs: Sequence[str] = ("",)
        else:
            aggs, met_aggs = aggregations, metric_aggregations

        for dl, metric, agg, met_agg in itertools.product(drop_levels, metrics, aggs, met_aggs):
            combinations.append(Combination(method, dl, metric, agg, met_agg))
    return combinations


def combinations_from_config(cfg: dict[str, Any]) -> list[Combination]:
    """Enumerate combinations using the ``combinations`` config section."""
    section = cfg.get("combinations", {})
    return build_combinations(
        methods=section.get("methods", METHODS),
        metrics=section.get("metrics", METRICS),
        aggregations=section.get("aggregations", AGGREGATIONS),
        metric_aggregations=section.get("metric_aggregations", METRIC_AGGREGATIONS),
    )


def make_xy_column_names(combination: Combination, pref: str) -> tuple[str, str]:
    """Resolve a combination to its (x_col, y_col) names.

    x is the paired uncertainty score, y the segmentation quality.
    """
    metric = combination.metric
    dl = f"{combination.drop_level:.1f}"
    agg = combination.aggregation
    met_agg = combination.metric_aggregation

    if combination.method == "MCd":
        return (
            f"tumor_paired{metric}MCd_{dl}_seg{agg}_{met_agg}_{pref}",
            f"tumor_{metric}_{dl}_seg{agg}_UQ_meanMC_{pref}",
        )
    if combination.method == "ckp-DE":
        return (
            f"tumor_paired{metric}DE_{dl}_seg{agg}_{met_agg}_{pref}",
            f"tumor_{metric}__UQ_meanDE_{dl}_seg{agg}_{pref}",
        )
    if combination.method == "DE":
        return (
            f"tumor_paired{metric}DE_{dl}_DE{agg}_{met_agg}_{pref}",
            f"tumor_{metric}__UQ_meanDE_{dl}_DE{agg}_{pref}",
        )
    if combination.method == "TTA":
        return (
            f"tumor_paired{metric}MCd_{dl}_flip_seg{agg}_{met_agg}_{pref}",
            f"tumor_{metric}_{dl}_flip_seg{agg}_UQ_meanMC_{pref}",
        )
    if combination.method == "OOD":
        return (
            f"tumor_{metric}_diff_2_{dl}_30",
            f"tumor_{metric}_{dl}_30",
        )
    raise UnknownMethod(combination.method)


def needed_columns(combinations: Iterable[Combination], pref: str) -> list[str]:
    """Unique x/y column names in first-seen order."""
    seen: dict[str, None] = {}
    for combo in combinations:
        x_col, y_col = make_xy_column_names(combo, pref)
        seen.setdefault(x_col, None)
        seen.setdefault(y_col, None)
    return list(seen)


def is_inverted_scale(metric: str, markers: Iterable[str] = ("adpl",)) -> bool:
    """True when the metric name contains one of the inverted-scale markers."""
    name = metric.lower()
    return any(marker.lower() in name for marker in markers)
