"""Reduce per-replicate curves to one aggregate curve.

Provides:
- aggregate_curves(curves, mode, percentile) -- elementwise mean or
  interpolated order statistic across replicates (axis 0)
- validate_aggregation_mode(mode) -- startup check
- confidence_levels(inverted_scale) -- percentile pair for the
  (precision, FNR) curves
"""

from __future__ import annotations

import numpy as np

from uqcurves.errors import UnknownAggregationMode

AGGREGATION_MODES = ("mean", "percentile")

# Pessimistic side of the FNR distribution; flipped for metrics where a
# lower value is better.
DEFAULT_FNR_CONFIDENCE = 0.95
INVERTED_FNR_CONFIDENCE = 0.05


def validate_aggregation_mode(mode: str) -> str:
    """Return *mode* unchanged or raise ``UnknownAggregationMode``."""
    if mode not in AGGREGATION_MODES:
        raise UnknownAggregationMode(mode)
    return mode


def confidence_levels(inverted_scale: bool) -> tuple[float, float]:
    """Return (precision_percentile, fnr_percentile)."""
    conf = INVERTED_FNR_CONFIDENCE if inverted_scale else DEFAULT_FNR_CONFIDENCE
    return 1.0 - conf, conf


def _interpolated_order_statistic(curves: np.ndarray, percentile: float) -> np.ndarray:
    k = curves.shape[0]
    if k == 1:
        return curves[0].copy()

    ordered = np.sort(curves, axis=0)
    h = (k - 1) * min(max(percentile, 0.0), 1.0)
    i0 = int(np.floor(h))
    i1 = int(np.ceil(h))
    frac = h - i0
    return (1.0 - frac) * ordered[i0] + frac * ordered[i1]


def aggregate_curves(
    curves: np.ndarray,
    mode: str,
    percentile: float = 0.5,
) -> np.ndarray:
    """Aggregate bootstrap curves elementwise across replicates.

    Args:
        curves: Replicate curves stacked on axis 0, shape (k, ...).
        mode: ``"mean"`` or ``"percentile"``.
        percentile: Quantile in [0, 1] for ``"percentile"`` mode; values
            outside the range are clamped. Ignored for ``"mean"``.

    Returns:
        Array of shape ``curves.shape[1:]``.

    Raises:
        UnknownAggregationMode: For any other *mode*.
        ValueError: If *curves* holds no replicate.
    """
    validate_aggregation_mode(mode)
    curves = np.asarray(curves, dtype=np.float64)
    if curves.ndim == 0 or curves.shape[0] == 0:
        raise ValueError("At least one replicate curve is required")

    if mode == "mean":
        return curves.mean(axis=0)
    return _interpolated_order_statistic(curves, percentile)
