"""Read an aggregate curve at a target false-negative rate.

The aggregate FNR curve is used as the independent variable: the
quantile grid (to recover the score cutoff) and the aggregate precision
curve are interpolated piecewise-linearly against it.

Knot construction:
  1. walk the grid from the highest cutoff down, so FNR ascends
  2. stable-sort by FNR
  3. resolve runs of equal FNR with the tie policy
     ("collapse" keeps the first knot of the run, i.e. the highest
     cutoff reaching that FNR; "strict" rejects the curve)

Out-of-range queries follow the boundary policy ("clamp", "nan",
"anchor"); see ``uqcurves.evaluation.policy``.
"""

from __future__ import annotations

import logging

import numpy as np

from uqcurves.errors import InterpolationFailure
from uqcurves.evaluation.policy import DEFAULT_POLICY, EnginePolicy

logger = logging.getLogger(__name__)


def build_knots(
    fnr_curve: np.ndarray,
    values: np.ndarray,
    ties: str = "collapse",
) -> tuple[np.ndarray, np.ndarray]:
    """Turn a grid-aligned (FNR, value) pair into strictly ascending knots.

    Raises:
        InterpolationFailure: On length mismatch, non-finite FNR values,
            duplicates under the strict tie policy, or fewer than two
            distinct FNR values.
    """
    fnr = np.asarray(fnr_curve, dtype=np.float64)[::-1]
    vals = np.asarray(values, dtype=np.float64)[::-1]

    if fnr.shape != vals.shape:
        raise InterpolationFailure(
            f"FNR curve and value curve differ in shape: {fnr.shape} vs {vals.shape}"
        )
    if not np.all(np.isfinite(fnr)):
        raise InterpolationFailure("FNR curve contains non-finite values")

    order = np.argsort(fnr, kind="stable")
    fnr = fnr[order]
    vals = vals[order]

    repeated = np.diff(fnr) == 0
    if repeated.any():
        if ties == "strict":
            raise InterpolationFailure(
                f"FNR curve has {int(repeated.sum())} duplicate x-coordinate(s)"
            )
        keep = np.concatenate(([True], ~repeated))
        fnr = fnr[keep]
        vals = vals[keep]

    if fnr.shape[0] < 2:
        raise InterpolationFailure(
            "FNR curve has fewer than 2 distinct values; cannot interpolate"
        )
    return fnr, vals


def _with_anchors(
    fnr: np.ndarray,
    vals: np.ndarray,
    last_grid_value: float,
) -> tuple[np.ndarray, np.ndarray]:
    if fnr[0] > 0.0:
        fnr = np.concatenate(([0.0], fnr))
        vals = np.concatenate(([last_grid_value], vals))
    if fnr[-1] < 1.0:
        fnr = np.concatenate((fnr, [1.0]))
        vals = np.concatenate((vals, [1.0]))
    return fnr, vals


def interpolate_at(
    fnr_curve: np.ndarray,
    values: np.ndarray,
    q: float,
    policy: EnginePolicy = DEFAULT_POLICY,
) -> float:
    """Interpolate *values* at FNR == *q*.

    Args:
        fnr_curve: Aggregate FNR curve aligned to the quantile grid.
        values: Companion curve aligned to the same grid.
        q: Target false-negative rate.
        policy: Boundary and tie policies.

    Returns:
        The interpolated value; NaN for out-of-range queries under the
        "nan" boundary policy.

    Raises:
        InterpolationFailure: If the FNR curve is not a usable domain or
            *q* is not finite.
    """
    if not np.isfinite(q):
        raise InterpolationFailure(f"Target FNR must be finite, got {q}")

    fnr, vals = build_knots(fnr_curve, values, policy.ties)

    if policy.boundary == "anchor":
        fnr, vals = _with_anchors(fnr, vals, float(np.asarray(values)[-1]))
    elif policy.boundary == "nan" and (q < fnr[0] or q > fnr[-1]):
        logger.debug(
            "Target FNR %.4f outside curve range [%.4f, %.4f]; returning NaN",
            q, fnr[0], fnr[-1],
        )
        return float("nan")

    # np.interp clamps to the end values outside [fnr[0], fnr[-1]]
    return float(np.interp(q, fnr, vals))


def robust_point(
    fnr_agg: np.ndarray,
    precision_agg: np.ndarray,
    quantiles: np.ndarray,
    q: float,
    policy: EnginePolicy = DEFAULT_POLICY,
) -> tuple[float, float]:
    """Return (score cutoff, precision) at target FNR *q*."""
    threshold = interpolate_at(fnr_agg, quantiles, q, policy)
    precision = interpolate_at(fnr_agg, precision_agg, q, policy)
    return threshold, precision
