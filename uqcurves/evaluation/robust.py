"""Robust operating curve: precision at a target FNR, per quality threshold.

Provides:
- precision_at_robust(x, y, quality_thresholds, quantiles, n_bootstrap,
  aggregation_mode, inverted_scale, target_fnr, policy)

For each quality threshold the chain is

    resample x n_bootstrap -> confusion counts -> aggregate -> interpolate

and the per-threshold results compose into one robust curve. A point
whose FNR curve cannot be interpolated becomes (NaN, NaN); the rest of
the curve is still computed.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from uqcurves.errors import InterpolationFailure
from uqcurves.evaluation.aggregation import (
    aggregate_curves,
    confidence_levels,
    validate_aggregation_mode,
)
from uqcurves.evaluation.bootstrap import bootstrap_curves
from uqcurves.evaluation.interpolation import robust_point
from uqcurves.evaluation.policy import DEFAULT_POLICY, EnginePolicy

logger = logging.getLogger(__name__)


def precision_at_robust(
    x: Sequence[float] | np.ndarray,
    y: Sequence[float] | np.ndarray,
    quality_thresholds: Sequence[float] | np.ndarray,
    quantiles: Sequence[float] | np.ndarray,
    n_bootstrap: int,
    aggregation_mode: str,
    inverted_scale: bool,
    target_fnr: float,
    policy: EnginePolicy | None = None,
) -> tuple[np.ndarray, np.ndarray]:
    """Compute the robust curve for one (x, y) pair and one target FNR.

    Args:
        x: Confidence/uncertainty-derived scores, shape (n,).
        y: Quality scores in [0, 1], shape (n,).
        quality_thresholds: Quality acceptance cutoffs, shape (k,).
        quantiles: Candidate score cutoffs, shape (m,).
        n_bootstrap: Number of bootstrap replicates.
        aggregation_mode: ``"mean"`` or ``"percentile"``.
        inverted_scale: True for metrics where lower is better; moves the
            FNR percentile from 0.95 to 0.05.
        target_fnr: False-negative rate to read the curves at.
        policy: Edge-case policy (defaults to ``DEFAULT_POLICY``).

    Returns:
        Tuple of (precision, thresholds), each of shape (k,) and aligned
        to *quality_thresholds*.

    Raises:
        EmptySample: If x is empty.
        LengthMismatch: If x and y differ in length.
        UnknownAggregationMode: If *aggregation_mode* is not supported.
    """
    policy = policy or DEFAULT_POLICY
    validate_aggregation_mode(aggregation_mode)

    quality_thresholds = np.asarray(quality_thresholds, dtype=np.float64)
    quantiles = np.asarray(quantiles, dtype=np.float64)
    precision_p, fnr_p = confidence_levels(inverted_scale)

    precision_curves, fnr_curves = bootstrap_curves(
        x, y, quality_thresholds, quantiles, n_bootstrap, policy
    )

    k = quality_thresholds.shape[0]
    all_precision = np.full(k, np.nan)
    all_thresholds = np.full(k, np.nan)

    for j, thy in enumerate(quality_thresholds):
        precision_agg = aggregate_curves(precision_curves[:, j], aggregation_mode, precision_p)
        fnr_agg = aggregate_curves(fnr_curves[:, j], aggregation_mode, fnr_p)

        try:
            all_thresholds[j], all_precision[j] = robust_point(
                fnr_agg, precision_agg, quantiles, target_fnr, policy
            )
        except InterpolationFailure as exc:
            logger.debug(
                "Missing point at quality threshold %.3f (target FNR %.3f): %s",
                thy, target_fnr, exc,
            )

    return all_precision, all_thresholds
