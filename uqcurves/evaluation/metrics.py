"""Per-threshold confusion counts for one bootstrap resample.

Provides:
- compute_precision_fnr(xb, yb, thy, quantiles, policy) -- precision and
  FNR curves aligned to the quantile grid
- is_degenerate_curve(values) -- True when a curve is constant at 1.0

Both counts are fractions of the resample size, so each curve is
non-increasing along an ascending quantile grid: raising the score
cutoff can only remove accepted samples.
"""

from __future__ import annotations

import numpy as np

from uqcurves.evaluation.policy import DEFAULT_POLICY, EnginePolicy


def compute_precision_fnr(
    xb: np.ndarray,
    yb: np.ndarray,
    thy: float,
    quantiles: np.ndarray,
    policy: EnginePolicy = DEFAULT_POLICY,
) -> tuple[np.ndarray, np.ndarray]:
    """Compute precision and false-negative-rate curves for one resample.

    For every candidate score cutoff ``th`` in *quantiles*:
      precision[th] = #(xb >= th and yb >= thy) / n
      fnr[th]       = #(xb >= th and yb <  thy) / n

    When no sample clears the quality threshold the whole curve takes the
    policy's saturation values instead.

    Args:
        xb: Resampled scores, shape (n,).
        yb: Resampled quality values, shape (n,).
        thy: Quality acceptance threshold.
        quantiles: Candidate score cutoffs, shape (m,).
        policy: Edge-case policy (saturation, perfect-sample exclusion).

    Returns:
        Tuple of (precision, fnr), each float64 of shape (m,).
    """
    xb = np.asarray(xb, dtype=np.float64)
    yb = np.asarray(yb, dtype=np.float64)
    quantiles = np.asarray(quantiles, dtype=np.float64)
    n = yb.shape[0]
    m = quantiles.shape[0]

    counted = yb < 1.0 if policy.exclude_perfect else np.ones(n, dtype=bool)
    positive = (yb >= thy) & counted
    negative = (yb < thy) & counted

    if not positive.any():
        sat_precision, sat_fnr = policy.saturation_values
        return np.full(m, sat_precision), np.full(m, sat_fnr)

    # (m, n) acceptance mask: row j holds xb >= quantiles[j]
    accepted = xb[np.newaxis, :] >= quantiles[:, np.newaxis]
    tp = np.count_nonzero(accepted & positive, axis=1)
    fn = np.count_nonzero(accepted & negative, axis=1)

    return tp / n, fn / n


def is_degenerate_curve(values: np.ndarray) -> bool:
    """Return True when every entry is exactly 1.0."""
    arr = np.asarray(values, dtype=np.float64)
    return arr.size > 0 and bool(np.all(arr == 1.0))
