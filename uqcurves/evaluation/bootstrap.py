"""Bootstrap resampling of aligned (score, quality) pairs.

Provides:
- resample_indices(replicate, n) -- the index draw of one replicate
- bootstrap_sample(x, y, replicate) -- one resample with replacement,
  seeded only by the replicate index
- bootstrap_curves(x, y, quality_thresholds, quantiles, n_bootstrap, policy)
  -- the map step: precision/FNR curves for every replicate and every
  quality threshold

Replicate ``i`` draws the same indices no matter which quality threshold
or worker process asks for it, so a resample is computed once and
evaluated at every quality threshold.
"""

from __future__ import annotations

import numpy as np

from uqcurves.errors import EmptySample, LengthMismatch
from uqcurves.evaluation.metrics import compute_precision_fnr
from uqcurves.evaluation.policy import DEFAULT_POLICY, EnginePolicy
from uqcurves.utils.reproducibility import replicate_rng


def _check_pair(x: np.ndarray, y: np.ndarray) -> int:
    if x.shape[0] != y.shape[0]:
        raise LengthMismatch(
            f"x and y must have the same length, got {x.shape[0]} and {y.shape[0]}"
        )
    if x.shape[0] == 0:
        raise EmptySample("Cannot resample an empty sequence")
    return int(x.shape[0])


def resample_indices(replicate: int, n: int) -> np.ndarray:
    """Return the n resample indices of replicate *replicate*.

    Each index is ``floor(u * n)`` for a uniform double ``u`` in [0, 1).
    ``Generator.random`` is the bit stream scaled by 2**-53, so the
    indices change only if the PCG64 stream itself changes; the test
    suite pins replicate 0 to catch that.
    """
    u = replicate_rng(replicate).random(n)
    # u * n can round up to n for u just below 1
    return np.minimum((u * n).astype(np.int64), n - 1)


def bootstrap_sample(
    x: np.ndarray,
    y: np.ndarray,
    replicate: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Draw one bootstrap resample of the pair (x, y).

    Args:
        x: Scores, shape (n,).
        y: Quality values, shape (n,).
        replicate: Replicate index; seeds the generator.

    Returns:
        Tuple of (xb, yb), each of shape (n,), built from the same n
        indices drawn uniformly from [0, n) with replacement.

    Raises:
        EmptySample: If n == 0.
        LengthMismatch: If x and y differ in length.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    n = _check_pair(x, y)

    idx = resample_indices(replicate, n)
    return x[idx], y[idx]


def bootstrap_curves(
    x: np.ndarray,
    y: np.ndarray,
    quality_thresholds: np.ndarray,
    quantiles: np.ndarray,
    n_bootstrap: int,
    policy: EnginePolicy = DEFAULT_POLICY,
) -> tuple[np.ndarray, np.ndarray]:
    """Evaluate precision and FNR curves over ``n_bootstrap`` replicates.

    Args:
        x: Scores, shape (n,).
        y: Quality values, shape (n,).
        quality_thresholds: Quality acceptance cutoffs, shape (k,).
        quantiles: Candidate score cutoffs, shape (m,).
        n_bootstrap: Number of replicates (indices 0 .. n_bootstrap-1).
        policy: Edge-case policy forwarded to the confusion counts.

    Returns:
        Tuple of (precision, fnr), each of shape (n_bootstrap, k, m).
    """
    if n_bootstrap < 1:
        raise ValueError(f"n_bootstrap must be >= 1, got {n_bootstrap}")

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    _check_pair(x, y)
    quality_thresholds = np.asarray(quality_thresholds, dtype=np.float64)
    quantiles = np.asarray(quantiles, dtype=np.float64)

    shape = (n_bootstrap, quality_thresholds.shape[0], quantiles.shape[0])
    precision = np.empty(shape, dtype=np.float64)
    fnr = np.empty(shape, dtype=np.float64)

    for i in range(n_bootstrap):
        xb, yb = bootstrap_sample(x, y, i)
        for j, thy in enumerate(quality_thresholds):
            precision[i, j], fnr[i, j] = compute_precision_fnr(
                xb, yb, float(thy), quantiles, policy
            )

    return precision, fnr
