"""Bootstrap statistic engine: resampling, counting, aggregation, interpolation."""

from uqcurves.evaluation.aggregation import (
    aggregate_curves,
    confidence_levels,
    validate_aggregation_mode,
)
from uqcurves.evaluation.bootstrap import bootstrap_curves, bootstrap_sample, resample_indices
from uqcurves.evaluation.interpolation import interpolate_at, robust_point
from uqcurves.evaluation.metrics import compute_precision_fnr, is_degenerate_curve
from uqcurves.evaluation.policy import DEFAULT_POLICY, EnginePolicy
from uqcurves.evaluation.robust import precision_at_robust

__all__ = [
    "DEFAULT_POLICY",
    "EnginePolicy",
    "aggregate_curves",
    "bootstrap_curves",
    "bootstrap_sample",
    "compute_precision_fnr",
    "confidence_levels",
    "interpolate_at",
    "is_degenerate_curve",
    "precision_at_robust",
    "resample_indices",
    "robust_point",
    "validate_aggregation_mode",
]
