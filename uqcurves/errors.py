"""Error taxonomy for the robust-curve engine and its batch driver.

Every failure a single combination can hit derives from
``RobustCurveError`` so the orchestrator can isolate it with one
``except`` clause. Configuration errors are raised once, before any
work is fanned out to workers.
"""

from __future__ import annotations


class RobustCurveError(Exception):
    """Base class for all engine and batch errors."""


# ── Sampling ─────────────────────────────────────────────────────────


class SampleError(RobustCurveError):
    """Input sequences cannot be resampled."""


class EmptySample(SampleError):
    """Zero-length input. Fatal for the combination, not the process."""


class LengthMismatch(SampleError):
    """x and y sequences are not aligned."""


# ── Data access ──────────────────────────────────────────────────────


class MissingColumn(RobustCurveError):
    """A requested series is absent (or empty) in the source table."""

    def __init__(self, column: str) -> None:
        super().__init__(f"Column not found or empty: {column}")
        self.column = column


class DatasetUnreadable(RobustCurveError):
    """The dataset export could not be read at all."""


# ── Configuration ────────────────────────────────────────────────────


class ConfigurationError(RobustCurveError):
    """Invalid run configuration; detected at startup."""


class UnknownAggregationMode(ConfigurationError):
    def __init__(self, mode: str) -> None:
        super().__init__(
            f"Unknown aggregation mode '{mode}' (expected 'mean' or 'percentile')"
        )
        self.mode = mode


class UnknownMethod(ConfigurationError):
    def __init__(self, method: str) -> None:
        super().__init__(f"Unknown method '{method}'")
        self.method = method


# ── Interpolation ────────────────────────────────────────────────────


class InterpolationFailure(RobustCurveError):
    """FNR curve is not usable as an interpolation domain.

    Recoverable: the caller records a missing data point.
    """


class DegenerateCurveWarning(UserWarning):
    """A robust curve is constant at 1.0 across the quality grid."""
