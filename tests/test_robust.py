"""End-to-end tests for precision_at_robust."""

import math

import numpy as np
import pytest

from uqcurves.errors import EmptySample, LengthMismatch, UnknownAggregationMode
from uqcurves.evaluation.policy import EnginePolicy
from uqcurves.evaluation.robust import precision_at_robust


def _run(x, y, quality, quantiles, n_bootstrap=1, mode="mean", inverted=False, fnr=0.1, policy=None):
    return precision_at_robust(x, y, quality, quantiles, n_bootstrap, mode, inverted, fnr, policy)


class TestPrecisionAtRobust:
    def test_three_point_run_is_pinned(self):
        # Replicate 0 resamples indices [1, 0, 0]: xb [0.5, 0.1, 0.1],
        # yb [0.6, 0.2, 0.2]. Over quantiles [0, 0.5, 1] that gives
        # fnr [2/3, 0, 0] and precision [1/3, 1/3, 0]; the collapsed
        # knots are fnr [0, 2/3] -> threshold [1, 0], precision [0, 1/3].
        x = [0.1, 0.5, 0.9]
        y = [0.2, 0.6, 0.95]

        precision, thresholds = _run(x, y, [0.5], [0.0, 0.5, 1.0], fnr=0.0)
        assert (precision[0], thresholds[0]) == (0.0, 1.0)

        # Past the last knot the point is clamped to it
        precision, thresholds = _run(x, y, [0.5], [0.0, 0.5, 1.0], fnr=0.9)
        assert precision[0].hex() == "0x1.5555555555555p-2"
        assert thresholds[0] == 0.0

    def test_three_point_run_is_reproducible(self):
        x = [0.1, 0.5, 0.9]
        y = [0.2, 0.6, 0.95]
        a = _run(x, y, [0.5], [0.0, 0.5, 1.0])
        b = _run(x, y, [0.5], [0.0, 0.5, 1.0])
        assert a[0].shape == (1,)
        assert a[1].shape == (1,)
        assert a[0].tobytes() == b[0].tobytes()
        assert a[1].tobytes() == b[1].tobytes()

    def test_identical_pairs_give_exact_point(self):
        # Every resample equals the input, so the curves are known:
        # precision [1, 1, 0], fnr [0, 0, 1] over quantiles [0, 0.5, 0.9]
        x = [0.7] * 4
        y = [0.8] * 4
        precision, thresholds = _run(x, y, [0.5], [0.0, 0.5, 0.9], n_bootstrap=5, fnr=0.25)
        assert thresholds[0] == pytest.approx(0.6)
        assert precision[0] == pytest.approx(0.75)

    def test_aggregation_modes_agree_on_identical_pairs(self):
        x = [0.7] * 4
        y = [0.8] * 4
        mean = _run(x, y, [0.5], [0.0, 0.5, 0.9], n_bootstrap=5, mode="mean", fnr=0.25)
        pct = _run(x, y, [0.5], [0.0, 0.5, 0.9], n_bootstrap=5, mode="percentile", fnr=0.25)
        np.testing.assert_allclose(mean[0], pct[0])
        np.testing.assert_allclose(mean[1], pct[1])

    def test_unreachable_quality_threshold_gives_nan_point(self):
        x = [0.7] * 4
        y = [0.8] * 4
        precision, thresholds = _run(x, y, [0.5, 0.9], [0.0, 0.5, 0.9], n_bootstrap=3, fnr=0.25)
        assert thresholds[0] == pytest.approx(0.6)
        assert math.isnan(precision[1])
        assert math.isnan(thresholds[1])

    def test_output_aligned_to_quality_grid(self, paired_scores):
        x, y = paired_scores
        quality = np.array([0.6, 0.65, 0.7, 0.75])
        precision, thresholds = _run(x, y, quality, np.linspace(0.05, 0.95, 19), n_bootstrap=10)
        assert precision.shape == quality.shape
        assert thresholds.shape == quality.shape

    def test_values_within_unit_interval(self, paired_scores):
        x, y = paired_scores
        precision, thresholds = _run(
            x, y, [0.6, 0.7], np.linspace(0.05, 0.95, 19), n_bootstrap=20, mode="percentile"
        )
        finite = np.isfinite(precision)
        assert finite.any()
        assert np.all((precision[finite] >= 0) & (precision[finite] <= 1))
        assert np.all((thresholds[finite] >= 0.05) & (thresholds[finite] <= 0.95))

    def test_inverted_scale_changes_percentile_result(self, paired_scores):
        x, y = paired_scores
        quantiles = np.linspace(0.05, 0.95, 19)
        normal = _run(x, y, [0.7], quantiles, n_bootstrap=30, mode="percentile")
        inverted = _run(x, y, [0.7], quantiles, n_bootstrap=30, mode="percentile", inverted=True)
        assert normal[1][0] != inverted[1][0]

    def test_inverted_scale_ignored_for_mean(self, paired_scores):
        x, y = paired_scores
        quantiles = np.linspace(0.05, 0.95, 19)
        normal = _run(x, y, [0.7], quantiles, n_bootstrap=10)
        inverted = _run(x, y, [0.7], quantiles, n_bootstrap=10, inverted=True)
        np.testing.assert_array_equal(normal[0], inverted[0])

    def test_nan_boundary_policy(self):
        x = [0.7] * 4
        y = [0.8] * 4
        # fnr range is [0, 1], so every target is in range
        precision, _ = _run(
            x, y, [0.5], [0.0, 0.5, 0.9], fnr=0.25, policy=EnginePolicy(boundary="nan")
        )
        assert precision[0] == pytest.approx(0.75)


class TestErrors:
    def test_unknown_mode(self):
        with pytest.raises(UnknownAggregationMode):
            _run([0.1], [0.2], [0.5], [0.5], mode="median")

    def test_empty_input(self):
        with pytest.raises(EmptySample):
            _run([], [], [0.5], [0.5])

    def test_length_mismatch(self):
        with pytest.raises(LengthMismatch):
            _run([0.1, 0.2], [0.3], [0.5], [0.5])
