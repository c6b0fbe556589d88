"""Tests for bootstrap resampling."""

import numpy as np
import pytest

from uqcurves.errors import EmptySample, LengthMismatch
from uqcurves.evaluation.bootstrap import bootstrap_curves, bootstrap_sample, resample_indices


class TestBootstrapSample:
    def test_length_matches_input(self, paired_scores):
        x, y = paired_scores
        xb, yb = bootstrap_sample(x, y, 3)
        assert len(xb) == len(x)
        assert len(yb) == len(y)

    def test_values_come_from_input(self, paired_scores):
        x, y = paired_scores
        xb, yb = bootstrap_sample(x, y, 7)
        assert set(xb.tolist()) <= set(x.tolist())
        assert set(yb.tolist()) <= set(y.tolist())

    def test_pairs_stay_aligned(self, paired_scores):
        x, y = paired_scores
        pairs = set(zip(x.tolist(), y.tolist()))
        xb, yb = bootstrap_sample(x, y, 11)
        assert all(p in pairs for p in zip(xb.tolist(), yb.tolist()))

    def test_deterministic_for_same_replicate(self, paired_scores):
        x, y = paired_scores
        a = bootstrap_sample(x, y, 5)
        b = bootstrap_sample(x, y, 5)
        assert a[0].tobytes() == b[0].tobytes()
        assert a[1].tobytes() == b[1].tobytes()

    def test_replicates_differ(self, paired_scores):
        x, y = paired_scores
        xb0, _ = bootstrap_sample(x, y, 0)
        xb1, _ = bootstrap_sample(x, y, 1)
        assert not np.array_equal(xb0, xb1)

    def test_replicate_zero_is_pinned(self):
        # default_rng(0).random(3) == [0.6370, 0.2698, 0.0410]
        assert resample_indices(0, 3).tolist() == [1, 0, 0]
        xb, yb = bootstrap_sample([0.1, 0.5, 0.9], [0.2, 0.6, 0.95], 0)
        assert xb.tolist() == [0.5, 0.1, 0.1]
        assert yb.tolist() == [0.6, 0.2, 0.2]

    def test_indices_in_range(self):
        for replicate in range(20):
            idx = resample_indices(replicate, 7)
            assert idx.min() >= 0
            assert idx.max() < 7

    def test_single_element(self):
        xb, yb = bootstrap_sample([0.4], [0.9], 0)
        assert xb.tolist() == [0.4]
        assert yb.tolist() == [0.9]

    def test_accepts_lists(self):
        xb, yb = bootstrap_sample([0.1, 0.2, 0.3], [0.5, 0.6, 0.7], 2)
        assert xb.dtype == np.float64
        assert len(yb) == 3

    def test_empty_raises(self):
        with pytest.raises(EmptySample):
            bootstrap_sample([], [], 0)

    def test_length_mismatch_raises(self):
        with pytest.raises(LengthMismatch):
            bootstrap_sample([0.1, 0.2], [0.3], 0)


class TestBootstrapCurves:
    def test_shape(self, paired_scores):
        x, y = paired_scores
        quality = np.array([0.6, 0.8])
        quantiles = np.linspace(0.1, 0.9, 9)
        precision, fnr = bootstrap_curves(x, y, quality, quantiles, n_bootstrap=4)
        assert precision.shape == (4, 2, 9)
        assert fnr.shape == (4, 2, 9)

    def test_replicate_reuses_sample(self, paired_scores):
        x, y = paired_scores
        quantiles = np.linspace(0.1, 0.9, 9)
        p_all, _ = bootstrap_curves(x, y, np.array([0.6, 0.8]), quantiles, n_bootstrap=3)
        p_one, _ = bootstrap_curves(x, y, np.array([0.8]), quantiles, n_bootstrap=3)
        np.testing.assert_array_equal(p_all[:, 1], p_one[:, 0])

    def test_zero_replicates_rejected(self, paired_scores):
        x, y = paired_scores
        with pytest.raises(ValueError):
            bootstrap_curves(x, y, np.array([0.6]), np.array([0.5]), n_bootstrap=0)
