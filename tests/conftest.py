# tests/conftest.py
import numpy as np
import pytest

from uqcurves.data.combinations import build_combinations, make_xy_column_names
from uqcurves.data.loader import ColumnarTable
from uqcurves.evaluation.policy import EnginePolicy
from uqcurves.orchestrator import RunSettings

PREF = "49"


def make_pair(n: int = 80, seed: int = 0) -> tuple[np.ndarray, np.ndarray]:
    """Quality in [0.3, 1) with a score that tracks it plus noise."""
    rng = np.random.default_rng(seed)
    y = rng.uniform(0.3, 0.999, size=n)
    x = np.clip(y + rng.normal(0.0, 0.15, size=n), 0.0, 1.0)
    return x, y


@pytest.fixture
def paired_scores():
    return make_pair()


@pytest.fixture
def small_settings():
    return RunSettings(
        quality_thresholds=np.array([0.6, 0.7, 0.8]),
        quantiles=np.linspace(0.05, 0.95, 19),
        target_fnrs=(0.05, 0.10),
        n_bootstrap=15,
        aggregation_mode="mean",
        policy=EnginePolicy(),
    )


@pytest.fixture
def ten_combinations():
    # 5 MCd drop levels x 2 aggregations
    return build_combinations(
        methods=["MCd"],
        metrics=["dice"],
        aggregations=["", "_union"],
        metric_aggregations=["mean"],
    )


@pytest.fixture
def table_for(ten_combinations):
    """Build a ColumnarTable holding x/y columns for the given combinations."""

    def _build(combinations=None, drop_x_of=()):
        combinations = combinations or ten_combinations
        columns = {}
        for i, combo in enumerate(combinations):
            x_col, y_col = make_xy_column_names(combo, PREF)
            x, y = make_pair(seed=i)
            if combo not in drop_x_of:
                columns[x_col] = x
            columns[y_col] = y
        return ColumnarTable(columns)

    return _build
