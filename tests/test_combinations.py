"""Tests for grids, combination enumeration and column naming."""

import numpy as np
import pytest

from uqcurves.data.combinations import (
    Combination,
    build_combinations,
    build_grids,
    combinations_from_config,
    is_inverted_scale,
    linear_grid,
    make_xy_column_names,
    needed_columns,
)
from uqcurves.errors import ConfigurationError, UnknownMethod
from uqcurves.utils.config import load_config


class TestColumnNames:
    @pytest.mark.parametrize(
        "combo, expected",
        [
            (
                Combination("MCd", 0.2, "dice", "_union", "mean"),
                ("tumor_paireddiceMCd_0.2_seg_union_mean_49", "tumor_dice_0.2_seg_union_UQ_meanMC_49"),
            ),
            (
                Combination("ckp-DE", 0.0, "sdice", "", "max"),
                ("tumor_pairedsdiceDE_0.0_seg_max_49", "tumor_sdice__UQ_meanDE_0.0_seg_49"),
            ),
            (
                Combination("DE", 0.0, "dice", "_inter", "min"),
                ("tumor_paireddiceDE_0.0_DE_inter_min_49", "tumor_dice__UQ_meanDE_0.0_DE_inter_49"),
            ),
            (
                Combination("TTA", 0.3, "dice", "_logit", "logitmean"),
                (
                    "tumor_paireddiceMCd_0.3_flip_seg_logit_logitmean_49",
                    "tumor_dice_0.3_flip_seg_logit_UQ_meanMC_49",
                ),
            ),
            (
                Combination("OOD", 0.4, "dice", "", ""),
                ("tumor_dice_diff_2_0.4_30", "tumor_dice_0.4_30"),
            ),
        ],
    )
    def test_formats(self, combo, expected):
        assert make_xy_column_names(combo, "49") == expected

    def test_unknown_method(self):
        with pytest.raises(UnknownMethod):
            make_xy_column_names(Combination("SWAG", 0.0, "dice", "", "mean"), "49")

    def test_needed_columns_unique_and_ordered(self):
        combos = [
            Combination("OOD", 0.0, "dice", "", ""),
            Combination("OOD", 0.0, "dice", "", ""),
            Combination("OOD", 0.1, "dice", "", ""),
        ]
        assert needed_columns(combos, "49") == [
            "tumor_dice_diff_2_0.0_30",
            "tumor_dice_0.0_30",
            "tumor_dice_diff_2_0.1_30",
            "tumor_dice_0.1_30",
        ]


class TestBuildCombinations:
    def test_default_count(self):
        # TTA 6*2*5*4, MCd 5*2*5*4, ckp-DE and DE 1*2*5*4, OOD 6*2
        assert len(build_combinations()) == 240 + 200 + 40 + 40 + 12

    def test_ood_has_no_aggregations(self):
        combos = build_combinations(["OOD"])
        assert {(c.aggregation, c.metric_aggregation) for c in combos} == {("", "")}
        assert sorted({c.drop_level for c in combos}) == [0.0, 0.1, 0.2, 0.3, 0.4, 0.5]

    def test_ensembles_use_zero_drop_level(self):
        combos = build_combinations(["DE", "ckp-DE"])
        assert {c.drop_level for c in combos} == {0.0}

    def test_unknown_method(self):
        with pytest.raises(UnknownMethod):
            build_combinations(["MCd", "SWAG"])

    def test_from_config(self):
        cfg = load_config(overrides=["combinations.methods=[OOD]"])
        assert len(combinations_from_config(cfg)) == 12

    def test_label(self):
        assert Combination("MCd", 0.1, "dice", "_union", "mean").label() == "MCd|0.1|dice|union|mean"
        assert Combination("OOD", 0.0, "dice", "", "").label() == "OOD|0.0|dice"


class TestGrids:
    def test_default_grids(self):
        grids = build_grids(load_config())
        assert len(grids.quality_thresholds) == 20
        assert grids.quality_thresholds[0] == 0.6
        assert grids.quality_thresholds[-1] == pytest.approx(0.98)
        assert len(grids.quantiles) == 40
        assert grids.quantiles[-1] == pytest.approx(1.0)
        assert grids.target_fnrs == (0.05, 0.10, 0.15, 0.20, 0.25)

    def test_explicit_lists(self):
        cfg = {"grids": {"quality_thresholds": [0.7], "quantiles": [0.1, 0.5], "target_fnrs": [0.1]}}
        grids = build_grids(cfg)
        np.testing.assert_array_equal(grids.quantiles, [0.1, 0.5])

    def test_descending_quantiles_rejected(self):
        cfg = {"grids": {"quality_thresholds": [0.7], "quantiles": [0.5, 0.1], "target_fnrs": [0.1]}}
        with pytest.raises(ConfigurationError):
            build_grids(cfg)

    def test_target_fnr_out_of_range(self):
        cfg = {"grids": {"quality_thresholds": [0.7], "quantiles": [0.1, 0.5], "target_fnrs": [1.5]}}
        with pytest.raises(ConfigurationError):
            build_grids(cfg)

    def test_incomplete_mapping(self):
        cfg = {"grids": {"quality_thresholds": {"start": 0.6}, "quantiles": [0.1], "target_fnrs": [0.1]}}
        with pytest.raises(ConfigurationError):
            build_grids(cfg)

    def test_missing_grid(self):
        with pytest.raises(ConfigurationError):
            build_grids({"grids": {"quantiles": [0.1], "target_fnrs": [0.1]}})

    def test_linear_grid(self):
        np.testing.assert_allclose(linear_grid(0.1, 0.1, 3), [0.1, 0.2, 0.3])
        with pytest.raises(ConfigurationError):
            linear_grid(0.1, 0.1, 0)


class TestInvertedScale:
    def test_marker_match(self):
        assert is_inverted_scale("ADPL_dice")
        assert not is_inverted_scale("dice")

    def test_custom_markers(self):
        assert is_inverted_scale("hausdorff95", markers=("hausdorff",))
        assert not is_inverted_scale("hausdorff95", markers=())
