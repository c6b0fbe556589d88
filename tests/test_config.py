"""Tests for YAML config loading, overrides and the ambient helpers."""

import logging
from pathlib import Path

import numpy as np
import pytest

from uqcurves.errors import ConfigurationError
from uqcurves.evaluation.policy import EnginePolicy
from uqcurves.utils.config import DEFAULT_CONFIG, apply_overrides, load_config
from uqcurves.utils.logging import setup_logging
from uqcurves.utils.reproducibility import replicate_rng

CONFIG_PATH = Path(__file__).resolve().parents[1] / "configs" / "default.yaml"


class TestLoadConfig:
    def test_defaults_without_file(self):
        cfg = load_config()
        assert cfg["bootstrap"]["n_bootstrap"] == 2000
        assert cfg["engine"]["boundary"] == "clamp"

    def test_defaults_not_shared(self):
        cfg = load_config()
        cfg["bootstrap"]["n_bootstrap"] = 1
        assert DEFAULT_CONFIG["bootstrap"]["n_bootstrap"] == 2000

    def test_project_config(self):
        cfg = load_config(CONFIG_PATH)
        assert "Brats_last_final" in cfg["datasets"]
        assert cfg["combinations"]["aggregations"][0] == ""
        assert cfg["logging"]["file"] == "compute_robust.log"

    def test_partial_file_merged_with_defaults(self, tmp_path):
        path = tmp_path / "small.yaml"
        path.write_text("bootstrap:\n  n_bootstrap: 50\n")
        cfg = load_config(path)
        assert cfg["bootstrap"]["n_bootstrap"] == 50
        assert cfg["bootstrap"]["aggregation"] == "mean"
        assert cfg["pref"] == "49"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")


class TestOverrides:
    def test_values_are_coerced(self):
        cfg = load_config(
            overrides=[
                "bootstrap.n_bootstrap=500",
                "engine.exclude_perfect=true",
                "grids.target_fnrs=[0.1, 0.2]",
                "bootstrap.aggregation=percentile",
            ]
        )
        assert cfg["bootstrap"]["n_bootstrap"] == 500
        assert cfg["engine"]["exclude_perfect"] is True
        assert cfg["grids"]["target_fnrs"] == [0.1, 0.2]
        assert cfg["bootstrap"]["aggregation"] == "percentile"

    def test_missing_equals_sign(self):
        with pytest.raises(ValueError):
            apply_overrides(load_config(), ["seed"])

    def test_unknown_section(self):
        with pytest.raises(ValueError):
            apply_overrides(load_config(), ["nosuch.key=1"])


class TestEnginePolicyFromConfig:
    def test_from_overrides(self):
        cfg = load_config(overrides=["engine.boundary=anchor", "engine.ties=strict"])
        policy = EnginePolicy.from_config(cfg)
        assert policy == EnginePolicy(boundary="anchor", ties="strict")

    def test_bad_value(self):
        cfg = load_config(overrides=["engine.boundary=extrapolate"])
        with pytest.raises(ConfigurationError):
            EnginePolicy.from_config(cfg)


class TestAmbient:
    def test_log_file_from_config(self, tmp_path):
        cfg = load_config(overrides=[f"paths.logs_dir={tmp_path}", "logging.level=DEBUG"])
        logger = setup_logging(name="uqcurves.test_config", config=cfg)
        try:
            assert logger.level == logging.DEBUG
            logger.debug("hello")
            for handler in logger.handlers:
                handler.flush()
            assert "hello" in (tmp_path / "compute_robust.log").read_text()
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)

    def test_repeated_setup_keeps_one_file_handler(self, tmp_path):
        log_file = tmp_path / "run.log"
        setup_logging(name="uqcurves.test_repeat", log_file=str(log_file))
        logger = setup_logging(name="uqcurves.test_repeat", log_file=str(log_file))
        try:
            file_handlers = [h for h in logger.handlers if isinstance(h, logging.FileHandler)]
            assert len(file_handlers) == 1
            assert len(logger.handlers) == 2
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)

    def test_replicate_rng_is_per_index(self):
        a = replicate_rng(3).integers(0, 100, size=10)
        b = replicate_rng(3).integers(0, 100, size=10)
        np.testing.assert_array_equal(a, b)

    def test_negative_replicate(self):
        with pytest.raises(ValueError):
            replicate_rng(-1)
