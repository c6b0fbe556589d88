"""Configuration loading with YAML parsing and CLI override support.

Usage:
    from uqcurves.utils.config import load_config

    # Basic load
    cfg = load_config("configs/default.yaml")

    # With CLI overrides (dot-notation)
    cfg = load_config("configs/default.yaml", overrides=["bootstrap.n_bootstrap=500", "seed=7"])
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

# Values used when a key is absent from the YAML file. Keeps the engine
# runnable from a minimal config (e.g. in tests).
DEFAULT_CONFIG: dict[str, Any] = {
    "seed": 42,
    "paths": {
        "data_dir": "data",
        "results_dir": "results",
        "logs_dir": "logs",
        "json_pattern": "{dataset}_Metrics_{pref}_validation.table.json",
        "cache_pattern": "{dataset}_table.db",
        "traces_pattern": "{dataset}_traces.db",
    },
    "datasets": [],
    "pref": "49",
    "grids": {
        "quality_thresholds": {"start": 0.6, "step": 0.02, "count": 20},
        "quantiles": {"start": 0.025, "step": 0.025, "count": 40},
        "target_fnrs": [0.05, 0.10, 0.15, 0.20, 0.25],
    },
    "bootstrap": {
        "n_bootstrap": 2000,
        "aggregation": "mean",
    },
    "engine": {
        "saturation": "unit",
        "exclude_perfect": False,
        "boundary": "clamp",
        "ties": "collapse",
    },
    "metrics": {
        "inverted_scale_markers": ["adpl"],
    },
    "combinations": {
        "methods": ["TTA", "MCd", "ckp-DE", "DE", "OOD"],
    },
    "runtime": {
        "max_workers": None,
        "job_timeout_s": None,
    },
    "logging": {
        "level": "INFO",
    },
}


def _merge_defaults(defaults: dict[str, Any], loaded: dict[str, Any]) -> dict[str, Any]:
    """Recursively fill keys missing from *loaded* with *defaults*."""
    merged = copy.deepcopy(defaults)
    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_overrides(cfg: dict[str, Any], overrides: list[str]) -> dict[str, Any]:
    """Apply ``key.subkey=value`` overrides to *cfg* in place.

    Values are coerced via ``yaml.safe_load`` so that ``"true"`` becomes
    ``True``, ``"42"`` becomes ``42``, ``"[0.1, 0.2]"`` becomes a list.

    Raises
    ------
    ValueError
        If an override string is malformed or walks through a non-dict.
    """
    for override in overrides:
        if "=" not in override:
            raise ValueError(
                f"Malformed override (expected 'key.subkey=value'): {override}"
            )
        key_path, value_str = override.split("=", 1)
        keys = key_path.strip().split(".")
        coerced_value = yaml.safe_load(value_str)

        node = cfg
        for k in keys[:-1]:
            if k not in node or not isinstance(node[k], dict):
                raise ValueError(
                    f"Override key path invalid: '{k}' is not a section in config: {key_path}"
                )
            node = node[k]
        node[keys[-1]] = coerced_value
    return cfg


def load_config(
    config_path: str | Path | None = None,
    overrides: list[str] | None = None,
) -> dict[str, Any]:
    """Load a YAML configuration file and apply optional CLI overrides.

    Parameters
    ----------
    config_path : str | Path | None
        Path to the YAML config file. ``None`` returns the built-in
        defaults.
    overrides : list[str] | None
        List of "key.subkey=value" strings for nested overrides.

    Returns
    -------
    dict[str, Any]
        The loaded configuration, with defaults filled in for absent keys.

    Raises
    ------
    FileNotFoundError
        If *config_path* does not exist.
    ValueError
        If an override string is malformed.
    """
    loaded: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(path, "r") as fh:
            loaded = yaml.safe_load(fh) or {}

    cfg = _merge_defaults(DEFAULT_CONFIG, loaded)

    if overrides:
        apply_overrides(cfg, overrides)

    return cfg
