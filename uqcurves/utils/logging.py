"""Logging for the batch and export scripts.

Every engine module logs through ``logging.getLogger(__name__)``, so all
of them live under the ``uqcurves`` logger. ``run_batch`` reports skipped,
failed and degenerate jobs from the parent process, not from its pool
workers, which is why configuring the parent's ``uqcurves`` logger is
enough to capture a whole run.

The level and log file come from the ``logging`` section of the run
config; the file lands in ``paths.logs_dir``:

    logging:
      level: INFO
      file: compute_robust.log

Usage:
    from uqcurves.utils.logging import setup_logging

    logger = setup_logging(config=cfg)                # level/file from config
    logger = setup_logging(level="DEBUG")             # DEBUG to console only
    logger = setup_logging(log_file="logs/run.log")   # explicit file
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any


_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _config_log_file(config: dict[str, Any]) -> str | None:
    file_name = config.get("logging", {}).get("file")
    if not file_name:
        return None
    logs_dir = config.get("paths", {}).get("logs_dir", "logs")
    return str(Path(logs_dir) / file_name)


def setup_logging(
    name: str = "uqcurves",
    level: str | None = None,
    log_file: str | None = None,
    config: dict[str, Any] | None = None,
) -> logging.Logger:
    """Configure and return the run logger.

    Parameters
    ----------
    name : str
        Logger name (default ``"uqcurves"``, the root of every engine
        module logger).
    level : str | None
        Level name such as ``"DEBUG"``. Falls back to
        ``config["logging"]["level"]``, then ``"INFO"``. Per-point
        interpolation misses are only visible at ``DEBUG``.
    log_file : str | None
        Log file path; parent directories are created. Falls back to
        ``config["logging"]["file"]`` under ``config["paths"]["logs_dir"]``.
    config : dict | None
        Full run config from ``load_config``.

    Returns
    -------
    logging.Logger
        The configured logger.
    """
    if config is not None:
        if level is None:
            level = config.get("logging", {}).get("level", "INFO")
        if log_file is None:
            log_file = _config_log_file(config)
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    formatter = logging.Formatter(_LOG_FORMAT)

    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)

    # Repeated calls must not stack handlers
    if not logger.handlers:
        console = logging.StreamHandler()
        console.setLevel(numeric_level)
        console.setFormatter(formatter)
        logger.addHandler(console)

    if log_file is not None:
        log_path = Path(log_file).resolve()
        already = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_path
            for h in logger.handlers
        )
        if not already:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(str(log_path))
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
