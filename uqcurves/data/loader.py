"""Load metric columns for one dataset, with a SQLite cache.

The evaluation pipeline exports each dataset as a JSON table
``{"columns": [...], "data": [[...], ...]}``. Only the columns needed by
the requested combinations are kept. The first load writes them to a
SQLite cache (table ``metrics``) which later runs read instead of the
much larger JSON file.

Columns whose name contains ``logitmean`` hold logits in the export and
are mapped through the logistic function on load.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable, Mapping
from contextlib import closing
from pathlib import Path

import numpy as np
import pandas as pd

from uqcurves.errors import DatasetUnreadable

logger = logging.getLogger(__name__)

CACHE_TABLE = "metrics"
_LOGIT_MARKER = "logitmean"


class ColumnarTable:
    """Read-only mapping of column name -> float64 array.

    Args:
        columns: Column arrays, all of the same length.
        missing: Names that were requested but not found in the source.
    """

    def __init__(
        self,
        columns: Mapping[str, np.ndarray],
        missing: Iterable[str] = (),
    ) -> None:
        self._columns: dict[str, np.ndarray] = {}
        for name, values in columns.items():
            arr = np.array(values, dtype=np.float64)
            arr.setflags(write=False)
            self._columns[name] = arr
        lengths = {arr.shape[0] for arr in self._columns.values()}
        if len(lengths) > 1:
            raise ValueError(f"Columns have inconsistent lengths: {sorted(lengths)}")
        self.n_rows = lengths.pop() if lengths else 0
        self.missing = tuple(missing)

    def __contains__(self, name: object) -> bool:
        return name in self._columns

    def __len__(self) -> int:
        return self.n_rows

    @property
    def names(self) -> list[str]:
        return list(self._columns)

    def column(self, name: str) -> np.ndarray:
        """Return a column, or an empty array if it is absent."""
        arr = self._columns.get(name)
        if arr is None:
            return np.empty(0, dtype=np.float64)
        if np.isnan(arr).any():
            logger.warning("Column %s contains %d NaN value(s)", name, int(np.isnan(arr).sum()))
        return arr

    def as_dict(self) -> dict[str, np.ndarray]:
        return dict(self._columns)


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _sigmoid(values: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-values))


def read_json_table(json_path: str | Path, needed: list[str]) -> tuple[pd.DataFrame, list[str]]:
    """Read the needed columns of a JSON export.

    Returns:
        (frame, missing) where *frame* holds the found columns as float64
        and *missing* lists the requested names absent from the export.

    Raises:
        DatasetUnreadable: If the file is absent or not a column/data table.
    """
    path = Path(json_path)
    try:
        with open(path, "r") as fh:
            table = json.load(fh)
        columns = table["columns"]
        data = table["data"]
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise DatasetUnreadable(f"Cannot read dataset export {path}: {exc}") from exc

    df = pd.DataFrame(data, columns=columns)
    found = [c for c in needed if c in df.columns]
    missing = [c for c in needed if c not in df.columns]

    df = df[found].apply(pd.to_numeric, errors="coerce").astype(np.float64)
    for col in found:
        if _LOGIT_MARKER in col.lower():
            df[col] = _sigmoid(df[col].to_numpy())
    return df, missing


def write_cache(sqlite_path: str | Path, df: pd.DataFrame) -> None:
    """Write *df* to the SQLite cache, replacing any previous table."""
    path = Path(sqlite_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # closing() shuts the connection; the inner `with conn` only commits
    with closing(sqlite3.connect(path)) as conn, conn:
        df.to_sql(CACHE_TABLE, conn, if_exists="replace", index=False, chunksize=500)
    logger.info("Cached %d columns x %d rows to %s", df.shape[1], df.shape[0], path)


def read_cache(sqlite_path: str | Path, needed: list[str]) -> tuple[pd.DataFrame, list[str]]:
    """Read the needed columns from the SQLite cache."""
    with closing(sqlite3.connect(Path(sqlite_path))) as conn:
        info = conn.execute(f"PRAGMA table_info({CACHE_TABLE})").fetchall()
        available = {row[1] for row in info}
        found = [c for c in needed if c in available]
        missing = [c for c in needed if c not in available]
        if found:
            query = f"SELECT {', '.join(_quote(c) for c in found)} FROM {CACHE_TABLE}"
            df = pd.read_sql_query(query, conn)
        else:
            df = pd.DataFrame()
    return df.astype(np.float64), missing


def load_dataset(
    json_path: str | Path,
    sqlite_path: str | Path,
    needed_columns: Iterable[str],
) -> ColumnarTable:
    """Load the needed metric columns for one dataset.

    Args:
        json_path: Path to the JSON table export.
        sqlite_path: Path to the SQLite cache (read if it exists, written
            after a JSON load otherwise).
        needed_columns: Column names required by the run.

    Returns:
        ColumnarTable with every found column; absent names are listed in
        ``table.missing`` and logged, never fatal here.

    Raises:
        DatasetUnreadable: If there is no cache and the JSON export cannot
            be read.
    """
    needed = list(dict.fromkeys(needed_columns))

    if Path(sqlite_path).exists():
        logger.info("Loading cached data from SQLite: %s", sqlite_path)
        df, missing = read_cache(sqlite_path, needed)
    else:
        logger.info("Loading data from JSON: %s", json_path)
        df, missing = read_json_table(json_path, needed)
        if df.shape[1] > 0:
            write_cache(sqlite_path, df)

    if missing:
        logger.warning("%d needed column(s) not found in source", len(missing))
        for col in missing:
            logger.debug("  missing column: %s", col)

    table = ColumnarTable({col: df[col].to_numpy() for col in df.columns}, missing=missing)
    logger.info("Loaded %d columns, %d rows", len(table.names), table.n_rows)
    return table
