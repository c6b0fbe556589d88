"""Persist robust curves as rows of a SQLite ``trace_data`` table.

Schema (consumed by the API/visualization layer, keep stable):

    trace_data(method TEXT, dataset TEXT, drop_level REAL, fnr REAL,
               metric TEXT, aggregation TEXT, metric_aggregation TEXT,
               xs BLOB, th BLOB, ys BLOB)

``xs`` holds the quality thresholds, ``th`` the interpolated score
cutoffs and ``ys`` the precision values. Each array is stored as a
little-endian u64 element count followed by little-endian float64
values.

``TraceWriter`` is the only object that touches the database during a
batch: producers hand rows to ``put()`` and a dedicated thread performs
every insert, committing one transaction per ``flush()``.
"""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

logger = logging.getLogger(__name__)

TABLE_NAME = "trace_data"
KEY_COLUMNS = (
    "method",
    "dataset",
    "drop_level",
    "fnr",
    "metric",
    "aggregation",
    "metric_aggregation",
)

_CREATE_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    method TEXT, dataset TEXT, drop_level REAL, fnr REAL,
    metric TEXT, aggregation TEXT, metric_aggregation TEXT,
    xs BLOB, th BLOB, ys BLOB
)
"""
_INSERT_SQL = (
    f"INSERT INTO {TABLE_NAME} "
    "(method, dataset, drop_level, fnr, metric, aggregation, metric_aggregation, xs, th, ys) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)
_SELECT_SQL = (
    "SELECT method, dataset, drop_level, fnr, metric, aggregation, metric_aggregation, "
    f"xs, th, ys FROM {TABLE_NAME}"
)

_LENGTH_BYTES = 8


def encode_array(values: Sequence[float] | np.ndarray) -> bytes:
    """Encode a float sequence as ``u64 count || float64 values`` (LE)."""
    arr = np.ascontiguousarray(values, dtype="<f8")
    return arr.shape[0].to_bytes(_LENGTH_BYTES, "little") + arr.tobytes()


def decode_array(blob: bytes) -> np.ndarray:
    """Inverse of ``encode_array``.

    Raises:
        ValueError: If the blob is truncated or its length prefix does not
            match its payload.
    """
    if len(blob) < _LENGTH_BYTES:
        raise ValueError(f"Array blob too short: {len(blob)} bytes")
    count = int.from_bytes(blob[:_LENGTH_BYTES], "little")
    payload = len(blob) - _LENGTH_BYTES
    if payload != count * 8:
        raise ValueError(f"Array blob declares {count} values but holds {payload} bytes")
    return np.frombuffer(blob, dtype="<f8", count=count, offset=_LENGTH_BYTES).astype(np.float64)


@dataclass
class TraceRow:
    method: str
    dataset: str
    drop_level: float
    fnr: float
    metric: str
    aggregation: str
    metric_aggregation: str
    xs: np.ndarray = field(repr=False)
    th: np.ndarray = field(repr=False)
    ys: np.ndarray = field(repr=False)

    def to_params(self) -> tuple:
        return (
            self.method,
            self.dataset,
            float(self.drop_level),
            float(self.fnr),
            self.metric,
            self.aggregation,
            self.metric_aggregation,
            encode_array(self.xs),
            encode_array(self.th),
            encode_array(self.ys),
        )

    def to_dict(self) -> dict:
        """JSON-friendly form (NaN becomes None)."""

        def _clean(arr: np.ndarray) -> list:
            return [None if np.isnan(v) else float(v) for v in np.asarray(arr, dtype=np.float64)]

        return {
            "method": self.method,
            "dataset": self.dataset,
            "drop_level": float(self.drop_level),
            "fnr": float(self.fnr),
            "metric": self.metric,
            "aggregation": self.aggregation,
            "metric_aggregation": self.metric_aggregation,
            "xs": _clean(self.xs),
            "th": _clean(self.th),
            "ys": _clean(self.ys),
        }


def init_connection(path: str | Path, wal: bool = False) -> sqlite3.Connection:
    """Open the trace database, creating the table if needed."""
    conn = sqlite3.connect(str(path))
    if wal:
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_CREATE_SQL)
    return conn


def load_traces(path: str | Path, **filters: object) -> list[TraceRow]:
    """Load trace rows, optionally filtered by key-column equality.

    Example:
        load_traces("Brats_traces.db", method="MCd", fnr=0.05)

    Raises:
        ValueError: If a filter names something other than a key column.
    """
    unknown = set(filters) - set(KEY_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown trace filter(s): {sorted(unknown)}")

    query = _SELECT_SQL
    params: list[object] = []
    if filters:
        query += " WHERE " + " AND ".join(f"{key} = ?" for key in filters)
        params = list(filters.values())

    conn = sqlite3.connect(str(path))
    try:
        rows = conn.execute(query, params).fetchall()
    finally:
        conn.close()

    return [
        TraceRow(
            method=r[0],
            dataset=r[1],
            drop_level=r[2],
            fnr=r[3],
            metric=r[4],
            aggregation=r[5],
            metric_aggregation=r[6],
            xs=decode_array(r[7]),
            th=decode_array(r[8]),
            ys=decode_array(r[9]),
        )
        for r in rows
    ]


class _Flush:
    def __init__(self) -> None:
        self.done = threading.Event()


_STOP = object()


class TraceWriter:
    """Single writer thread for the trace database.

    Usage:
        with TraceWriter("Brats_traces.db") as writer:
            writer.put(row)
            ...
            writer.flush()   # commit everything received so far

    Args:
        path: SQLite file. Any existing file is removed when ``replace``.
        replace: Start from an empty database (default ``True``).
    """

    def __init__(self, path: str | Path, replace: bool = True) -> None:
        self.path = Path(path)
        self.replace = replace
        self.rows_written = 0
        self._queue: queue.Queue = queue.Queue()
        self._error: BaseException | None = None
        self._thread: threading.Thread | None = None

    # ── lifecycle ────────────────────────────────────────────────────

    def start(self) -> "TraceWriter":
        if self._thread is not None:
            return self
        if self.replace and self.path.exists():
            self.path.unlink()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._thread = threading.Thread(target=self._run, name="trace-writer", daemon=True)
        self._thread.start()
        return self

    def close(self) -> None:
        """Commit pending rows and stop the writer thread."""
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join()
        self._thread = None
        self._raise_if_failed()

    def __enter__(self) -> "TraceWriter":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── producer API ─────────────────────────────────────────────────

    def put(self, row: TraceRow) -> None:
        self._raise_if_failed()
        if self._thread is None:
            raise RuntimeError("TraceWriter.start() must be called before put()")
        self._queue.put(row)

    def __call__(self, row: TraceRow) -> None:
        self.put(row)

    def flush(self) -> None:
        """Block until every row put so far is committed."""
        if self._thread is None:
            return
        self._raise_if_failed()
        marker = _Flush()
        self._queue.put(marker)
        while not marker.done.wait(timeout=0.5):
            if not self._thread.is_alive():
                break
        self._raise_if_failed()

    # ── writer thread ────────────────────────────────────────────────

    def _raise_if_failed(self) -> None:
        if self._error is not None:
            raise RuntimeError(f"Trace writer failed: {self._error}") from self._error

    def _run(self) -> None:
        conn = None
        try:
            conn = init_connection(self.path)
            pending = 0
            while True:
                item = self._queue.get()
                if item is _STOP:
                    conn.commit()
                    break
                if isinstance(item, _Flush):
                    conn.commit()
                    if pending:
                        logger.info("Committed %d trace rows to %s", pending, self.path)
                    pending = 0
                    item.done.set()
                    continue
                conn.execute(_INSERT_SQL, item.to_params())
                pending += 1
                self.rows_written += 1
        except Exception as exc:  # surfaced to producers via _raise_if_failed
            logger.error("Trace writer stopped: %s", exc)
            self._error = exc
            self._drain()
        finally:
            if conn is not None:
                conn.close()

    def _drain(self) -> None:
        # Release any producer blocked on a flush marker
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if isinstance(item, _Flush):
                item.done.set()
