"""Combination enumeration, metric-table loading and trace persistence."""

from uqcurves.data.combinations import (
    Combination,
    Grids,
    build_combinations,
    build_grids,
    combinations_from_config,
    is_inverted_scale,
    make_xy_column_names,
    needed_columns,
)
from uqcurves.data.loader import ColumnarTable, load_dataset
from uqcurves.data.trace_store import TraceRow, TraceWriter, load_traces

__all__ = [
    "ColumnarTable",
    "Combination",
    "Grids",
    "TraceRow",
    "TraceWriter",
    "build_combinations",
    "build_grids",
    "combinations_from_config",
    "is_inverted_scale",
    "load_dataset",
    "load_traces",
    "make_xy_column_names",
    "needed_columns",
]
