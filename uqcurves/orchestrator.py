"""Fan the robust-curve engine out over combinations and target FNRs.

One job per (dataset, combination). A job runs the engine for every
target FNR and yields one ``TraceRow`` per target FNR. Jobs are
independent; the only shared input is the read-only column table, which
each worker process receives once through the pool initializer.

The parent process is the single consumer: it collects finished jobs,
logs their diagnostics and forwards rows to one sink (normally a
``TraceWriter``). Workers never touch the store.

Job states (a job is pending until the parent records its outcome):
    pending -> emitted   engine produced a curve for every target FNR
    pending -> skipped   required column absent/empty, or batch cancelled
    pending -> failed    engine error, worker crash or timeout; sentinel
                         NaN curves are still emitted
"""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
import warnings
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ProcessPoolExecutor, wait
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
from tqdm import tqdm

from uqcurves.data.combinations import (
    Combination,
    Grids,
    build_grids,
    is_inverted_scale,
    make_xy_column_names,
)
from uqcurves.data.loader import ColumnarTable
from uqcurves.data.trace_store import TraceRow
from uqcurves.errors import (
    ConfigurationError,
    DegenerateCurveWarning,
    MissingColumn,
    RobustCurveError,
)
from uqcurves.evaluation.aggregation import validate_aggregation_mode
from uqcurves.evaluation.metrics import is_degenerate_curve
from uqcurves.evaluation.policy import EnginePolicy
from uqcurves.evaluation.robust import precision_at_robust

logger = logging.getLogger(__name__)

Sink = Callable[[TraceRow], None]

_POLL_INTERVAL_S = 0.5


class JobStatus(str, Enum):
    EMITTED = "emitted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class Job:
    dataset: str
    combination: Combination
    x_col: str
    y_col: str
    inverted_scale: bool = False


@dataclass(frozen=True, eq=False)
class RunSettings:
    quality_thresholds: np.ndarray
    quantiles: np.ndarray
    target_fnrs: tuple[float, ...]
    n_bootstrap: int = 2000
    aggregation_mode: str = "mean"
    policy: EnginePolicy = field(default_factory=EnginePolicy)
    inverted_scale_markers: tuple[str, ...] = ("adpl",)

    @classmethod
    def from_config(cls, cfg: dict[str, Any], grids: Grids | None = None) -> "RunSettings":
        grids = grids or build_grids(cfg)
        boot = cfg.get("bootstrap", {})
        return cls(
            quality_thresholds=grids.quality_thresholds,
            quantiles=grids.quantiles,
            target_fnrs=grids.target_fnrs,
            n_bootstrap=int(boot.get("n_bootstrap", 2000)),
            aggregation_mode=str(boot.get("aggregation", "mean")),
            policy=EnginePolicy.from_config(cfg),
            inverted_scale_markers=tuple(
                cfg.get("metrics", {}).get("inverted_scale_markers", ("adpl",))
            ),
        )

    def validate(self) -> None:
        """Reject configuration errors before any job is scheduled."""
        validate_aggregation_mode(self.aggregation_mode)
        if self.n_bootstrap < 1:
            raise ConfigurationError(f"n_bootstrap must be >= 1, got {self.n_bootstrap}")
        if len(self.target_fnrs) == 0:
            raise ConfigurationError("At least one target FNR is required")
        if len(self.quality_thresholds) == 0 or len(self.quantiles) == 0:
            raise ConfigurationError("Quality threshold and quantile grids must be non-empty")


@dataclass
class JobOutcome:
    job: Job
    status: JobStatus
    rows: list[TraceRow] = field(default_factory=list)
    message: str = ""
    degenerate: bool = False
    elapsed_s: float = 0.0

    def to_dict(self) -> dict:
        combo = self.job.combination
        return {
            "dataset": self.job.dataset,
            "method": combo.method,
            "drop_level": combo.drop_level,
            "metric": combo.metric,
            "aggregation": combo.aggregation,
            "metric_aggregation": combo.metric_aggregation,
            "x_col": self.job.x_col,
            "y_col": self.job.y_col,
            "status": self.status.value,
            "message": self.message,
            "degenerate": self.degenerate,
            "elapsed_s": round(self.elapsed_s, 3),
        }


@dataclass
class BatchReport:
    dataset: str
    outcomes: list[JobOutcome] = field(default_factory=list)
    elapsed_s: float = 0.0
    cancelled: bool = False

    def _with(self, status: JobStatus) -> list[JobOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def emitted(self) -> list[JobOutcome]:
        return self._with(JobStatus.EMITTED)

    @property
    def skipped(self) -> list[JobOutcome]:
        return self._with(JobStatus.SKIPPED)

    @property
    def failed(self) -> list[JobOutcome]:
        return self._with(JobStatus.FAILED)

    @property
    def counts(self) -> dict[str, int]:
        return {
            JobStatus.EMITTED.value: len(self.emitted),
            JobStatus.SKIPPED.value: len(self.skipped),
            JobStatus.FAILED.value: len(self.failed),
        }

    def to_dict(self) -> dict:
        return {
            "dataset": self.dataset,
            "elapsed_s": round(self.elapsed_s, 3),
            "cancelled": self.cancelled,
            "counts": self.counts,
            "degenerate": sum(1 for o in self.outcomes if o.degenerate),
            "problems": [o.to_dict() for o in self.outcomes if o.status is not JobStatus.EMITTED],
        }


def make_jobs(
    dataset: str,
    combinations: Iterable[Combination],
    pref: str,
    inverted_scale_markers: Sequence[str] = ("adpl",),
) -> list[Job]:
    """Resolve combinations to concrete column pairs for one dataset."""
    jobs = []
    for combo in combinations:
        x_col, y_col = make_xy_column_names(combo, pref)
        jobs.append(
            Job(
                dataset=dataset,
                combination=combo,
                x_col=x_col,
                y_col=y_col,
                inverted_scale=is_inverted_scale(combo.metric, inverted_scale_markers),
            )
        )
    return jobs


# ── Single job ───────────────────────────────────────────────────────


def _row(job: Job, fnr: float, settings: RunSettings, th: np.ndarray, ys: np.ndarray) -> TraceRow:
    combo = job.combination
    return TraceRow(
        method=combo.method,
        dataset=job.dataset,
        drop_level=combo.drop_level,
        fnr=fnr,
        metric=combo.metric,
        aggregation=combo.aggregation,
        metric_aggregation=combo.metric_aggregation,
        xs=np.array(settings.quality_thresholds, dtype=np.float64),
        th=th,
        ys=ys,
    )


def sentinel_rows(job: Job, settings: RunSettings) -> list[TraceRow]:
    """All-NaN curves marking a failed job in the store."""
    k = len(settings.quality_thresholds)
    return [
        _row(job, fnr, settings, np.full(k, np.nan), np.full(k, np.nan))
        for fnr in settings.target_fnrs
    ]


def run_job(table: ColumnarTable, job: Job, settings: RunSettings) -> JobOutcome:
    """Run the engine for every target FNR of one job.

    Never raises for per-combination problems: they are reported in the
    returned outcome.
    """
    start = time.perf_counter()

    x = table.column(job.x_col)
    y = table.column(job.y_col)
    for col, values in ((job.x_col, x), (job.y_col, y)):
        if values.size == 0:
            return JobOutcome(
                job=job,
                status=JobStatus.SKIPPED,
                message=str(MissingColumn(col)),
                elapsed_s=time.perf_counter() - start,
            )

    rows: list[TraceRow] = []
    degenerate = False
    try:
        for fnr in settings.target_fnrs:
            precision, thresholds = precision_at_robust(
                x,
                y,
                settings.quality_thresholds,
                settings.quantiles,
                settings.n_bootstrap,
                settings.aggregation_mode,
                job.inverted_scale,
                fnr,
                settings.policy,
            )
            degenerate = degenerate or is_degenerate_curve(precision) or is_degenerate_curve(thresholds)
            rows.append(_row(job, fnr, settings, thresholds, precision))
    except RobustCurveError as exc:
        return JobOutcome(
            job=job,
            status=JobStatus.FAILED,
            rows=sentinel_rows(job, settings),
            message=f"{type(exc).__name__}: {exc}",
            elapsed_s=time.perf_counter() - start,
        )

    return JobOutcome(
        job=job,
        status=JobStatus.EMITTED,
        rows=rows,
        degenerate=degenerate,
        elapsed_s=time.perf_counter() - start,
    )


# ── Worker-process plumbing ──────────────────────────────────────────

_WORKER_TABLE: ColumnarTable | None = None


def _init_worker(table: ColumnarTable) -> None:
    global _WORKER_TABLE
    # Ctrl-C is handled by the parent as a cancellation request
    signal.signal(signal.SIGINT, signal.SIG_IGN)
    _WORKER_TABLE = table


def _run_job_in_worker(job: Job, settings: RunSettings) -> JobOutcome:
    if _WORKER_TABLE is None:
        raise RuntimeError("Worker table not initialized")
    return run_job(_WORKER_TABLE, job, settings)


# ── Batch ────────────────────────────────────────────────────────────


def _consume(outcome: JobOutcome, sink: Sink, report: BatchReport) -> None:
    """Parent-side handling of one finished job."""
    label = outcome.job.combination.label()
    if outcome.status is JobStatus.SKIPPED:
        logger.warning("Skipped %s: %s", label, outcome.message)
    elif outcome.status is JobStatus.FAILED:
        logger.error("Failed %s: %s", label, outcome.message)

    if outcome.degenerate:
        message = (
            f"Robust curve constant at 1.0 for dataset={outcome.job.dataset} {label}; "
            "check the upstream columns"
        )
        warnings.warn(message, DegenerateCurveWarning, stacklevel=2)
        logger.warning(message)

    for row in outcome.rows:
        sink(row)
    report.outcomes.append(outcome)


def _failed(job: Job, settings: RunSettings, message: str) -> JobOutcome:
    return JobOutcome(job=job, status=JobStatus.FAILED, rows=sentinel_rows(job, settings), message=message)


def _cancelled(job: Job) -> JobOutcome:
    return JobOutcome(job=job, status=JobStatus.SKIPPED, message="Batch cancelled before job started")


def resolve_workers(max_workers: int | None) -> int:
    if max_workers is None or max_workers <= 0:
        return os.cpu_count() or 1
    return max_workers


def run_batch(
    table: ColumnarTable,
    jobs: Sequence[Job],
    settings: RunSettings,
    sink: Sink,
    max_workers: int | None = None,
    job_timeout_s: float | None = None,
    cancel_event: threading.Event | None = None,
    show_progress: bool = True,
) -> BatchReport:
    """Run every job and forward the resulting rows to *sink*.

    Args:
        table: Read-only column table shared by all jobs.
        jobs: Jobs of one dataset (see ``make_jobs``).
        settings: Grids, bootstrap size, aggregation and engine policy.
        sink: Callable receiving each ``TraceRow``; only ever called from
            this (the parent) thread.
        max_workers: Worker processes. ``1`` runs in-process; ``None``
            uses every CPU.
        job_timeout_s: Mark a job failed when it runs longer than this.
            Only enforced with a worker pool.
        cancel_event: Checked between jobs; once set, unstarted jobs are
            recorded as skipped.
        show_progress: Display a tqdm progress bar.

    Returns:
        BatchReport with one outcome per job.

    Raises:
        ConfigurationError: If *settings* are invalid. Raised before any
            job runs.
    """
    settings.validate()

    dataset = jobs[0].dataset if jobs else ""
    report = BatchReport(dataset=dataset)
    workers = resolve_workers(max_workers)
    start = time.perf_counter()
    cancel_event = cancel_event or threading.Event()

    logger.info(
        "Running %d jobs x %d target FNRs (n_bootstrap=%d, aggregation=%s, workers=%d)",
        len(jobs),
        len(settings.target_fnrs),
        settings.n_bootstrap,
        settings.aggregation_mode,
        workers,
    )

    with tqdm(total=len(jobs), desc=dataset or "jobs", disable=not show_progress) as pbar:
        if workers <= 1:
            for job in jobs:
                if cancel_event.is_set():
                    _consume(_cancelled(job), sink, report)
                else:
                    _consume(run_job(table, job, settings), sink, report)
                pbar.update(1)
        else:
            _run_pool(table, jobs, settings, sink, report, workers, job_timeout_s, cancel_event, pbar)

    report.cancelled = cancel_event.is_set()
    report.elapsed_s = time.perf_counter() - start
    logger.info(
        "Batch %s finished in %.1fs: %d emitted, %d skipped, %d failed",
        dataset,
        report.elapsed_s,
        len(report.emitted),
        len(report.skipped),
        len(report.failed),
    )
    return report


def _new_executor(table: ColumnarTable, workers: int) -> ProcessPoolExecutor:
    return ProcessPoolExecutor(
        max_workers=workers,
        initializer=_init_worker,
        initargs=(table,),
    )


def _run_pool(
    table: ColumnarTable,
    jobs: Sequence[Job],
    settings: RunSettings,
    sink: Sink,
    report: BatchReport,
    workers: int,
    job_timeout_s: float | None,
    cancel_event: threading.Event,
    pbar: tqdm,
) -> None:
    # At most `workers` jobs in flight, so submission time ~ start time
    # and cancellation is honoured between jobs.
    #
    # A worker that dies takes every in-flight future of its pool down
    # with BrokenProcessPool. The pool is rebuilt and those jobs are rerun
    # one at a time ("suspects"); a job that breaks the pool while running
    # alone is the one marked failed.
    pending: dict[Future, tuple[Job, float]] = {}
    queue = list(jobs)
    queue.reverse()
    suspects: list[Job] = []
    isolating = False
    timed_out = False

    executor = _new_executor(table, workers)
    try:
        while queue or suspects or pending:
            broken = False
            # Isolation lasts until the last suspect has finished
            if not suspects and not pending:
                isolating = False
            limit = 1 if isolating else workers
            while (suspects or queue) and len(pending) < limit:
                source = suspects if suspects else queue
                job = source.pop()
                if cancel_event.is_set():
                    _consume(_cancelled(job), sink, report)
                    pbar.update(1)
                    continue
                try:
                    fut = executor.submit(_run_job_in_worker, job, settings)
                except BrokenProcessPool:
                    source.append(job)
                    broken = True
                    break
                pending[fut] = (job, time.monotonic())

            crashed: list[Job] = []
            if pending:
                done, _ = wait(list(pending), timeout=_POLL_INTERVAL_S, return_when=FIRST_COMPLETED)
                for fut in done:
                    job, _submitted = pending.pop(fut)
                    try:
                        outcome = fut.result()
                    except BrokenProcessPool:
                        crashed.append(job)
                        continue
                    except Exception as exc:  # raised outside run_job; isolate to this job
                        outcome = _failed(job, settings, f"Worker error: {type(exc).__name__}: {exc}")
                    _consume(outcome, sink, report)
                    pbar.update(1)

            if crashed or broken:
                # The other in-flight futures of a broken pool fail as well
                wait(list(pending), timeout=_POLL_INTERVAL_S)
                for fut, (job, _submitted) in list(pending.items()):
                    del pending[fut]
                    if fut.done() and not fut.cancelled() and fut.exception() is None:
                        _consume(fut.result(), sink, report)
                        pbar.update(1)
                    else:
                        crashed.append(job)

                executor.shutdown(wait=False, cancel_futures=True)
                executor = _new_executor(table, workers)

                if len(crashed) == 1:
                    _consume(
                        _failed(crashed[0], settings, "Worker process terminated abruptly"),
                        sink,
                        report,
                    )
                    pbar.update(1)
                elif crashed:
                    logger.warning(
                        "Worker pool broke with %d jobs in flight; rerunning them one at a time",
                        len(crashed),
                    )
                    suspects.extend(reversed(crashed))
                    isolating = True
                continue

            if job_timeout_s is not None:
                now = time.monotonic()
                for fut, (job, submitted) in list(pending.items()):
                    if now - submitted > job_timeout_s:
                        fut.cancel()
                        del pending[fut]
                        timed_out = True
                        _consume(
                            _failed(job, settings, f"Timed out after {job_timeout_s:.1f}s"),
                            sink,
                            report,
                        )
                        pbar.update(1)
    finally:
        # A timed-out job may still be running; do not block on it
        executor.shutdown(wait=not timed_out, cancel_futures=True)
