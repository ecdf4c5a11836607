"""Job execution for sweeps and model lists.

run_resample_job() fits one estimator on one resample and scores it. It
runs unchanged inline or inside a worker process, reading the sweep's
training matrices from install_sweep_data(). run_jobs() drives a list of
jobs either inline (n_workers == 1) or on a ProcessPoolExecutor, runs an
optional initializer once per process, checks the cancellation token
between job boundaries and returns results in job order regardless of
completion order.
"""

import logging
import time
import warnings
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.base import clone

from stackwise.core.metrics import score
from stackwise.errors import SweepCancelledError, UndefinedMetricError
from stackwise.parallel.cancellation import CancellationToken
from stackwise.parallel.scheduler import SweepJob, allocate_workers

logger = logging.getLogger(__name__)

# Training matrices of the sweep running in this process
_SWEEP_DATA: Dict[str, np.ndarray] = {}


def install_sweep_data(X: np.ndarray, y: np.ndarray) -> None:
    """Make a sweep's training matrices available to the jobs of this process."""
    _SWEEP_DATA['X'] = X
    _SWEEP_DATA['y'] = y


def clear_sweep_data() -> None:
    _SWEEP_DATA.clear()


def sweep_data() -> Tuple[np.ndarray, np.ndarray]:
    """The installed (X, y) pair.

    Raises
    ------
    RuntimeError
        If no sweep data was installed in this process.
    """
    if 'X' not in _SWEEP_DATA:
        raise RuntimeError("No sweep data installed; pass install_sweep_data as the run_jobs initializer")
    return _SWEEP_DATA['X'], _SWEEP_DATA['y']


@dataclass(frozen=True)
class JobResult:
    """Outcome of one (combination, resample) job.

    A failed fit leaves probabilities as None and error set. An undefined
    metric leaves value as NaN with undefined=True; the probabilities are
    still kept for the out-of-fold record.
    """
    combination_id: int
    resample_id: int
    holdout_index: np.ndarray = field(repr=False)
    probabilities: Optional[np.ndarray] = field(repr=False)
    value: float
    undefined: bool = False
    error: Optional[str] = None
    fit_time: float = 0.0

    @property
    def failed(self) -> bool:
        return self.error is not None


def positive_probabilities(estimator, X: np.ndarray) -> np.ndarray:
    """Probability of label 1 from a fitted binary estimator."""
    probabilities = estimator.predict_proba(X)
    classes = list(estimator.classes_)
    if 1 not in classes:
        return np.zeros(len(X))
    return np.asarray(probabilities[:, classes.index(1)], dtype=float)


def run_resample_job(job: SweepJob) -> JobResult:
    """Fit a fresh clone on the training rows and score the holdout rows."""
    X, y = sweep_data()
    resample = job.resample
    start = time.perf_counter()

    try:
        estimator = clone(job.estimator)
        with warnings.catch_warnings():
            warnings.filterwarnings('ignore', category=UserWarning, module='sklearn')
            warnings.filterwarnings('ignore', category=FutureWarning, module='sklearn')
            estimator.fit(X[resample.train_index], y[resample.train_index])
            probabilities = positive_probabilities(estimator, X[resample.holdout_index])

    except Exception as e:
        # Estimator failures are recorded, the trainer decides what to skip
        return JobResult(
            combination_id=job.combination_id,
            resample_id=resample.resample_id,
            holdout_index=resample.holdout_index,
            probabilities=None,
            value=np.nan,
            error=f"{type(e).__name__}: {str(e)}",
            fit_time=time.perf_counter() - start
        )

    fit_time = time.perf_counter() - start

    try:
        value = score(job.metric, y[resample.holdout_index], probabilities)
        undefined = False
    except UndefinedMetricError:
        value = np.nan
        undefined = True

    return JobResult(
        combination_id=job.combination_id,
        resample_id=resample.resample_id,
        holdout_index=resample.holdout_index,
        probabilities=probabilities,
        value=value,
        undefined=undefined,
        fit_time=fit_time
    )


def run_jobs(
    function: Callable[[Any], Any],
    jobs: Sequence[Any],
    n_workers: int = 1,
    cancel_token: Optional[CancellationToken] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    description: str = 'Jobs',
    initializer: Optional[Callable[..., None]] = None,
    initargs: tuple = ()
) -> List[Any]:
    """Run function over jobs, inline or on a process pool.

    Parameters
    ----------
    function : callable
        Top-level (picklable) function applied to each job.
    jobs : sequence
        Job payloads.
    n_workers : int, default=1
        1 runs inline; larger values use a ProcessPoolExecutor bounded by
        the CPU count.
    cancel_token : CancellationToken, optional
        Checked before each job (inline) or after each completion (pool).
    progress_callback : callable, optional
        Called with (completed, total) after every finished job.
    description : str
        Label used in progress log lines.
    initializer : callable, optional
        Called with initargs once before the first job: inline in this
        process, or once in every pool worker. Shared read-only data goes
        through here instead of being pickled with each job.
    initargs : tuple

    Returns
    -------
    results : list
        One result per job, in the order of jobs.

    Raises
    ------
    SweepCancelledError
        If the token is set; partial results are discarded.
    """
    total = len(jobs)
    results: List[Any] = [None] * total
    log_every = max(1, total // 10)

    def _check_cancelled():
        if cancel_token is not None and cancel_token.cancelled:
            raise SweepCancelledError(f"{description} cancelled; partial results discarded")

    def _completed(count):
        if progress_callback is not None:
            progress_callback(count, total)
        if count % log_every == 0 or count == total:
            pct = (count / total * 100) if total > 0 else 0
            logger.debug(f"{description}: {count}/{total} ({pct:.1f}%)")

    workers = allocate_workers(n_workers, total) if total else 1

    if workers == 1:
        if initializer is not None:
            initializer(*initargs)
        for position, job in enumerate(jobs):
            _check_cancelled()
            results[position] = function(job)
            _completed(position + 1)
        _check_cancelled()
        return results

    executor = ProcessPoolExecutor(max_workers=workers, initializer=initializer, initargs=initargs)
    try:
        future_to_position = {
            executor.submit(function, job): position
            for position, job in enumerate(jobs)
        }

        for count, future in enumerate(as_completed(future_to_position), start=1):
            _check_cancelled()
            results[future_to_position[future]] = future.result()
            _completed(count)
        _check_cancelled()

    except SweepCancelledError:
        executor.shutdown(wait=True, cancel_futures=True)
        raise

    finally:
        executor.shutdown(wait=True)

    return results
