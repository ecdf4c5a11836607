"""Job preparation and worker allocation for parallel sweeps.

A sweep is the Cartesian product of hyperparameter combinations and
resamples. Each job carries an unfitted estimator (already seeded), the
resample and the metric name. The training matrices are shared by every
job of a sweep, so they are not part of the job: run_jobs() installs them
once per worker process (or once inline) through its initializer.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import psutil
from sklearn.base import BaseEstimator

from stackwise.core.resampling import Resample


@dataclass(frozen=True)
class SweepJob:
    """One (combination, resample) unit of work."""
    combination_id: int
    params: Dict[str, Any]
    estimator: BaseEstimator = field(repr=False)
    resample: Resample = field(repr=False)
    metric: str = 'roc_auc'

    @property
    def key(self) -> Tuple[int, int]:
        return (self.combination_id, self.resample.resample_id)


def shared_matrices(X, y) -> Tuple[np.ndarray, np.ndarray]:
    """Read-only float matrix and 0/1 label copies shared by a sweep's jobs."""
    X = np.array(X, dtype=float)
    y = np.array(y, dtype=int)
    if X.ndim != 2 or len(X) != len(y):
        raise ValueError(f"Expected a 2-d matrix with one label per row, got {X.shape} and {y.shape}")
    X.setflags(write=False)
    y.setflags(write=False)
    return X, y


def prepare_sweep_jobs(
    estimators: Sequence[Tuple[int, Dict[str, Any], BaseEstimator]],
    resamples: Sequence[Resample],
    metric: str
) -> List[SweepJob]:
    """Prepare the jobs of a sweep.

    Parameters
    ----------
    estimators : sequence of (combination_id, params, estimator)
        One unfitted estimator per hyperparameter combination.
    resamples : sequence of Resample
    metric : str
        Registered metric name.

    Returns
    -------
    jobs : list of SweepJob
        Ordered by (combination id, resample id).
    """
    jobs = [
        SweepJob(
            combination_id=combination_id,
            params=dict(params),
            estimator=estimator,
            resample=resample,
            metric=metric
        )
        for combination_id, params, estimator in estimators
        for resample in resamples
    ]
    return sorted(jobs, key=lambda job: job.key)


def allocate_workers(n_workers: int, n_jobs: int) -> int:
    """Bound the requested worker count by the CPU count and the job count."""
    if n_workers < 1:
        raise ValueError(f"n_workers must be >= 1, got {n_workers}")
    available = psutil.cpu_count(logical=True) or 1
    return max(1, min(n_workers, available, n_jobs))


def get_sweep_info(jobs: Sequence[SweepJob], X: np.ndarray) -> Dict[str, Any]:
    """Summarize a prepared sweep over matrix X for logging."""
    if not jobs:
        return {'n_jobs': 0, 'n_combinations': 0, 'n_resamples': 0, 'n_rows': 0}

    return {
        'n_jobs': len(jobs),
        'n_combinations': len({job.combination_id for job in jobs}),
        'n_resamples': len({job.resample.resample_id for job in jobs}),
        'n_rows': int(X.shape[0]),
        'n_features': int(X.shape[1])
    }
