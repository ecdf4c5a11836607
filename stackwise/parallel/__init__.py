"""Parallel execution for hyperparameter sweeps and model lists."""

from stackwise.parallel.cancellation import CancellationToken
from stackwise.parallel.scheduler import (
    SweepJob,
    prepare_sweep_jobs,
    shared_matrices,
    allocate_workers,
    get_sweep_info
)
from stackwise.parallel.worker import (
    JobResult,
    positive_probabilities,
    install_sweep_data,
    clear_sweep_data,
    sweep_data,
    run_resample_job,
    run_jobs
)

__all__ = [
    'CancellationToken',
    'SweepJob',
    'prepare_sweep_jobs',
    'shared_matrices',
    'allocate_workers',
    'get_sweep_info',
    'JobResult',
    'positive_probabilities',
    'install_sweep_data',
    'clear_sweep_data',
    'sweep_data',
    'run_resample_job',
    'run_jobs'
]
