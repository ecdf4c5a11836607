"""Run tracking: SQLite run database and structured logging helpers."""

from stackwise.tracking.database import RunDatabase
from stackwise.tracking.logger import (
    setup_logger,
    log_phase_start,
    log_phase_end,
    log_training_progress,
    log_performance_metrics,
    log_error,
    log_warning,
    log_success
)

__all__ = [
    'RunDatabase',
    'setup_logger',
    'log_phase_start',
    'log_phase_end',
    'log_training_progress',
    'log_performance_metrics',
    'log_error',
    'log_warning',
    'log_success'
]
