"""Structured logging for classification runs.

Every module logs through logging.getLogger(__name__), so all records land
under the 'stackwise' namespace. setup_logger() is called once by the entry
point (ClassificationWorkflow or a script) to attach handlers; the helpers
below give phase banners, progress lines and metric blocks a uniform shape.
"""

import logging
import math
from pathlib import Path
from typing import Any, Dict, Optional, Union

LOG_FORMAT = '[%(asctime)s] %(levelname)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
BANNER_WIDTH = 80


def setup_logger(
    name: str = 'stackwise',
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None
) -> logging.Logger:
    """Attach console (and optional file) handlers to a logger.

    Parameters
    ----------
    name : str, default='stackwise'
        Logger name; child module loggers propagate to it.
    level : int or str, default=logging.INFO
    log_file : Path, optional
        Also write to this file. Parent directories are created and an
        existing file is overwritten, so each run starts a fresh log.

    Returns
    -------
    logger : logging.Logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Repeated setup (e.g. one workflow per notebook cell) must not duplicate output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = [logging.StreamHandler()]
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode='w'))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def _banner(logger: logging.Logger, *lines: str) -> None:
    rule = "=" * BANNER_WIDTH
    logger.info(rule)
    for line in lines:
        if line:
            logger.info(line)
    logger.info(rule)


def log_phase_start(logger: logging.Logger, phase_name: str, details: str = "") -> None:
    """Banner marking the start of a workflow phase (split, selection, stacking...)."""
    _banner(logger, phase_name.upper(), details)


def log_phase_end(logger: logging.Logger, phase_name: str, elapsed_time: Optional[float] = None) -> None:
    timing = f" ({elapsed_time:.1f}s)" if elapsed_time is not None else ""
    _banner(logger, f"{phase_name.upper()} COMPLETE{timing}")


def log_training_progress(
    logger: logging.Logger,
    current: int,
    total: int,
    message: str = "Training progress"
) -> None:
    pct = (current / total * 100) if total > 0 else 0
    logger.info(f"{message}: {current}/{total} ({pct:.1f}%)")


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return "undefined" if math.isnan(value) else f"{value:.6f}"
    return str(value)


def log_performance_metrics(
    logger: logging.Logger,
    metrics: Dict[str, Any],
    prefix: str = ""
) -> None:
    """Log one metric per line, indented under an optional heading.

    Floats are shown with six decimals; NaN (a 0/0 statistic or a
    single-class ROC) is shown as 'undefined'.
    """
    if prefix:
        logger.info(f"{prefix}:")
    width = max((len(name) for name in metrics), default=0)
    for name, value in metrics.items():
        logger.info(f"  {name:<{width}}: {_format_value(value)}")


def log_error(logger: logging.Logger, error: Exception, context: str = "") -> None:
    where = f"Error in {context}: " if context else ""
    logger.error(f"{where}{type(error).__name__}: {error}")


def log_warning(logger: logging.Logger, message: str) -> None:
    logger.warning(f"⚠️  {message}")


def log_success(logger: logging.Logger, message: str) -> None:
    logger.info(f"✓ {message}")
