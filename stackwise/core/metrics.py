"""Metric registry used to score held-out predictions.

Every metric takes binary observed labels (1 = positive class) and
positive-class probabilities. A holdout set lacking either class makes the
metric undefined: score() raises UndefinedMetricError and the caller
records the value as missing.
"""

from dataclasses import dataclass
from typing import Callable, Dict

import numpy as np
from sklearn.metrics import (
    roc_auc_score, accuracy_score, cohen_kappa_score, recall_score,
    f1_score, log_loss
)

from stackwise.errors import UndefinedMetricError


@dataclass(frozen=True)
class Metric:
    """A named scoring function and its optimization direction."""
    name: str
    function: Callable[[np.ndarray, np.ndarray], float]
    greater_is_better: bool = True


def _labels(probabilities: np.ndarray, threshold: float = 0.5) -> np.ndarray:
    return (probabilities >= threshold).astype(int)


def _specificity(y_true, probabilities):
    return recall_score(y_true, _labels(probabilities), pos_label=0, zero_division=np.nan)


METRICS: Dict[str, Metric] = {
    'roc_auc': Metric('roc_auc', lambda y, p: roc_auc_score(y, p)),
    'accuracy': Metric('accuracy', lambda y, p: accuracy_score(y, _labels(p))),
    'kappa': Metric('kappa', lambda y, p: cohen_kappa_score(y, _labels(p))),
    'sensitivity': Metric(
        'sensitivity', lambda y, p: recall_score(y, _labels(p), zero_division=np.nan)
    ),
    'specificity': Metric('specificity', _specificity),
    'f1': Metric('f1', lambda y, p: f1_score(y, _labels(p), zero_division=np.nan)),
    'log_loss': Metric(
        'log_loss', lambda y, p: log_loss(y, np.clip(p, 1e-15, 1 - 1e-15), labels=[0, 1]),
        greater_is_better=False
    ),
}


def get_metric(name: str) -> Metric:
    if name not in METRICS:
        raise KeyError(f"Metric '{name}' not found. Available: {list(METRICS.keys())}")
    return METRICS[name]


def score(metric_name: str, y_true, probabilities) -> float:
    """Score held-out probabilities.

    Parameters
    ----------
    metric_name : str
        Registered metric name.
    y_true : array-like
        Observed labels encoded as 1 (positive) / 0 (negative).
    probabilities : array-like
        Positive-class probabilities.

    Returns
    -------
    value : float

    Raises
    ------
    UndefinedMetricError
        If y_true does not contain both classes, or the metric evaluates to NaN.
    """
    metric = get_metric(metric_name)
    y_true = np.asarray(y_true, dtype=int)
    probabilities = np.asarray(probabilities, dtype=float)

    if len(np.unique(y_true)) < 2:
        raise UndefinedMetricError(
            f"{metric_name} is undefined: held-out rows contain a single class"
        )

    value = float(metric.function(y_true, probabilities))
    if np.isnan(value):
        raise UndefinedMetricError(f"{metric_name} evaluated to NaN")
    return value


def best_index(values, metric_name: str) -> int:
    """Index of the best value (first on ties) according to the metric direction."""
    values = np.asarray(values, dtype=float)
    if np.all(np.isnan(values)):
        raise ValueError("No defined values to select from")
    if get_metric(metric_name).greater_is_better:
        return int(np.nanargmax(values))
    return int(np.nanargmin(values))
