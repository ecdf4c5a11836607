"""Core workflow abstractions.

This subpackage provides the building blocks shared by tuning, selection
and stacking:
- Explicit random sources
- Resampling (fold assignment)
- Metric registry
- Diversity scoring (model correlation)
"""

from stackwise.core.random_source import RandomSource
from stackwise.core.resampling import Resample, make_resamples, holdout_coverage
from stackwise.core.metrics import METRICS, Metric, get_metric, score, best_index
from stackwise.core.diversity import DiversityScorer

__all__ = [
    'RandomSource',
    'Resample',
    'make_resamples',
    'holdout_coverage',
    'METRICS',
    'Metric',
    'get_metric',
    'score',
    'best_index',
    'DiversityScorer'
]
