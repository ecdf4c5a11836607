"""Held-out evaluation and resample-level model comparison."""

from stackwise.evaluation.report import ClassificationReport, RocCurve, evaluate, roc_report
from stackwise.evaluation.comparison import ResampleComparator

__all__ = [
    'ClassificationReport',
    'RocCurve',
    'evaluate',
    'roc_report',
    'ResampleComparator'
]
