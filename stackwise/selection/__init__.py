"""Resampled recursive feature elimination."""

from stackwise.selection.rfe import (
    FeatureSelection,
    RecursiveFeatureEliminator,
    candidate_sizes,
    eliminate,
    importance_ranking
)

__all__ = [
    'FeatureSelection',
    'RecursiveFeatureEliminator',
    'candidate_sizes',
    'eliminate',
    'importance_ranking'
]
