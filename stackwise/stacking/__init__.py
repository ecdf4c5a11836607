"""Stacked ensembles trained on out-of-fold base-model predictions."""

from stackwise.stacking.stacker import EnsembleModel, EnsembleStacker, train_model_list

__all__ = [
    'EnsembleModel',
    'EnsembleStacker',
    'train_model_list'
]
