"""Algorithm registry, resampled hyperparameter tuning and trained models."""

from stackwise.training.algorithms import (
    ALGORITHMS,
    AlgorithmConfig,
    AlgorithmRegistry,
    expand_grid,
    get_default_algorithm_configs,
    register_algorithm
)
from stackwise.training.model import OutOfFoldPredictions, TrainedModel
from stackwise.training.trainer import ModelTrainer, binary_labels

__all__ = [
    'ALGORITHMS',
    'AlgorithmConfig',
    'AlgorithmRegistry',
    'expand_grid',
    'get_default_algorithm_configs',
    'register_algorithm',
    'OutOfFoldPredictions',
    'TrainedModel',
    'ModelTrainer',
    'binary_labels'
]
