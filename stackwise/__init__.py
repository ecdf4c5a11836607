"""stackwise: reproducible binary classification with resampled tuning and stacking.

Subpackages:
- core: random sources, resampling, metrics, prediction diversity
- data: dataset loading and stratified splitting
- preprocessing: k-NN imputation, one-hot encoding, range normalization
- training: algorithm registry, tuning sweeps, trained models
- parallel: job execution and cancellation
- selection: recursive feature elimination
- stacking: stacked ensembles
- evaluation: held-out reports and resample comparison
- tracking: run database and logging
"""

__version__ = '0.1.0'

from stackwise.config import WorkflowConfig
from stackwise.core.random_source import RandomSource
from stackwise.data import DataSplit, load_dataset, split_dataset
from stackwise.evaluation import ResampleComparator, evaluate, roc_report
from stackwise.parallel import CancellationToken
from stackwise.persistence import load_model, load_pipeline, save_model, save_pipeline
from stackwise.predict import Prediction, predict
from stackwise.preprocessing import Pipeline
from stackwise.selection import RecursiveFeatureEliminator
from stackwise.stacking import EnsembleModel, EnsembleStacker, train_model_list
from stackwise.training import ALGORITHMS, AlgorithmConfig, ModelTrainer, TrainedModel, register_algorithm
from stackwise.workflow import ClassificationWorkflow, WorkflowResult

__all__ = [
    '__version__',
    'WorkflowConfig',
    'RandomSource',
    'DataSplit',
    'load_dataset',
    'split_dataset',
    'ResampleComparator',
    'evaluate',
    'roc_report',
    'CancellationToken',
    'load_model',
    'load_pipeline',
    'save_model',
    'save_pipeline',
    'Prediction',
    'predict',
    'Pipeline',
    'RecursiveFeatureEliminator',
    'EnsembleModel',
    'EnsembleStacker',
    'train_model_list',
    'ALGORITHMS',
    'AlgorithmConfig',
    'ModelTrainer',
    'TrainedModel',
    'register_algorithm',
    'ClassificationWorkflow',
    'WorkflowResult'
]
