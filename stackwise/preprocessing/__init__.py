"""Transform stages and the preprocessing pipeline.

This subpackage provides the stages, each returning an immutable artifact
from fit() and consuming it in apply():
- KNNImputer: k-nearest-neighbor imputation
- OneHotEncoder: one binary column per fit-time category
- RangeNormalizer: min/max range scaling without clipping
- Pipeline: fixed Imputer -> Encoder -> Normalizer composition
"""

from stackwise.preprocessing.base import TransformStage
from stackwise.preprocessing.imputer import KNNImputer, ImputationArtifact
from stackwise.preprocessing.encoder import OneHotEncoder, EncodingArtifact
from stackwise.preprocessing.normalizer import RangeNormalizer, NormalizationArtifact
from stackwise.preprocessing.pipeline import Pipeline, PipelineArtifacts

__all__ = [
    'TransformStage',
    'KNNImputer',
    'ImputationArtifact',
    'OneHotEncoder',
    'EncodingArtifact',
    'RangeNormalizer',
    'NormalizationArtifact',
    'Pipeline',
    'PipelineArtifacts'
]
