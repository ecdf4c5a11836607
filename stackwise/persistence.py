"""Saving and loading of fitted artifacts with joblib.

A fitted pipeline is stored as three files, one per stage artifact:
imputation.joblib, encoding.joblib and normalization.joblib. Trained and
ensemble models are stored as a single bundle with metadata. Loading never
needs the training data.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import joblib

from stackwise.errors import PipelineStateError
from stackwise.preprocessing.encoder import EncodingArtifact
from stackwise.preprocessing.imputer import ImputationArtifact
from stackwise.preprocessing.normalizer import NormalizationArtifact
from stackwise.preprocessing.pipeline import Pipeline, PipelineArtifacts
from stackwise.stacking.stacker import EnsembleModel
from stackwise.training.model import TrainedModel

logger = logging.getLogger(__name__)

ARTIFACT_FILES = {
    'imputation': ('imputation.joblib', ImputationArtifact),
    'encoding': ('encoding.joblib', EncodingArtifact),
    'normalization': ('normalization.joblib', NormalizationArtifact),
}


def save_pipeline(pipeline: Pipeline, directory: Union[str, Path]) -> Path:
    """Write the three stage artifacts of a fitted pipeline.

    Parameters
    ----------
    pipeline : Pipeline
        A fitted pipeline.
    directory : str or Path
        Created if missing.

    Returns
    -------
    directory : Path
    """
    if not pipeline.is_fitted:
        raise PipelineStateError("Cannot save an unfitted pipeline")

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    artifacts = pipeline.artifacts
    for stage, (filename, _) in ARTIFACT_FILES.items():
        joblib.dump(getattr(artifacts, stage), directory / filename, compress=3)

    logger.info(f"Pipeline artifacts saved to {directory}")
    return directory


def load_pipeline(directory: Union[str, Path], label_column: Optional[str] = None) -> Pipeline:
    """Rebuild an apply-only pipeline from saved artifacts.

    Raises
    ------
    FileNotFoundError
        If an artifact file is missing.
    TypeError
        If a file holds an object of the wrong type.
    """
    directory = Path(directory)
    loaded = {}
    for stage, (filename, artifact_type) in ARTIFACT_FILES.items():
        path = directory / filename
        if not path.exists():
            raise FileNotFoundError(f"Missing pipeline artifact: {path}")
        artifact = joblib.load(path)
        if not isinstance(artifact, artifact_type):
            raise TypeError(f"{path} holds {type(artifact).__name__}, expected {artifact_type.__name__}")
        loaded[stage] = artifact

    return Pipeline.from_artifacts(PipelineArtifacts(**loaded), label_column=label_column)


def save_model(model: Union[TrainedModel, EnsembleModel], path: Union[str, Path]) -> Path:
    """Write a trained or ensemble model bundle."""
    if not isinstance(model, (TrainedModel, EnsembleModel)):
        raise TypeError(f"Expected TrainedModel or EnsembleModel, got {type(model).__name__}")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    bundle = {
        'model': model,
        'metadata': {
            'name': model.name,
            'type': type(model).__name__,
            'positive_class': model.positive_class,
            'saved': datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        }
    }
    joblib.dump(bundle, path, compress=3)
    logger.info(f"Model '{model.name}' saved: {path.name} ({path.stat().st_size / (1024**2):.1f} MB)")
    return path


def load_model(path: Union[str, Path]) -> Union[TrainedModel, EnsembleModel]:
    """Load a model bundle written by save_model."""
    bundle = joblib.load(Path(path))
    if not isinstance(bundle, dict) or 'model' not in bundle:
        raise TypeError(f"{path} is not a stackwise model bundle")

    model = bundle['model']
    if not isinstance(model, (TrainedModel, EnsembleModel)):
        raise TypeError(f"{path} holds {type(model).__name__}, not a trained model")
    return model
