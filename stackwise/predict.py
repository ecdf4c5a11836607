"""Single-observation prediction entrypoint.

A raw observation goes through the fitted pipeline and then through a
trained model, an ensemble, or a soft vote over several trained models.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence, Union

import numpy as np
import pandas as pd

from stackwise.preprocessing.pipeline import Pipeline
from stackwise.stacking.stacker import EnsembleModel
from stackwise.training.model import TrainedModel


@dataclass(frozen=True)
class Prediction:
    """Predicted label and class probabilities of one observation."""
    label: Any
    probabilities: Dict[Any, float]


def _as_frame(raw_row) -> pd.DataFrame:
    if isinstance(raw_row, pd.DataFrame):
        frame = raw_row
    elif isinstance(raw_row, pd.Series):
        frame = raw_row.to_frame().T
    elif isinstance(raw_row, Mapping):
        frame = pd.DataFrame([dict(raw_row)])
    else:
        raise TypeError(
            f"raw_row must be a mapping, Series or one-row DataFrame, got {type(raw_row).__name__}"
        )

    if len(frame) != 1:
        raise ValueError(f"Expected a single observation, got {len(frame)} rows")
    # Series.to_frame().T leaves every column as object
    frame = frame.infer_objects()
    for column in frame.columns:
        if frame[column].dtype == object and frame[column].isna().all():
            frame[column] = np.nan
    return frame


def _positive_probability(model, features: pd.DataFrame) -> float:
    columns = list(model.input_columns)
    return float(model.positive_probability(features[columns])[0])


def predict(
    pipeline: Pipeline,
    model: Union[TrainedModel, EnsembleModel, Sequence[TrainedModel]],
    raw_row
) -> Prediction:
    """Predict one raw observation.

    Parameters
    ----------
    pipeline : Pipeline
        Fitted (or artifact-loaded) pipeline.
    model : TrainedModel, EnsembleModel or list of TrainedModel
        A list is combined by averaging the positive-class probabilities.
    raw_row : mapping, pd.Series or one-row pd.DataFrame
        Raw feature values; a label entry is ignored.

    Returns
    -------
    prediction : Prediction
    """
    features = pipeline.apply(_as_frame(raw_row))

    if isinstance(model, (TrainedModel, EnsembleModel)):
        members = [model]
    else:
        members = list(model)
        if not members:
            raise ValueError("At least one model is required")
        positives = {m.positive_class for m in members}
        if len(positives) > 1:
            raise ValueError(f"Models disagree on the positive class: {positives}")

    positive = float(np.mean([_positive_probability(m, features) for m in members]))
    negative_class, positive_class = members[0].classes

    label = positive_class if positive >= 0.5 else negative_class
    return Prediction(
        label=label,
        probabilities={negative_class: 1.0 - positive, positive_class: positive}
    )
