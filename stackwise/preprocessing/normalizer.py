"""Range normalization stage.

Maps each column to (x - min) / (max - min) with a sklearn MinMaxScaler
fitted on the training data. Values outside the training range are NOT
clipped: a test value above the training max lands above 1. A constant
column has its range mapped to 1, so it keeps its offset from the
training value.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.preprocessing import MinMaxScaler

from stackwise.preprocessing.base import TransformStage, align_columns, frozen_array, check_numeric


@dataclass(frozen=True, eq=False)
class NormalizationArtifact:
    """Per-column training minimum and range, plus the fitted scaler."""
    columns: Tuple[str, ...]
    mins: np.ndarray = field(repr=False)
    ranges: np.ndarray = field(repr=False)
    scaler: Optional[MinMaxScaler] = field(default=None, repr=False)

    @property
    def maxs(self) -> np.ndarray:
        return self.mins + self.ranges


class RangeNormalizer(TransformStage):
    """Scales numeric columns by the training range."""

    name = 'normalization'

    def fit(self, data: pd.DataFrame) -> NormalizationArtifact:
        check_numeric(data, list(data.columns), 'RangeNormalizer.fit')

        if len(data) == 0:
            raise ValueError("RangeNormalizer.fit requires at least one row")

        if data.shape[1] == 0:
            return NormalizationArtifact(columns=(), mins=frozen_array([], float), ranges=frozen_array([], float))

        scaler = MinMaxScaler(clip=False)
        scaler.fit(data.astype(float))

        return NormalizationArtifact(
            columns=tuple(data.columns),
            mins=frozen_array(scaler.data_min_, float),
            ranges=frozen_array(scaler.data_range_, float),
            scaler=scaler
        )

    def apply(self, artifact: NormalizationArtifact, data: pd.DataFrame) -> pd.DataFrame:
        data = align_columns(data, artifact.columns, 'RangeNormalizer.apply')
        if artifact.scaler is None or len(data) == 0:
            scaled = data.to_numpy(dtype=float)
        else:
            scaled = artifact.scaler.transform(data.astype(float))
        return pd.DataFrame(scaled, index=data.index, columns=list(artifact.columns))
