"""Common interface for transform stages.

A stage never stores fitted state on itself. fit() returns an immutable
artifact and apply() takes that artifact explicitly, so the same stage
object can be shared and an artifact can be replayed anywhere.
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence

import numpy as np
import pandas as pd
from pandas.api import types as pdtypes

from stackwise.errors import FeatureLayoutMismatchError


class TransformStage(ABC):
    """Base class for Imputer, Encoder and Normalizer stages."""

    name = 'stage'

    @abstractmethod
    def fit(self, data: pd.DataFrame) -> Any:
        """Learn parameters from training data and return a frozen artifact."""

    @abstractmethod
    def apply(self, artifact: Any, data: pd.DataFrame) -> pd.DataFrame:
        """Transform any data with a previously fitted artifact."""


def align_columns(data: pd.DataFrame, expected: Sequence[str], context: str) -> pd.DataFrame:
    """Return a copy of data with exactly the expected columns, in fit order.

    Raises
    ------
    FeatureLayoutMismatchError
        If the column set differs from the expected one.
    """
    expected = list(expected)
    received = list(data.columns)
    if set(received) != set(expected) or len(received) != len(expected):
        raise FeatureLayoutMismatchError(expected, received, context)
    return data.loc[:, expected].copy()


def frozen_array(values, dtype=None) -> np.ndarray:
    """Copy values into a read-only array."""
    array = np.array(values, dtype=dtype)
    array.setflags(write=False)
    return array


def infer_categorical(data: pd.DataFrame) -> list:
    """Columns treated as categorical when no explicit list is given."""
    return [
        col for col in data.columns
        if pdtypes.is_object_dtype(data[col])
        or isinstance(data[col].dtype, pd.CategoricalDtype)
        or pdtypes.is_bool_dtype(data[col])
        or pdtypes.is_string_dtype(data[col])
    ]


def check_numeric(data: pd.DataFrame, columns: Sequence[str], context: str) -> None:
    non_numeric = [c for c in columns if not pdtypes.is_numeric_dtype(data[c])]
    if non_numeric:
        raise ValueError(f"{context}: columns {non_numeric} are not numeric")
