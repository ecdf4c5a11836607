"""k-nearest-neighbor imputation stage.

Fit standardizes the numeric training features and keeps them as the
neighbor index. Apply fills each missing cell from the k nearest training
rows that have the cell observed, measured on the jointly standardized
numeric features the row itself has observed.

Categorical participation in the distance is an explicit policy:
- 'exclude': distance uses numeric features only
- 'mismatch': each differing, observed categorical value adds 1 to the
  squared distance
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import numpy as np
import pandas as pd

from stackwise.config import CATEGORICAL_DISTANCE_POLICIES
from stackwise.preprocessing.base import (
    TransformStage, align_columns, frozen_array, infer_categorical, check_numeric
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ImputationArtifact:
    """Parameters learned by KNNImputer.fit.

    Attributes:
        columns: Fit-time input layout
        numeric_features: Numeric columns (distance space)
        categorical_features: Categorical columns
        means: Per numeric feature training mean (also the numeric fallback)
        stds: Per numeric feature training standard deviation (0 replaced by 1)
        numeric_values: Raw training numeric values, NaN where missing
        standardized: Standardized training numeric values (the neighbor index)
        categorical_values: Training categorical values, None where missing
        categorical_modes: Per categorical feature training mode (the fallback)
        n_neighbors: Neighbors averaged per imputed cell
        categorical_distance: Distance policy for categorical features
    """
    columns: Tuple[str, ...]
    numeric_features: Tuple[str, ...]
    categorical_features: Tuple[str, ...]
    means: np.ndarray = field(repr=False)
    stds: np.ndarray = field(repr=False)
    numeric_values: np.ndarray = field(repr=False)
    standardized: np.ndarray = field(repr=False)
    categorical_values: np.ndarray = field(repr=False)
    categorical_modes: Tuple[Any, ...]
    n_neighbors: int
    categorical_distance: str

    @property
    def n_training_rows(self) -> int:
        return self.standardized.shape[0]


def _mode(values: pd.Series):
    counts = values.dropna().value_counts()
    if counts.empty:
        return None
    tied = counts[counts == counts.max()].index
    return sorted(tied, key=str)[0]


class KNNImputer(TransformStage):
    """Fills missing values with neighbor means (numeric) or modes (categorical).

    Parameters
    ----------
    n_neighbors : int, default=5
        Number of donors per imputed cell. A cell with fewer eligible donors
        falls back to the training mean (numeric) or mode (categorical).
    categorical_distance : str, default='exclude'
        'exclude' or 'mismatch', see module docstring.
    categorical_features : list of str, optional
        Explicit categorical columns. Inferred from dtypes when None.
    """

    name = 'imputation'

    def __init__(
        self,
        n_neighbors: int = 5,
        categorical_distance: str = 'exclude',
        categorical_features: Optional[List[str]] = None
    ):
        if n_neighbors < 1:
            raise ValueError("n_neighbors must be at least 1")
        if categorical_distance not in CATEGORICAL_DISTANCE_POLICIES:
            raise ValueError(
                f"categorical_distance must be one of {CATEGORICAL_DISTANCE_POLICIES}"
            )
        self.n_neighbors = n_neighbors
        self.categorical_distance = categorical_distance
        self.categorical_features = categorical_features

    def fit(self, data: pd.DataFrame) -> ImputationArtifact:
        """Build the neighbor index from training data.

        Parameters
        ----------
        data : pd.DataFrame
            Training features (no label column).

        Returns
        -------
        artifact : ImputationArtifact
        """
        if self.categorical_features is None:
            categorical = infer_categorical(data)
        else:
            categorical = [c for c in data.columns if c in set(self.categorical_features)]
        numeric = [c for c in data.columns if c not in set(categorical)]
        check_numeric(data, numeric, 'KNNImputer.fit')

        values = data[numeric].to_numpy(dtype=float)

        with warnings.catch_warnings():
            warnings.simplefilter('ignore', category=RuntimeWarning)
            means = np.nanmean(values, axis=0) if numeric else np.zeros(0)
            ddof = 1 if len(data) > 1 else 0
            stds = np.nanstd(values, axis=0, ddof=ddof) if numeric else np.zeros(0)

        # All-missing columns have no mean; zero-variance columns cannot be scaled
        means = np.where(np.isnan(means), 0.0, means)
        stds = np.where(np.isnan(stds) | (stds == 0), 1.0, stds)

        standardized = (values - means) / stds

        cat_values = data[categorical].astype(object).to_numpy()
        cat_values = np.where(pd.isna(cat_values), None, cat_values)
        modes = tuple(_mode(data[c]) for c in categorical)

        n_missing = int(data.isna().sum().sum())
        logger.debug(
            f"KNNImputer fitted on {len(data)} rows "
            f"({len(numeric)} numeric, {len(categorical)} categorical, {n_missing} missing cells)"
        )

        return ImputationArtifact(
            columns=tuple(data.columns),
            numeric_features=tuple(numeric),
            categorical_features=tuple(categorical),
            means=frozen_array(means, float),
            stds=frozen_array(stds, float),
            numeric_values=frozen_array(values, float),
            standardized=frozen_array(standardized, float),
            categorical_values=frozen_array(cat_values, object),
            categorical_modes=modes,
            n_neighbors=self.n_neighbors,
            categorical_distance=self.categorical_distance
        )

    def apply(self, artifact: ImputationArtifact, data: pd.DataFrame) -> pd.DataFrame:
        """Impute missing values using the fitted neighbor index.

        Parameters
        ----------
        artifact : ImputationArtifact
            Output of fit(); never modified.
        data : pd.DataFrame
            Data with the fit-time columns.

        Returns
        -------
        imputed : pd.DataFrame
            Copy of data in fit-time column order with no missing values
            (unless a whole training column was missing).
        """
        out = align_columns(data, artifact.columns, 'KNNImputer.apply')

        numeric = list(artifact.numeric_features)
        categorical = list(artifact.categorical_features)

        values = out[numeric].to_numpy(dtype=float)
        z = (values - artifact.means) / artifact.stds
        cats = out[categorical].astype(object).to_numpy()
        cats = np.where(pd.isna(cats), None, cats)

        num_missing = np.isnan(values)
        cat_missing = np.array([[v is None for v in row] for row in cats], dtype=bool).reshape(cats.shape)
        rows_to_fill = np.flatnonzero(num_missing.any(axis=1) | cat_missing.any(axis=1))

        if rows_to_fill.size == 0:
            return out

        filled_values = values.copy()
        filled_cats = cats.copy()
        n_fallback = 0

        train_num_observed = ~np.isnan(artifact.standardized)
        train_cat_observed = np.array(
            [[v is not None for v in row] for row in artifact.categorical_values], dtype=bool
        ).reshape(artifact.categorical_values.shape)

        for i in rows_to_fill:
            dist2, donor_ok, has_features = self._distances(artifact, z[i], cats[i], train_num_observed, train_cat_observed)

            for j in np.flatnonzero(num_missing[i]):
                donors = self._nearest(dist2, donor_ok & train_num_observed[:, j], artifact.n_neighbors, has_features)
                if donors is None:
                    filled_values[i, j] = artifact.means[j]
                    n_fallback += 1
                else:
                    filled_values[i, j] = float(np.mean(artifact.numeric_values[donors, j]))

            for j in np.flatnonzero(cat_missing[i]):
                donors = self._nearest(dist2, donor_ok & train_cat_observed[:, j], artifact.n_neighbors, has_features)
                if donors is None:
                    filled_cats[i, j] = artifact.categorical_modes[j]
                    n_fallback += 1
                else:
                    filled_cats[i, j] = _mode(pd.Series(artifact.categorical_values[donors, j]))

        for j, col in enumerate(numeric):
            out[col] = filled_values[:, j]
        for j, col in enumerate(categorical):
            out[col] = pd.Series(filled_cats[:, j], index=out.index, dtype=object)

        logger.debug(
            f"KNNImputer filled {len(rows_to_fill)} rows ({n_fallback} cells from global fallback)"
        )
        return out

    @staticmethod
    def _distances(artifact, z_row, cat_row, train_num_observed, train_cat_observed):
        n_train = artifact.n_training_rows
        observed = ~np.isnan(z_row)

        # Donors must have every numeric feature the row has observed
        donor_ok = train_num_observed[:, observed].all(axis=1) if observed.any() else np.ones(n_train, dtype=bool)

        diffs = artifact.standardized[:, observed] - z_row[observed]
        with np.errstate(invalid='ignore'):
            dist2 = np.nansum(diffs ** 2, axis=1)
        has_features = bool(observed.any())

        if artifact.categorical_distance == 'mismatch':
            for j, value in enumerate(cat_row):
                if value is None:
                    continue
                comparable = train_cat_observed[:, j]
                mismatch = comparable & (artifact.categorical_values[:, j] != value)
                dist2 = dist2 + mismatch.astype(float)
                has_features = True

        return dist2, donor_ok, has_features

    @staticmethod
    def _nearest(dist2, eligible, k, has_features):
        candidates = np.flatnonzero(eligible)
        if not has_features or candidates.size < k:
            return None
        order = np.argsort(dist2[candidates], kind='stable')[:k]
        return candidates[order]
