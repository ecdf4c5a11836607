"""One-hot encoding stage.

Fit learns a sklearn OneHotEncoder over the categorical features (the
categories observed per feature, missing values excluded); apply emits
exactly the fit-time column set, in a stable order: numeric features first
(input order), then one '<feature>.<category>' column per category.

Unseen categories follow an explicit policy:
- 'zero': the feature's one-hot block is all zeros (a warning is logged)
- 'error': UnseenCategoryError is raised
A missing categorical value counts as unseen.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.preprocessing import OneHotEncoder as SklearnOneHotEncoder

from stackwise.config import UNKNOWN_CATEGORY_POLICIES
from stackwise.errors import UnseenCategoryError
from stackwise.preprocessing.base import (
    TransformStage, align_columns, infer_categorical, check_numeric
)

logger = logging.getLogger(__name__)


def _indicator_name(feature, category) -> str:
    return f"{feature}.{category}"


@dataclass(frozen=True)
class EncodingArtifact:
    """Parameters learned by OneHotEncoder.fit.

    Attributes:
        columns: Fit-time input layout
        numeric_features: Columns passed through unchanged
        categories: (feature, categories) pairs in input order, from the
            fitted encoder's categories_
        output_columns: Exact output layout
        handle_unknown: Unseen category policy ('zero' or 'error')
        encoder: Fitted sklearn encoder, None without categorical features
    """
    columns: Tuple[str, ...]
    numeric_features: Tuple[str, ...]
    categories: Tuple[Tuple[str, Tuple[Any, ...]], ...]
    output_columns: Tuple[str, ...]
    handle_unknown: str
    encoder: Optional[SklearnOneHotEncoder] = field(default=None, repr=False, compare=False)

    @property
    def categorical_features(self) -> List[str]:
        return [feature for feature, _ in self.categories]


class OneHotEncoder(TransformStage):
    """Expands each categorical feature into one binary column per category.

    Parameters
    ----------
    handle_unknown : str, default='zero'
        'zero' or 'error', see module docstring.
    categorical_features : list of str, optional
        Explicit categorical columns. Inferred from dtypes when None.
    """

    name = 'encoding'

    def __init__(self, handle_unknown: str = 'zero', categorical_features: Optional[List[str]] = None):
        if handle_unknown not in UNKNOWN_CATEGORY_POLICIES:
            raise ValueError(f"handle_unknown must be one of {UNKNOWN_CATEGORY_POLICIES}")
        self.handle_unknown = handle_unknown
        self.categorical_features = categorical_features

    def fit(self, data: pd.DataFrame) -> EncodingArtifact:
        if self.categorical_features is None:
            categorical = infer_categorical(data)
        else:
            categorical = [c for c in data.columns if c in set(self.categorical_features)]
        numeric = [c for c in data.columns if c not in set(categorical)]
        check_numeric(data, numeric, 'OneHotEncoder.fit')

        encoder = None
        categories = []
        output_columns = list(numeric)
        if categorical:
            observed = []
            for feature in categorical:
                values = sorted(data[feature].dropna().unique(), key=str)
                if not values:
                    raise ValueError(f"OneHotEncoder.fit: feature '{feature}' has no observed values")
                observed.append(values)

            # Missing values stay outside the category list so they encode as unseen
            encoder = SklearnOneHotEncoder(
                categories=observed,
                handle_unknown='ignore',
                sparse_output=False,
                feature_name_combiner=_indicator_name
            )
            encoder.fit(data[categorical].astype(object))

            categories = [
                (feature, tuple(levels)) for feature, levels in zip(categorical, encoder.categories_)
            ]
            output_columns.extend(encoder.get_feature_names_out(categorical))

        if len(set(output_columns)) != len(output_columns):
            raise ValueError("One-hot column names collide with existing feature names")

        logger.debug(
            f"OneHotEncoder fitted: {len(categorical)} categorical features -> "
            f"{len(output_columns) - len(numeric)} indicator columns"
        )

        return EncodingArtifact(
            columns=tuple(data.columns),
            numeric_features=tuple(numeric),
            categories=tuple(categories),
            output_columns=tuple(str(c) for c in output_columns),
            handle_unknown=self.handle_unknown,
            encoder=encoder
        )

    def apply(self, artifact: EncodingArtifact, data: pd.DataFrame) -> pd.DataFrame:
        """Encode data with the fit-time categories.

        Raises
        ------
        UnseenCategoryError
            If the policy is 'error' and a value was not seen during fit.
        FeatureLayoutMismatchError
            If the input columns differ from the fit-time columns.
        """
        data = align_columns(data, artifact.columns, 'OneHotEncoder.apply')

        for feature, categories in artifact.categories:
            values = data[feature]
            known = values.isin(categories)
            if known.all():
                continue
            unseen = values[~known]
            if artifact.handle_unknown == 'error':
                labels = set(unseen.dropna().unique())
                if unseen.isna().any():
                    labels.add('<missing>')
                raise UnseenCategoryError(feature, labels)
            logger.warning(
                f"Feature '{feature}': {len(unseen)} rows with unseen categories encoded as all zeros"
            )

        blocks = [data[list(artifact.numeric_features)].to_numpy(dtype=float)]
        if artifact.encoder is not None:
            n_indicators = len(artifact.output_columns) - len(artifact.numeric_features)
            if len(data) == 0:
                blocks.append(np.zeros((0, n_indicators)))
            else:
                # Unseen values were already reported above
                with warnings.catch_warnings():
                    warnings.filterwarnings('ignore', message='Found unknown categories', category=UserWarning)
                    blocks.append(artifact.encoder.transform(data[artifact.categorical_features].astype(object)))

        return pd.DataFrame(np.hstack(blocks), index=data.index, columns=list(artifact.output_columns))
