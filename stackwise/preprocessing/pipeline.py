"""Fixed-order transform pipeline: Imputer -> Encoder -> Normalizer.

The pipeline owns the fit order and the replay contract. fit() runs each
stage's fit on the previous stage's applied training output exactly once
and freezes the three artifacts. apply() replays the stages with those
artifacts on any data, any number of times, and checks the output layout
against the frozen one.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import pandas as pd

from stackwise.config import PreprocessingConfig
from stackwise.errors import FeatureLayoutMismatchError, PipelineStateError
from stackwise.preprocessing.imputer import KNNImputer, ImputationArtifact
from stackwise.preprocessing.encoder import OneHotEncoder, EncodingArtifact
from stackwise.preprocessing.normalizer import RangeNormalizer, NormalizationArtifact

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineArtifacts:
    """The three frozen artifacts of a fitted pipeline, in replay order."""
    imputation: ImputationArtifact
    encoding: EncodingArtifact
    normalization: NormalizationArtifact

    @property
    def input_columns(self) -> Tuple[str, ...]:
        return self.imputation.columns

    @property
    def output_columns(self) -> Tuple[str, ...]:
        return self.normalization.columns


class Pipeline:
    """Leakage-free preprocessing pipeline.

    Parameters
    ----------
    label_column : str, optional
        Label column stripped from the data before any stage sees it.
    imputer : KNNImputer, optional
    encoder : OneHotEncoder, optional
    normalizer : RangeNormalizer, optional

    Examples
    --------
    >>> pipeline = Pipeline(label_column='Class')
    >>> pipeline.fit(train)
    >>> X_train = pipeline.apply(train)
    >>> X_test = pipeline.apply(test)
    """

    def __init__(
        self,
        label_column: Optional[str] = None,
        imputer: Optional[KNNImputer] = None,
        encoder: Optional[OneHotEncoder] = None,
        normalizer: Optional[RangeNormalizer] = None
    ):
        self.label_column = label_column
        self.imputer = imputer or KNNImputer()
        self.encoder = encoder or OneHotEncoder()
        self.normalizer = normalizer or RangeNormalizer()
        self._artifacts: Optional[PipelineArtifacts] = None

    @classmethod
    def from_config(cls, config: PreprocessingConfig, label_column: Optional[str] = None) -> 'Pipeline':
        """Build an unfitted pipeline from a PreprocessingConfig."""
        return cls(
            label_column=label_column,
            imputer=KNNImputer(
                n_neighbors=config.n_neighbors,
                categorical_distance=config.categorical_distance,
                categorical_features=config.categorical_features
            ),
            encoder=OneHotEncoder(
                handle_unknown=config.handle_unknown,
                categorical_features=config.categorical_features
            )
        )

    @classmethod
    def from_artifacts(cls, artifacts: PipelineArtifacts, label_column: Optional[str] = None) -> 'Pipeline':
        """Rebuild an apply-only pipeline from previously fitted artifacts."""
        pipeline = cls(label_column=label_column)
        pipeline._artifacts = artifacts
        return pipeline

    @property
    def is_fitted(self) -> bool:
        return self._artifacts is not None

    @property
    def artifacts(self) -> PipelineArtifacts:
        if self._artifacts is None:
            raise PipelineStateError("Pipeline has not been fitted")
        return self._artifacts

    @property
    def output_columns(self) -> List[str]:
        return list(self.artifacts.output_columns)

    def fit(self, data: pd.DataFrame) -> PipelineArtifacts:
        """Fit every stage in order on training data.

        Parameters
        ----------
        data : pd.DataFrame
            Training rows; the label column is dropped if present.

        Returns
        -------
        artifacts : PipelineArtifacts

        Raises
        ------
        PipelineStateError
            If the pipeline already holds artifacts.
        """
        if self._artifacts is not None:
            raise PipelineStateError("Pipeline is already fitted; artifacts are never refitted")

        features = self._features(data)

        imputation = self.imputer.fit(features)
        imputed = self.imputer.apply(imputation, features)

        encoding = self.encoder.fit(imputed)
        encoded = self.encoder.apply(encoding, imputed)

        normalization = self.normalizer.fit(encoded)

        self._artifacts = PipelineArtifacts(imputation, encoding, normalization)

        logger.info(
            f"Pipeline fitted on {len(features)} rows: "
            f"{len(imputation.columns)} input columns -> {len(normalization.columns)} output columns"
        )
        return self._artifacts

    def apply(self, data: pd.DataFrame) -> pd.DataFrame:
        """Replay the fitted stages on any data.

        Returns
        -------
        features : pd.DataFrame
            Float matrix with exactly the frozen output columns.

        Raises
        ------
        PipelineStateError
            If called before fit.
        FeatureLayoutMismatchError
            If the input or output layout diverges from fit time.
        """
        artifacts = self.artifacts
        features = self._features(data)

        imputed = self.imputer.apply(artifacts.imputation, features)
        encoded = self.encoder.apply(artifacts.encoding, imputed)
        normalized = self.normalizer.apply(artifacts.normalization, encoded)

        if tuple(normalized.columns) != artifacts.output_columns:
            raise FeatureLayoutMismatchError(
                artifacts.output_columns, normalized.columns, 'Pipeline.apply'
            )
        return normalized

    def fit_apply(self, data: pd.DataFrame) -> pd.DataFrame:
        """Fit on data, then apply the frozen artifacts to the same data."""
        self.fit(data)
        return self.apply(data)

    def _features(self, data: pd.DataFrame) -> pd.DataFrame:
        if self.label_column is not None and self.label_column in data.columns:
            return data.drop(columns=[self.label_column])
        return data
