"""Trained model and out-of-fold prediction records.

Both are produced by ModelTrainer.fit and never modified afterwards.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from stackwise.core.resampling import Resample
from stackwise.errors import FeatureLayoutMismatchError

OOF_COLUMNS = ['row', 'repeat', 'fold', 'resample', 'observed', 'probability', 'predicted']


class OutOfFoldPredictions:
    """Held-out predictions of the selected hyperparameter combination.

    One record per (resample, held-out row). Records are built only from a
    resample's holdout index, so no record comes from a model that saw its
    row during fitting.

    Parameters
    ----------
    records : pd.DataFrame
        Columns row, repeat, fold, resample, observed, probability, predicted.
    n_rows : int
        Number of training rows the resamples index into.
    """

    def __init__(self, records: pd.DataFrame, n_rows: int):
        missing = [c for c in OOF_COLUMNS if c not in records.columns]
        if missing:
            raise ValueError(f"OOF records missing columns: {missing}")
        self._records = records[OOF_COLUMNS].reset_index(drop=True)
        self.n_rows = int(n_rows)

    @classmethod
    def from_results(
        cls,
        results: Sequence[Any],
        resamples: Sequence[Resample],
        labels: np.ndarray,
        positive_class: Any,
        negative_class: Any
    ) -> 'OutOfFoldPredictions':
        """Build records from the job results of one combination.

        Parameters
        ----------
        results : sequence of JobResult
            Successful results; each carries its holdout index.
        resamples : sequence of Resample
        labels : np.ndarray
            Original training labels.
        """
        by_id = {r.resample_id: r for r in resamples}
        frames = []
        for result in sorted(results, key=lambda r: r.resample_id):
            resample = by_id[result.resample_id]
            rows = np.asarray(result.holdout_index)
            probabilities = np.asarray(result.probabilities, dtype=float)
            frames.append(pd.DataFrame({
                'row': rows,
                'repeat': resample.repeat,
                'fold': resample.fold,
                'resample': resample.name,
                'observed': labels[rows],
                'probability': probabilities,
                'predicted': np.where(probabilities >= 0.5, positive_class, negative_class)
            }))

        records = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=OOF_COLUMNS)
        return cls(records, n_rows=len(labels))

    @property
    def records(self) -> pd.DataFrame:
        return self._records.copy()

    def __len__(self) -> int:
        return len(self._records)

    def averaged(self) -> pd.Series:
        """Mean positive-class probability per training row.

        Rows that were never held out are NaN.
        """
        means = self._records.groupby('row')['probability'].mean()
        return means.reindex(range(self.n_rows)).rename('probability')

    def coverage(self) -> np.ndarray:
        """Number of OOF records per training row."""
        counts = np.bincount(self._records['row'].to_numpy(dtype=int), minlength=self.n_rows)
        return counts[:self.n_rows]

    def check_no_leakage(self, resamples: Sequence[Resample]) -> None:
        """Raise ValueError if any record's row was in its resample's training rows."""
        by_name = {r.name: r for r in resamples}
        for name, group in self._records.groupby('resample'):
            if name not in by_name:
                raise ValueError(f"OOF records reference unknown resample '{name}'")
            leaked = np.intersect1d(group['row'].to_numpy(dtype=int), by_name[name].train_index)
            if leaked.size:
                raise ValueError(
                    f"Resample {name}: {leaked.size} OOF rows were used for fitting"
                )


@dataclass(frozen=True, eq=False)
class TrainedModel:
    """A fitted, tuned model and the evidence used to select it.

    Attributes:
        name: Model name (algorithm name unless overridden)
        algorithm: Registered algorithm name
        hyperparameters: Selected combination
        estimator: Fitted estimator (refit on all training rows)
        input_columns: Exact column layout accepted by predict/predict_proba
        features: Selected feature subset, or None if all columns are used
        classes: (negative_class, positive_class)
        positive_class: Label treated as positive
        metric: Metric used for selection
        best_score: Mean resampled metric of the selected combination
        results: One row per combination (params, mean, sd, counts, status)
        resample_results: Per-resample metric of the selected combination
        oof: Out-of-fold predictions of the selected combination
        resamples: Resamples the sweep used
        training_labels: Original training labels, in row order
        seed: Seed of the RandomSource the trainer used
    """
    name: str
    algorithm: str
    hyperparameters: Dict[str, Any]
    estimator: Any = field(repr=False)
    input_columns: Tuple[str, ...] = field(repr=False)
    features: Optional[Tuple[str, ...]]
    classes: Tuple[Any, Any]
    positive_class: Any
    metric: str
    best_score: float
    results: pd.DataFrame = field(repr=False)
    resample_results: pd.DataFrame = field(repr=False)
    oof: OutOfFoldPredictions = field(repr=False)
    resamples: Tuple[Resample, ...] = field(repr=False)
    training_labels: np.ndarray = field(repr=False)
    seed: int = 0

    @property
    def negative_class(self) -> Any:
        return self.classes[0]

    @property
    def n_training_rows(self) -> int:
        return len(self.training_labels)

    def _matrix(self, X: pd.DataFrame) -> np.ndarray:
        if not isinstance(X, pd.DataFrame):
            raise TypeError("TrainedModel expects a pandas DataFrame with named columns")
        if tuple(X.columns) != self.input_columns:
            raise FeatureLayoutMismatchError(self.input_columns, X.columns, f"{self.name}.predict")
        return X.to_numpy(dtype=float)

    def positive_probability(self, X: pd.DataFrame) -> np.ndarray:
        """Probability of the positive class for each row of X."""
        matrix = self._matrix(X)
        probabilities = self.estimator.predict_proba(matrix)
        classes = list(self.estimator.classes_)
        if 1 not in classes:
            return np.zeros(len(matrix))
        return np.asarray(probabilities[:, classes.index(1)], dtype=float)

    def predict_proba(self, X: pd.DataFrame) -> pd.DataFrame:
        """Class probabilities with columns (negative_class, positive_class)."""
        positive = self.positive_probability(X)
        return pd.DataFrame(
            {self.classes[0]: 1.0 - positive, self.classes[1]: positive},
            index=X.index
        )

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        positive = self.positive_probability(X)
        return np.where(positive >= 0.5, self.positive_class, self.negative_class)

    def variable_importance(self) -> pd.Series:
        """Importance of each input column, sorted descending.

        Uses feature_importances_ when the estimator has it, otherwise the
        absolute coefficients.
        """
        if hasattr(self.estimator, 'feature_importances_'):
            values = np.asarray(self.estimator.feature_importances_, dtype=float)
        elif hasattr(self.estimator, 'coef_'):
            values = np.abs(np.asarray(self.estimator.coef_, dtype=float)).ravel()
        else:
            raise AttributeError(
                f"{type(self.estimator).__name__} exposes no feature importances"
            )
        return pd.Series(values, index=list(self.input_columns), name='importance') \
            .sort_values(ascending=False, kind='mergesort')

    def resample_values(self) -> pd.Series:
        """Per-resample metric of the selected combination, indexed by resample name."""
        return self.resample_results.set_index('resample')[self.metric]

    def summary(self) -> str:
        """Generate human-readable summary of the trained model."""
        failed = int((self.results['status'] == 'failed').sum())
        lines = [
            f"Trained Model: {self.name} ({self.algorithm})",
            "=" * 50,
            f"Training rows: {self.n_training_rows}",
            f"Input columns: {len(self.input_columns)}",
            f"Resamples: {len(self.resamples)}",
            f"Combinations evaluated: {len(self.results)} ({failed} failed)",
            f"Selected hyperparameters: {self.hyperparameters}",
            f"Resampled {self.metric}: {self.best_score:.4f}",
        ]
        return "\n".join(lines)


def parameter_columns(combinations: List[Dict[str, Any]]) -> List[str]:
    """Ordered union of parameter names across combinations."""
    names: List[str] = []
    for combination in combinations:
        for name in combination:
            if name not in names:
                names.append(name)
    return names
