"""Resample-level comparison of trained models.

Models trained on the same resamples can be compared pairwise on each
resample. The comparator refuses models trained on different resamples.
"""

import itertools
import logging
from typing import Dict

import numpy as np
import pandas as pd
from scipy import stats

from stackwise.core.diversity import DiversityScorer
from stackwise.errors import ResampleMismatchError
from stackwise.utils import compute_resample_hash, name_models

logger = logging.getLogger(__name__)


class ResampleComparator:
    """Aggregates per-resample metrics across trained models.

    Parameters
    ----------
    models : mapping name -> TrainedModel, or list of TrainedModel
        At least two models sharing resamples and metric.

    Raises
    ------
    ResampleMismatchError
        If the models were trained on different resamples.
    ValueError
        If fewer than two models are given or their metrics differ.

    Examples
    --------
    >>> comparator = ResampleComparator(models)
    >>> comparator.summary_table()
    >>> comparator.differences()
    """

    def __init__(self, models):
        self.models = name_models(models)
        if len(self.models) < 2:
            raise ValueError("Comparison requires at least 2 models")

        metrics = {model.metric for model in self.models.values()}
        if len(metrics) > 1:
            raise ValueError(f"Models were tuned on different metrics: {sorted(metrics)}")
        self.metric = metrics.pop()

        hashes = {name: compute_resample_hash(model.resamples) for name, model in self.models.items()}
        if len(set(hashes.values())) > 1:
            raise ResampleMismatchError(
                f"Models were trained on different resamples: {hashes}"
            )

    def values(self) -> pd.DataFrame:
        """Metric per resample (rows) and model (columns); NaN where undefined."""
        return pd.DataFrame({
            name: model.resample_values() for name, model in self.models.items()
        })

    def summary_table(self) -> pd.DataFrame:
        """Distribution of each model's resampled metric."""
        values = self.values()
        return pd.DataFrame({
            'mean': values.mean(),
            'sd': values.std(ddof=1),
            'min': values.min(),
            'median': values.median(),
            'max': values.max(),
            'n': values.count()
        })

    def differences(self) -> pd.DataFrame:
        """Paired differences between every pair of models.

        Each pair is compared on the resamples where both metrics are
        defined, with a paired t-test. Pairs with fewer than 2 shared
        defined resamples get NaN statistics.
        """
        values = self.values()
        rows = []
        for first, second in itertools.combinations(values.columns, 2):
            paired = values[[first, second]].dropna()
            diff = paired[first] - paired[second]

            if len(paired) >= 2 and diff.std(ddof=1) > 0:
                result = stats.ttest_rel(paired[first], paired[second])
                statistic, p_value = float(result.statistic), float(result.pvalue)
            else:
                statistic, p_value = np.nan, np.nan

            rows.append({
                'model_1': first,
                'model_2': second,
                'mean_difference': float(diff.mean()) if len(diff) else np.nan,
                't_statistic': statistic,
                'p_value': p_value,
                'n_resamples': len(paired)
            })
        return pd.DataFrame(rows)

    def metric_correlation(self) -> pd.DataFrame:
        """Correlation of the resampled metric between models."""
        return self.values().corr()

    def prediction_correlation(self) -> pd.DataFrame:
        """Correlation of averaged out-of-fold probabilities between models.

        Uses only rows with an OOF prediction from every model.
        """
        averaged = pd.DataFrame({
            name: model.oof.averaged() for name, model in self.models.items()
        }).dropna()
        scorer = DiversityScorer()
        return scorer.correlation_frame({name: averaged[name].to_numpy() for name in averaged.columns})

    def diversity(self) -> Dict[str, float]:
        """Summary of pairwise OOF prediction correlations."""
        averaged = pd.DataFrame({
            name: model.oof.averaged() for name, model in self.models.items()
        }).dropna()
        return DiversityScorer().detailed_diversity(
            [averaged[name].to_numpy() for name in averaged.columns]
        )

    def summary(self) -> str:
        """Generate human-readable summary of the comparison."""
        table = self.summary_table()
        lines = [
            "Resample Comparison Summary",
            "=" * 50,
            f"Models: {', '.join(self.models.keys())}",
            f"Metric: {self.metric}",
            f"Resamples: {len(self.values())}",
            "",
            table.to_string(float_format=lambda v: f"{v:.4f}"),
            "",
            "Pairwise differences:",
            self.differences().to_string(float_format=lambda v: f"{v:.4f}", index=False)
        ]
        return "\n".join(lines)
