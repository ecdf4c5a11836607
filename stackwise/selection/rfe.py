"""Recursive feature elimination under resampling.

For every resample the ranking model is fitted on the current subset,
features are ranked by importance, the top s are kept and refitted, and the
holdout rows are scored. Ranking is recomputed at every size. The size with
the best mean metric wins (ties go to the smaller size) and the final
feature list comes from the same procedure on all training rows.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.base import clone

from stackwise.config import ResamplingConfig
from stackwise.core.metrics import best_index, score
from stackwise.core.random_source import RandomSource
from stackwise.core.resampling import Resample, make_resamples
from stackwise.errors import ConvergenceFailure, UndefinedMetricError
from stackwise.parallel.cancellation import CancellationToken
from stackwise.parallel.scheduler import shared_matrices
from stackwise.parallel.worker import (
    clear_sweep_data, install_sweep_data, positive_probabilities, run_jobs, sweep_data
)
from stackwise.training.algorithms import ALGORITHMS, AlgorithmRegistry
from stackwise.training.trainer import binary_labels, pooled_resample_name

logger = logging.getLogger(__name__)


def candidate_sizes(sizes: Sequence[int], n_features: int) -> List[int]:
    """Sorted unique sizes below the feature count, plus the full count."""
    return sorted({int(s) for s in sizes if 0 < s < n_features} | {n_features})


def importance_ranking(estimator, features: Sequence[str]) -> List[Tuple[str, float]]:
    """Features of a fitted estimator ordered by decreasing importance.

    Uses feature_importances_ when available, otherwise |coef_|. Ties keep
    the input column order.
    """
    if hasattr(estimator, 'feature_importances_'):
        importances = np.asarray(estimator.feature_importances_, dtype=float)
    elif hasattr(estimator, 'coef_'):
        importances = np.abs(np.asarray(estimator.coef_, dtype=float)).reshape(-1, len(features)).sum(axis=0)
    else:
        raise TypeError(
            f"{type(estimator).__name__} exposes neither feature_importances_ nor coef_"
        )
    order = np.argsort(-importances, kind='mergesort')
    return [(features[i], float(importances[i])) for i in order]


def _fit(estimator, X, y, context: str):
    model = clone(estimator)
    try:
        model.fit(X, y)
    except Exception as e:
        raise ConvergenceFailure(f"{context}: ranking model failed to fit: {e}") from e
    return model


def eliminate(
    estimator,
    X: np.ndarray,
    y: np.ndarray,
    feature_names: Sequence[str],
    sizes_desc: Sequence[int],
    holdout: Optional[Tuple[np.ndarray, np.ndarray, str]] = None,
    context: str = 'rfe'
) -> List[Dict[str, Any]]:
    """Run one recursive elimination pass.

    Parameters
    ----------
    estimator : unfitted estimator
    X, y : training matrix and 0/1 labels
    feature_names : column names of X
    sizes_desc : subset sizes, largest first
    holdout : (X_holdout, y_holdout, metric), optional
        When given, each kept subset is scored on the holdout rows.

    Returns
    -------
    steps : list of dict
        One entry per size with the kept features, the ranking that
        produced them, the holdout value (NaN if undefined or unscored)
        and the holdout probabilities (None if unscored).
    """
    columns = {name: i for i, name in enumerate(feature_names)}
    current = list(feature_names)
    steps = []

    for size in sizes_desc:
        idx = [columns[f] for f in current]
        ranker = _fit(estimator, X[:, idx], y, context)
        ranking = importance_ranking(ranker, current)
        keep = [name for name, _ in ranking[:size]]

        if len(keep) == len(current):
            model = ranker
            keep = list(current)
        else:
            model = _fit(estimator, X[:, [columns[f] for f in keep]], y, context)

        value = np.nan
        probabilities = None
        if holdout is not None:
            X_holdout, y_holdout, metric = holdout
            probabilities = positive_probabilities(model, X_holdout[:, [columns[f] for f in keep]])
            try:
                value = score(metric, y_holdout, probabilities)
            except UndefinedMetricError:
                value = np.nan

        steps.append({
            'size': size, 'features': keep, 'ranking': ranking,
            'value': value, 'probabilities': probabilities
        })
        current = keep

    return steps


def _eliminate_resample(job: tuple) -> Dict[str, Any]:
    """Elimination pass on one resample; a ranking model failure fails only this resample."""
    estimator, resample, feature_names, sizes_desc, metric = job
    X, y = sweep_data()
    try:
        steps = eliminate(
            estimator,
            X[resample.train_index],
            y[resample.train_index],
            feature_names,
            sizes_desc,
            holdout=(X[resample.holdout_index], y[resample.holdout_index], metric),
            context=f"rfe {resample.name}"
        )
    except ConvergenceFailure as e:
        return {
            'steps': [{'size': size, 'value': np.nan, 'probabilities': None} for size in sizes_desc],
            'error': str(e)
        }
    return {'steps': steps, 'error': None}


@dataclass(frozen=True, eq=False)
class FeatureSelection:
    """Outcome of recursive feature elimination.

    Attributes:
        best_size: Selected subset size
        features: Selected features in ranking order
        metric: Metric used to compare sizes
        results: One row per size (mean, sd, defined count, selected flag)
        resample_results: One row per (resample, size)
        ranking_history: Final-pass rankings, one row per (size, feature)
    """
    best_size: int
    features: Tuple[str, ...]
    metric: str
    results: pd.DataFrame = field(repr=False)
    resample_results: pd.DataFrame = field(repr=False)
    ranking_history: pd.DataFrame = field(repr=False)

    def summary(self) -> str:
        """Generate human-readable summary of the selection."""
        lines = [
            "Feature Selection Summary",
            "=" * 50,
            f"Best subset size: {self.best_size}",
            f"Selected features: {', '.join(self.features)}",
            "",
            f"{'Size':>6} {self.metric:>12} {'SD':>10} {'Resamples':>10}"
        ]
        for _, row in self.results.iterrows():
            marker = ' *' if row['selected'] else ''
            lines.append(
                f"{int(row['size']):>6} {row[self.metric]:>12.4f} "
                f"{row[self.metric + '_sd']:>10.4f} {int(row['n_defined']):>10}{marker}"
            )
        return "\n".join(lines)


class RecursiveFeatureEliminator:
    """Select a feature subset by resampled recursive elimination.

    Parameters
    ----------
    sizes : sequence of int
        Candidate subset sizes; the full feature count is always added.
    positive_class : Any
        Label of the positive class.
    ranking_algorithm : str, default='rf'
        Registered algorithm used to rank and score subsets.
    resampling : ResamplingConfig, optional
    metric : str, default='roc_auc'
    params : dict, optional
        Hyperparameters of the ranking model.
    random_source : RandomSource, optional
    n_workers : int, default=1
    registry : AlgorithmRegistry, optional
    cancel_token : CancellationToken, optional
    """

    def __init__(
        self,
        sizes: Sequence[int],
        positive_class: Any,
        ranking_algorithm: str = 'rf',
        resampling: Optional[ResamplingConfig] = None,
        metric: str = 'roc_auc',
        params: Optional[Dict[str, Any]] = None,
        random_source: Optional[RandomSource] = None,
        n_workers: int = 1,
        registry: Optional[AlgorithmRegistry] = None,
        cancel_token: Optional[CancellationToken] = None
    ):
        self.registry = registry if registry is not None else ALGORITHMS
        self.registry.get_config(ranking_algorithm)

        self.sizes = list(sizes)
        self.positive_class = positive_class
        self.ranking_algorithm = ranking_algorithm
        self.resampling = resampling or ResamplingConfig(method='repeatedcv', number=5, repeats=2)
        self.metric = metric
        self.params = dict(params or {})
        self.random_source = random_source or RandomSource(315)
        self.n_workers = n_workers
        self.cancel_token = cancel_token

    def fit(
        self,
        X: pd.DataFrame,
        y,
        resamples: Optional[Sequence[Resample]] = None
    ) -> FeatureSelection:
        """Evaluate every candidate size and select the final feature list.

        Raises
        ------
        ConvergenceFailure
            If the ranking model fails on every resample or on the final
            pass, or no size has a defined metric. A failure on some
            resamples only excludes those resamples.
        """
        if X.shape[1] == 0:
            raise ValueError("Feature selection requires at least one feature")

        labels, encoded, _ = binary_labels(y, self.positive_class)
        feature_names = list(X.columns)
        matrix = X.to_numpy(dtype=float)
        sizes = candidate_sizes(self.sizes, len(feature_names))
        sizes_desc = sorted(sizes, reverse=True)

        if resamples is None:
            resamples = make_resamples(labels, self.resampling, self.random_source.child('rfe', 'resamples'))

        logger.info(
            f"Recursive feature elimination: sizes {sizes} over {len(resamples)} resamples "
            f"using {self.ranking_algorithm}"
        )

        jobs = [
            (
                self.registry.build_estimator(
                    self.ranking_algorithm, self.params,
                    self.random_source.child('rfe', resample.resample_id)
                ),
                resample, feature_names, sizes_desc, self.metric
            )
            for resample in resamples
        ]
        try:
            per_resample = run_jobs(
                _eliminate_resample,
                jobs,
                n_workers=self.n_workers,
                cancel_token=self.cancel_token,
                description='Feature elimination',
                initializer=install_sweep_data,
                initargs=shared_matrices(matrix, encoded)
            )
        finally:
            clear_sweep_data()

        failed = [
            (resample, outcome['error'])
            for resample, outcome in zip(resamples, per_resample) if outcome['error'] is not None
        ]
        for resample, error in failed:
            logger.warning(f"Feature elimination: {resample.name} excluded ({error})")
        if failed and len(failed) == len(resamples):
            raise ConvergenceFailure(
                f"Feature elimination: the ranking model failed on every resample ({failed[0][1]})"
            )

        if all(len(resample.holdout_index) == 1 for resample in resamples):
            logger.info("Feature elimination: single-row holdouts, scoring pooled predictions per repeat")
            resample_results = self._pooled_results(resamples, per_resample, encoded, sizes_desc)
        else:
            resample_results = pd.DataFrame([
                {
                    'resample': resample.name,
                    'size': step['size'],
                    self.metric: step['value'],
                    'status': 'failed' if outcome['error'] is not None else 'ok'
                }
                for resample, outcome in zip(resamples, per_resample)
                for step in outcome['steps']
            ])

        results = self._aggregate(resample_results, sizes)
        means = results[self.metric].to_numpy(dtype=float)
        if np.all(np.isnan(means)):
            raise ConvergenceFailure(
                f"Feature elimination: {self.metric} is undefined for every subset size"
            )

        # Sizes are ascending, so the first best value is the smallest subset
        best = best_index(means, self.metric)
        best_size = int(results['size'].iloc[best])
        results['selected'] = results['size'] == best_size

        final_steps = eliminate(
            self.registry.build_estimator(
                self.ranking_algorithm, self.params, self.random_source.child('rfe', 'final')
            ),
            matrix,
            encoded,
            feature_names,
            [s for s in sizes_desc if s >= best_size],
            context='rfe final'
        )
        features = tuple(final_steps[-1]['features'])

        history_rows = [
            {'size': step['size'], 'rank': rank + 1, 'feature': name, 'importance': importance}
            for step in final_steps
            for rank, (name, importance) in enumerate(step['ranking'])
        ]

        logger.info(
            f"Selected {best_size} of {len(feature_names)} features "
            f"(resampled {self.metric} = {means[best]:.4f})"
        )

        return FeatureSelection(
            best_size=best_size,
            features=features,
            metric=self.metric,
            results=results,
            resample_results=resample_results,
            ranking_history=pd.DataFrame(history_rows)
        )

    def _pooled_results(self, resamples, per_resample, encoded, sizes_desc) -> pd.DataFrame:
        """One row per (repeat, size) scoring the concatenated holdout predictions.

        Resamples whose ranking model failed contribute no rows to the pool.
        """
        rows = []
        for repeat in sorted({resample.repeat for resample in resamples}):
            members = [
                (resample, outcome) for resample, outcome in zip(resamples, per_resample)
                if resample.repeat == repeat and outcome['error'] is None
            ]
            for position, size in enumerate(sizes_desc):
                value = np.nan
                if members:
                    holdout = np.concatenate([resample.holdout_index for resample, _ in members])
                    probabilities = np.concatenate(
                        [outcome['steps'][position]['probabilities'] for _, outcome in members]
                    )
                    try:
                        value = score(self.metric, encoded[holdout], probabilities)
                    except UndefinedMetricError:
                        value = np.nan
                rows.append({
                    'resample': pooled_resample_name(repeat),
                    'size': size,
                    self.metric: value,
                    'status': 'ok' if members else 'failed'
                })
        return pd.DataFrame(rows)

    def _aggregate(self, resample_results: pd.DataFrame, sizes: List[int]) -> pd.DataFrame:
        rows = []
        for size in sizes:
            at_size = resample_results[resample_results['size'] == size]
            n_failed = int((at_size['status'] == 'failed').sum())
            values = at_size.loc[at_size['status'] != 'failed', self.metric].to_numpy(dtype=float)
            defined = values[~np.isnan(values)]
            if defined.size < values.size:
                logger.info(
                    f"Size {size}: {values.size - defined.size} resamples with undefined "
                    f"{self.metric} excluded"
                )
            rows.append({
                'size': size,
                self.metric: float(defined.mean()) if defined.size else np.nan,
                f'{self.metric}_sd': float(defined.std(ddof=1)) if defined.size > 1 else np.nan,
                'n_defined': int(defined.size),
                'n_failed': n_failed
            })
        return pd.DataFrame(rows)
