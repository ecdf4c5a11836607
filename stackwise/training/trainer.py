"""Cross-validated hyperparameter tuning with out-of-fold retention.

ModelTrainer runs every (combination, resample) job of a sweep, skips
combinations whose estimator failed on any resample, selects the best mean
metric (ties broken by grid order), refits the winner on all rows and keeps
its out-of-fold predictions.

When every holdout set is a single row (leave-one-out) no per-resample
metric exists, so the held-out probabilities of each repeat are pooled and
scored once.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from stackwise.config import ResamplingConfig, TuningConfig
from stackwise.core.metrics import best_index, get_metric, score
from stackwise.core.random_source import RandomSource
from stackwise.core.resampling import Resample, make_resamples
from stackwise.errors import (
    ConvergenceFailure, InsufficientDataError, SweepFailedError, UndefinedMetricError
)
from stackwise.parallel.cancellation import CancellationToken
from stackwise.parallel.scheduler import prepare_sweep_jobs, get_sweep_info, shared_matrices
from stackwise.parallel.worker import (
    clear_sweep_data, install_sweep_data, run_jobs, run_resample_job
)
from stackwise.training.algorithms import ALGORITHMS, AlgorithmRegistry, GridSpec, expand_grid
from stackwise.training.model import OutOfFoldPredictions, TrainedModel, parameter_columns
from stackwise.utils import compute_resample_hash, format_params

logger = logging.getLogger(__name__)


def binary_labels(y, positive_class) -> tuple:
    """Validate a binary label vector and encode it as 1 (positive) / 0.

    Returns
    -------
    (labels, encoded, classes) : tuple
        Original labels as an array, 0/1 encoding and
        (negative_class, positive_class).

    Raises
    ------
    InsufficientDataError
        If y holds fewer than two classes or lacks the positive class.
    ValueError
        If y holds more than two classes or missing labels.
    """
    labels = np.asarray(y, dtype=object)
    if pd.isna(labels).any():
        raise ValueError("Labels contain missing values")

    levels = sorted(set(labels.tolist()), key=str)
    if len(levels) > 2:
        raise ValueError(f"Binary classification expects 2 classes, got {levels}")
    if len(levels) < 2 or positive_class not in levels:
        raise InsufficientDataError(
            f"Training labels must contain the positive class '{positive_class}' "
            f"and one other class, got {levels}"
        )

    negative_class = [level for level in levels if level != positive_class][0]
    encoded = (labels == positive_class).astype(int)
    return labels, encoded, (negative_class, positive_class)


def pooled_resample_name(repeat: int) -> str:
    """Name of the pooled leave-one-out result of a repeat."""
    return f"Pooled.Rep{repeat + 1:02d}"


def _first_resample_ids(resamples) -> Dict[int, int]:
    first: Dict[int, int] = {}
    for resample in resamples:
        first.setdefault(resample.repeat, resample.resample_id)
    return first


def _pooled_frame(values: Dict[int, float], resamples, metric: str) -> pd.DataFrame:
    """Per-repeat pooled metric in the layout of per-resample results (fold -1)."""
    first_ids = _first_resample_ids(resamples)
    repeats = sorted(values)
    return pd.DataFrame({
        'resample': [pooled_resample_name(repeat) for repeat in repeats],
        'resample_id': [first_ids[repeat] for repeat in repeats],
        'repeat': repeats,
        'fold': [-1] * len(repeats),
        metric: [values[repeat] for repeat in repeats],
    })


class ModelTrainer:
    """Tune and fit one algorithm under resampling.

    Parameters
    ----------
    algorithm : str
        Registered algorithm name.
    positive_class : Any
        Label of the positive class.
    resampling : ResamplingConfig, optional
        Resampling method and sizes. Ignored when fit() receives resamples.
    tuning : TuningConfig, optional
        Grid strategy, tune length and selection metric.
    random_source : RandomSource, optional
        Source for resamples and estimator seeds.
    n_workers : int, default=1
        1 runs jobs inline, larger values use a process pool.
    registry : AlgorithmRegistry, optional
        Defaults to the module-level ALGORITHMS registry.
    database : RunDatabase, optional
        When given, every scored job and the final model are recorded.
    cancel_token : CancellationToken, optional
        Checked between job boundaries.
    name : str, optional
        Model name, defaults to the algorithm name.

    Examples
    --------
    >>> trainer = ModelTrainer('rf', positive_class='yes', random_source=RandomSource(315))
    >>> model = trainer.fit(X_train, y_train)
    >>> model.hyperparameters
    {'max_features': 2}
    """

    def __init__(
        self,
        algorithm: str,
        positive_class: Any,
        resampling: Optional[ResamplingConfig] = None,
        tuning: Optional[TuningConfig] = None,
        random_source: Optional[RandomSource] = None,
        n_workers: int = 1,
        registry: Optional[AlgorithmRegistry] = None,
        database=None,
        cancel_token: Optional[CancellationToken] = None,
        name: Optional[str] = None
    ):
        self.registry = registry if registry is not None else ALGORITHMS
        self.registry.get_config(algorithm)

        self.algorithm = algorithm
        self.positive_class = positive_class
        self.resampling = resampling or ResamplingConfig()
        self.tuning = tuning or TuningConfig()
        self.random_source = random_source or RandomSource(315)
        self.n_workers = n_workers
        self.database = database
        self.cancel_token = cancel_token
        self.name = name or algorithm

        self.resampling.validate()
        self.tuning.validate()

    @property
    def metric(self) -> str:
        return self.tuning.metric

    def combinations(self, n_features: int, grid: GridSpec = None) -> List[Dict[str, Any]]:
        """Hyperparameter combinations in evaluation order."""
        if grid is None:
            grid = self.tuning.grid_for(self.algorithm)
        if grid is not None:
            return expand_grid(grid)
        return self.registry.tuning_grid(self.algorithm, self.tuning.tune_length, n_features)

    def fit(
        self,
        X: pd.DataFrame,
        y,
        grid: GridSpec = None,
        features: Optional[Sequence[str]] = None,
        resamples: Optional[Sequence[Resample]] = None
    ) -> TrainedModel:
        """Run the sweep, select the best combination and refit it.

        Parameters
        ----------
        X : pd.DataFrame
            Preprocessed training features.
        y : array-like
            Training labels (original levels).
        grid : list of dict or dict of lists, optional
            Explicit grid; overrides tuning settings.
        features : sequence of str, optional
            Column subset to train on (e.g. from feature selection).
        resamples : sequence of Resample, optional
            Shared resamples. Built from the resampling config when None.

        Returns
        -------
        model : TrainedModel

        Raises
        ------
        SweepFailedError
            If no combination completed every resample with at least one
            defined metric value.
        SweepCancelledError
            If the cancellation token was set.
        ConvergenceFailure
            If the refit of the selected combination fails.
        """
        start_time = time.perf_counter()

        if not isinstance(X, pd.DataFrame):
            raise TypeError("X must be a pandas DataFrame")
        if len(X) != len(y):
            raise ValueError(f"X has {len(X)} rows but y has {len(y)}")

        if features is not None:
            missing = [f for f in features if f not in X.columns]
            if missing:
                raise KeyError(f"Selected features not in X: {missing}")
            X = X[list(features)]

        labels, encoded, classes = binary_labels(y, self.positive_class)
        matrix = X.to_numpy(dtype=float)

        if resamples is None:
            resamples = make_resamples(labels, self.resampling, self.random_source.child('resamples'))
        resamples = tuple(resamples)
        for resample in resamples:
            if resample.train_index.max(initial=-1) >= len(X) or resample.holdout_index.max(initial=-1) >= len(X):
                raise ValueError(f"Resample {resample.name} indexes rows beyond the training data")

        combinations = self.combinations(X.shape[1], grid)
        estimators = [
            (
                combination_id,
                params,
                self.registry.build_estimator(
                    self.algorithm, params, self.random_source.child(self.algorithm, combination_id)
                )
            )
            for combination_id, params in enumerate(combinations)
        ]

        jobs = prepare_sweep_jobs(estimators, resamples, self.metric)
        shared_X, shared_y = shared_matrices(matrix, encoded)
        info = get_sweep_info(jobs, shared_X)
        logger.info(
            f"Tuning {self.name}: {info['n_combinations']} combinations x "
            f"{info['n_resamples']} resamples = {info['n_jobs']} jobs "
            f"({info['n_rows']} rows, {X.shape[1]} features)"
        )

        try:
            results = run_jobs(
                run_resample_job,
                jobs,
                n_workers=self.n_workers,
                cancel_token=self.cancel_token,
                description=f"{self.name} sweep",
                initializer=install_sweep_data,
                initargs=(shared_X, shared_y)
            )
        finally:
            clear_sweep_data()

        by_combination: Dict[int, list] = {cid: [] for cid in range(len(combinations))}
        for result in results:
            by_combination[result.combination_id].append(result)

        pooled = None
        if all(len(r.holdout_index) == 1 for r in resamples):
            logger.info(f"{self.name}: single-row holdouts, scoring pooled predictions per repeat")
            pooled = {
                combination_id: self._pooled_values(combination_results, encoded, resamples)
                for combination_id, combination_results in by_combination.items()
            }

        results_table = self._results_table(combinations, by_combination, pooled)
        self._record_resamples(combinations, by_combination, resamples, pooled)

        eligible = np.where(results_table['status'] == 'ok', results_table[self.metric], np.nan)
        if np.all(np.isnan(eligible)):
            raise SweepFailedError(
                f"{self.name}: no hyperparameter combination produced a usable resampled "
                f"{self.metric} ({int((results_table['status'] == 'failed').sum())} failed, "
                f"{int((results_table['status'] == 'undefined').sum())} undefined)"
            )

        best = best_index(eligible, self.metric)
        best_params = combinations[best]
        best_results = sorted(by_combination[best], key=lambda r: r.resample_id)

        final_estimator = self.registry.build_estimator(
            self.algorithm, best_params, self.random_source.child(self.algorithm, 'final')
        )
        try:
            final_estimator.fit(matrix, encoded)
        except Exception as e:
            raise ConvergenceFailure(
                f"{self.name}: refit of selected combination {best_params} failed: {e}"
            ) from e

        oof = OutOfFoldPredictions.from_results(
            best_results, resamples, labels, classes[1], classes[0]
        )

        by_id = {r.resample_id: r for r in resamples}
        if pooled is None:
            resample_results = pd.DataFrame({
                'resample': [by_id[r.resample_id].name for r in best_results],
                'resample_id': [r.resample_id for r in best_results],
                'repeat': [by_id[r.resample_id].repeat for r in best_results],
                'fold': [by_id[r.resample_id].fold for r in best_results],
                self.metric: [r.value for r in best_results],
            })
        else:
            resample_results = _pooled_frame(pooled[best], resamples, self.metric)

        model = TrainedModel(
            name=self.name,
            algorithm=self.algorithm,
            hyperparameters=dict(best_params),
            estimator=final_estimator,
            input_columns=tuple(X.columns),
            features=tuple(features) if features is not None else None,
            classes=classes,
            positive_class=self.positive_class,
            metric=self.metric,
            best_score=float(eligible[best]),
            results=results_table,
            resample_results=resample_results,
            oof=oof,
            resamples=resamples,
            training_labels=labels,
            seed=self.random_source.seed
        )

        elapsed = time.perf_counter() - start_time
        logger.info(
            f"{self.name}: selected {best_params} with resampled "
            f"{self.metric} = {model.best_score:.4f} ({elapsed:.1f}s)"
        )

        if self.database is not None:
            self.database.insert_model({
                'model_name': self.name,
                'algorithm': self.algorithm,
                'params': format_params(best_params),
                'metric': self.metric,
                'best_score': model.best_score,
                'n_combinations': len(combinations),
                'n_failed': int((results_table['status'] == 'failed').sum()),
                'n_resamples': len(resamples),
                'n_features': X.shape[1],
                'resample_hash': compute_resample_hash(resamples),
                'training_time_sec': elapsed
            })

        return model

    def _pooled_values(self, results, encoded, resamples) -> Dict[int, float]:
        """Metric of each repeat's concatenated holdout predictions, keyed by repeat.

        Empty when any resample failed; the combination is skipped anyway.
        """
        if any(r.failed for r in results):
            return {}

        repeats = {r.resample_id: r.repeat for r in resamples}
        values = {}
        for repeat in sorted(set(repeats.values())):
            members = [r for r in results if repeats[r.resample_id] == repeat]
            holdout = np.concatenate([r.holdout_index for r in members])
            probabilities = np.concatenate([r.probabilities for r in members])
            try:
                values[repeat] = score(self.metric, encoded[holdout], probabilities)
            except UndefinedMetricError:
                values[repeat] = np.nan
        return values

    def _results_table(self, combinations, by_combination, pooled=None) -> pd.DataFrame:
        """One row per combination with its resampled mean, sd and status.

        With pooled values the counts refer to repeats rather than resamples.
        """
        direction = get_metric(self.metric)
        param_names = parameter_columns(combinations)
        rows = []

        for combination_id, params in enumerate(combinations):
            results = by_combination[combination_id]
            failures = [r for r in results if r.failed]
            if pooled is not None and not failures:
                values = np.array(list(pooled[combination_id].values()), dtype=float)
            else:
                values = np.array([r.value for r in results if not r.failed], dtype=float)
            defined = values[~np.isnan(values)]

            if failures:
                status = 'failed'
                logger.warning(
                    f"{self.name}: skipping combination {params} "
                    f"({len(failures)}/{len(results)} resamples failed: {failures[0].error})"
                )
            elif defined.size == 0:
                status = 'undefined'
                logger.warning(
                    f"{self.name}: combination {params} has no defined {direction.name} on any resample"
                )
            else:
                status = 'ok'
                n_undefined = len(values) - defined.size
                if n_undefined:
                    logger.info(
                        f"{self.name}: {n_undefined} resamples with undefined "
                        f"{self.metric} excluded for combination {params}"
                    )

            row = {'combination': combination_id}
            row.update({name: params.get(name) for name in param_names})
            row.update({
                self.metric: float(defined.mean()) if (defined.size and not failures) else np.nan,
                f'{self.metric}_sd': float(defined.std(ddof=1)) if (defined.size > 1 and not failures) else np.nan,
                'n_defined': int(defined.size),
                'n_undefined': int(len(values) - defined.size),
                'n_failed': len(failures),
                'status': status,
                'error': failures[0].error if failures else None
            })
            rows.append(row)

        return pd.DataFrame(rows)

    def _record_resamples(self, combinations, by_combination, resamples, pooled=None) -> None:
        if self.database is None:
            return

        names = {r.resample_id: r.name for r in resamples}
        first_ids = _first_resample_ids(resamples)
        records = []
        for combination_id, results in by_combination.items():
            params = format_params(combinations[combination_id])
            for repeat, value in (pooled or {}).get(combination_id, {}).items():
                records.append({
                    'model_name': self.name,
                    'algorithm': self.algorithm,
                    'combination_id': combination_id,
                    'params': params,
                    'resample': pooled_resample_name(repeat),
                    'resample_id': first_ids[repeat],
                    'metric': self.metric,
                    'value': value,
                    'status': 'undefined' if np.isnan(value) else 'ok',
                    'error': None,
                    'fit_time_sec': sum(r.fit_time for r in results)
                })
            for result in results:
                if result.failed:
                    status = 'failed'
                elif result.undefined:
                    status = 'undefined'
                else:
                    status = 'ok'
                records.append({
                    'model_name': self.name,
                    'algorithm': self.algorithm,
                    'combination_id': combination_id,
                    'params': params,
                    'resample': names[result.resample_id],
                    'resample_id': result.resample_id,
                    'metric': self.metric,
                    'value': result.value,
                    'status': status,
                    'error': result.error,
                    'fit_time_sec': result.fit_time
                })
        self.database.insert_resamples(records)
