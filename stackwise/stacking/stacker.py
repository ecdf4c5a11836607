"""Stacked ensemble over out-of-fold base-model predictions.

The meta-model is trained only on OOF probabilities, one column per base
model (averaged per row across that model's resamples). At prediction time
each base model's full-fit probabilities are assembled in the same column
order and passed to the meta-model.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from stackwise.config import ResamplingConfig, TuningConfig
from stackwise.core.random_source import RandomSource
from stackwise.core.resampling import Resample, make_resamples
from stackwise.errors import FeatureLayoutMismatchError, SweepFailedError
from stackwise.parallel.cancellation import CancellationToken
from stackwise.parallel.worker import run_jobs
from stackwise.training.algorithms import ALGORITHMS, AlgorithmRegistry
from stackwise.training.model import TrainedModel
from stackwise.training.trainer import ModelTrainer
from stackwise.tracking.logger import log_training_progress
from stackwise.utils import compute_resample_hash, name_models

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class EnsembleModel:
    """Base models plus a meta-model over their positive-class probabilities.

    Attributes:
        base_models: (name, TrainedModel) pairs in meta-feature column order
        meta_model: TrainedModel whose input columns are the base model names
        excluded: Base models dropped for degenerate OOF predictions
        name: Model name
    """
    base_models: Tuple[Tuple[str, TrainedModel], ...] = field(repr=False)
    meta_model: TrainedModel = field(repr=False)
    excluded: Tuple[str, ...] = ()
    name: str = 'ensemble'

    @property
    def positive_class(self) -> Any:
        return self.meta_model.positive_class

    @property
    def classes(self) -> Tuple[Any, Any]:
        return self.meta_model.classes

    @property
    def model_names(self) -> List[str]:
        return [name for name, _ in self.base_models]

    @property
    def input_columns(self) -> Tuple[str, ...]:
        """Ordered union of the base models' input columns."""
        columns: List[str] = []
        for _, model in self.base_models:
            columns.extend(c for c in model.input_columns if c not in columns)
        return tuple(columns)

    def meta_features(self, X: pd.DataFrame) -> pd.DataFrame:
        """Base-model positive-class probabilities, one column per base model."""
        if tuple(X.columns) != self.input_columns:
            raise FeatureLayoutMismatchError(self.input_columns, X.columns, f"{self.name}.predict")
        return pd.DataFrame(
            {name: model.positive_probability(X[list(model.input_columns)]) for name, model in self.base_models},
            index=X.index,
            columns=self.model_names
        )

    def positive_probability(self, X: pd.DataFrame) -> np.ndarray:
        return self.meta_model.positive_probability(self.meta_features(X))

    def predict_proba(self, X: pd.DataFrame) -> pd.DataFrame:
        return self.meta_model.predict_proba(self.meta_features(X))

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        return self.meta_model.predict(self.meta_features(X))

    def summary(self) -> str:
        """Generate human-readable summary of the ensemble."""
        lines = [
            "Ensemble Summary",
            "=" * 50,
            f"Base models: {', '.join(self.model_names)}",
            f"Meta-model: {self.meta_model.algorithm} {self.meta_model.hyperparameters}",
            f"Meta-model resampled {self.meta_model.metric}: {self.meta_model.best_score:.4f}",
        ]
        if self.excluded:
            lines.append(f"Excluded (degenerate OOF predictions): {', '.join(self.excluded)}")
        if hasattr(self.meta_model.estimator, 'coef_'):
            weights = np.ravel(self.meta_model.estimator.coef_)
            lines.append("Meta-model weights:")
            lines.extend(f"  {name}: {w:.4f}" for name, w in zip(self.model_names, weights))
        return "\n".join(lines)


class EnsembleStacker:
    """Fit a meta-model on the OOF predictions of trained base models.

    Parameters
    ----------
    meta_algorithm : str, default='glm'
        Registered algorithm used as the meta-model.
    resampling : ResamplingConfig, optional
        Resampling used to tune the meta-model; 5-fold cv by default.
    tuning : TuningConfig, optional
    random_source : RandomSource, optional
    n_workers : int, default=1
    registry : AlgorithmRegistry, optional
    database : RunDatabase, optional
    cancel_token : CancellationToken, optional

    Examples
    --------
    >>> models = train_model_list(['glm', 'rf'], X, y, positive_class='yes')
    >>> ensemble = EnsembleStacker().fit(models)
    >>> ensemble.predict(X_test)
    """

    def __init__(
        self,
        meta_algorithm: str = 'glm',
        resampling: Optional[ResamplingConfig] = None,
        tuning: Optional[TuningConfig] = None,
        random_source: Optional[RandomSource] = None,
        n_workers: int = 1,
        registry: Optional[AlgorithmRegistry] = None,
        database=None,
        cancel_token: Optional[CancellationToken] = None
    ):
        self.meta_algorithm = meta_algorithm
        self.resampling = resampling or ResamplingConfig(method='cv', number=5)
        self.tuning = tuning or TuningConfig()
        self.random_source = random_source or RandomSource(315)
        self.n_workers = n_workers
        self.registry = registry
        self.database = database
        self.cancel_token = cancel_token

    def meta_features(self, models) -> Tuple[pd.DataFrame, np.ndarray, List[str]]:
        """Build the meta-training matrix from base-model OOF predictions.

        Returns
        -------
        (features, labels, excluded) : tuple
            Meta features indexed by training row, the matching training
            labels and the names of models dropped as degenerate.

        Raises
        ------
        ValueError
            If fewer than 2 models are given, their positive classes or
            training rows differ, or fewer than 2 non-degenerate models remain.
        """
        models = name_models(models)
        self._check_compatible(models)

        averaged = OrderedDict()
        excluded = []
        for name, model in models.items():
            probabilities = model.oof.averaged()
            defined = probabilities.dropna()
            if defined.empty or np.isclose(defined.max(), defined.min()):
                logger.warning(f"Base model '{name}' has constant OOF predictions; excluded from the stack")
                excluded.append(name)
                continue
            averaged[name] = probabilities

        if len(averaged) < 2:
            raise ValueError(
                f"Stacking requires at least 2 non-degenerate base models, "
                f"got {len(averaged)} (excluded: {excluded})"
            )

        features = pd.DataFrame(averaged)
        complete = features.notna().all(axis=1)
        if not complete.all():
            logger.info(
                f"Dropping {int((~complete).sum())} of {len(features)} rows without an OOF "
                f"prediction from every base model"
            )
        features = features.loc[complete]

        labels = next(iter(models.values())).training_labels[features.index.to_numpy()]
        return features.reset_index(drop=True), labels, excluded

    def fit(self, models) -> EnsembleModel:
        """Train the meta-model.

        Parameters
        ----------
        models : mapping name -> TrainedModel, or list of TrainedModel

        Returns
        -------
        ensemble : EnsembleModel
        """
        models = name_models(models)
        features, labels, excluded = self.meta_features(models)
        positive_class = next(iter(models.values())).positive_class

        logger.info(
            f"Training {self.meta_algorithm} meta-model on {features.shape[1]} base models "
            f"({len(features)} rows)"
        )

        trainer = ModelTrainer(
            self.meta_algorithm,
            positive_class=positive_class,
            resampling=self.resampling,
            tuning=self.tuning,
            random_source=self.random_source.child('meta'),
            n_workers=self.n_workers,
            registry=self.registry,
            database=self.database,
            cancel_token=self.cancel_token,
            name='ensemble.meta'
        )
        meta_model = trainer.fit(features, labels)

        return EnsembleModel(
            base_models=tuple((name, models[name]) for name in features.columns),
            meta_model=meta_model,
            excluded=tuple(excluded)
        )

    @staticmethod
    def _check_compatible(models: "OrderedDict[str, TrainedModel]") -> None:
        if len(models) < 2:
            raise ValueError(f"Stacking requires at least 2 base models, got {len(models)}")

        positives = {model.positive_class for model in models.values()}
        if len(positives) > 1:
            raise ValueError(f"Base models disagree on the positive class: {positives}")

        n_rows = {model.n_training_rows for model in models.values()}
        if len(n_rows) > 1:
            raise ValueError(f"Base models were trained on different row counts: {sorted(n_rows)}")

        reference = next(iter(models.values())).training_labels
        for name, model in models.items():
            if not np.array_equal(model.training_labels, reference):
                raise ValueError(f"Base model '{name}' was trained on different labels")

        hashes = {compute_resample_hash(model.resamples) for model in models.values()}
        if len(hashes) > 1:
            logger.warning("Base models were trained on different resamples")


def _train_algorithm(job: tuple) -> Tuple[str, Optional[TrainedModel], Optional[str]]:
    (algorithm, positive_class, resampling, tuning, seed, registry,
     X, y, features, resamples, database) = job
    trainer = ModelTrainer(
        algorithm,
        positive_class=positive_class,
        resampling=resampling,
        tuning=tuning,
        random_source=RandomSource(seed),
        n_workers=1,
        registry=registry,
        database=database
    )
    try:
        return algorithm, trainer.fit(X, y, features=features, resamples=resamples), None
    except SweepFailedError as e:
        return algorithm, None, str(e)


def train_model_list(
    algorithms: Sequence[str],
    X: pd.DataFrame,
    y,
    positive_class: Any,
    resampling: Optional[ResamplingConfig] = None,
    tuning: Optional[TuningConfig] = None,
    random_source: Optional[RandomSource] = None,
    n_workers: int = 1,
    registry: Optional[AlgorithmRegistry] = None,
    features: Optional[Sequence[str]] = None,
    resamples: Optional[Sequence[Resample]] = None,
    database=None,
    cancel_token: Optional[CancellationToken] = None
) -> "OrderedDict[str, TrainedModel]":
    """Train several algorithms on shared resamples.

    Each algorithm gets its own seed derived from random_source. With
    n_workers > 1 the algorithms train concurrently in worker processes,
    which use the module-level registry unless a picklable registry is
    passed. An algorithm whose sweep fails entirely is logged and left out.

    Returns
    -------
    models : OrderedDict name -> TrainedModel
        In the order of algorithms.

    Raises
    ------
    SweepFailedError
        If every algorithm failed.
    """
    if len(set(algorithms)) != len(algorithms):
        raise ValueError(f"Duplicate algorithms in {list(algorithms)}")

    random_source = random_source or RandomSource(315)
    resampling = resampling or ResamplingConfig()
    tuning = tuning or TuningConfig()
    lookup = registry if registry is not None else ALGORITHMS
    for algorithm in algorithms:
        lookup.get_config(algorithm)

    if resamples is None:
        resamples = make_resamples(np.asarray(y, dtype=object), resampling, random_source.child('resamples'))

    if n_workers == 1:
        results = []
        for position, algorithm in enumerate(algorithms, start=1):
            trainer = ModelTrainer(
                algorithm,
                positive_class=positive_class,
                resampling=resampling,
                tuning=tuning,
                random_source=random_source.child(algorithm),
                registry=registry,
                database=database,
                cancel_token=cancel_token
            )
            try:
                results.append((algorithm, trainer.fit(X, y, features=features, resamples=resamples), None))
            except SweepFailedError as e:
                results.append((algorithm, None, str(e)))
            log_training_progress(logger, position, len(algorithms), "Model list")
    else:
        jobs = [
            (algorithm, positive_class, resampling, tuning, random_source.child(algorithm).seed,
             registry, X, y, features, resamples, database)
            for algorithm in algorithms
        ]
        results = run_jobs(
            _train_algorithm,
            jobs,
            n_workers=n_workers,
            cancel_token=cancel_token,
            progress_callback=lambda done, total: log_training_progress(logger, done, total, 'Model list'),
            description='Model list'
        )

    models: "OrderedDict[str, TrainedModel]" = OrderedDict()
    failures: Dict[str, str] = {}
    for algorithm, model, error in results:
        if model is None:
            logger.warning(f"{algorithm}: sweep failed and was left out ({error})")
            failures[algorithm] = error
        else:
            models[algorithm] = model

    if not models:
        raise SweepFailedError(f"Every algorithm failed: {failures}")
    return models
