"""End-to-end classification workflow.

Runs split -> pipeline -> feature selection -> base models -> comparison
-> stacking -> test evaluation, with every stochastic step seeded from one
root RandomSource.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from stackwise.config import TuningConfig, WorkflowConfig
from stackwise.core.random_source import RandomSource
from stackwise.data.splits import DataSplit, split_dataset
from stackwise.evaluation.comparison import ResampleComparator
from stackwise.evaluation.report import ClassificationReport, RocCurve, evaluate, roc_report
from stackwise.parallel.cancellation import CancellationToken
from stackwise.persistence import save_model, save_pipeline
from stackwise.preprocessing.pipeline import Pipeline
from stackwise.selection.rfe import FeatureSelection, RecursiveFeatureEliminator
from stackwise.stacking.stacker import EnsembleModel, EnsembleStacker, train_model_list
from stackwise.tracking.database import RunDatabase
from stackwise.tracking.logger import (
    setup_logger, log_phase_start, log_phase_end, log_performance_metrics, log_error, log_warning,
    log_success
)

logger = logging.getLogger(__name__)


@dataclass
class WorkflowResult:
    """Everything a workflow run produced."""
    split: DataSplit
    pipeline: Pipeline
    feature_selection: Optional[FeatureSelection]
    models: "OrderedDict[str, object]"
    comparison: Optional[ResampleComparator]
    ensemble: Optional[EnsembleModel]
    test_reports: Dict[str, ClassificationReport] = field(default_factory=dict)
    roc_curves: Dict[str, RocCurve] = field(default_factory=dict)
    artifacts_dir: Optional[Path] = None

    @property
    def features(self) -> Optional[List[str]]:
        if self.feature_selection is None:
            return None
        return list(self.feature_selection.features)

    def performance_table(self) -> pd.DataFrame:
        """Test-set statistics, one row per model (ensemble last)."""
        rows = []
        for name, report in self.test_reports.items():
            row = {'model': name, 'roc_auc': self.roc_curves[name].auc}
            row.update(report.as_dict())
            rows.append(row)
        return pd.DataFrame(rows).set_index('model')

    def summary(self) -> str:
        lines = [
            "Workflow Result Summary",
            "=" * 50,
            f"Training rows: {len(self.split.train_index)}",
            f"Test rows: {len(self.split.test_index)}",
            f"Selected features: {len(self.features) if self.features else 'all'}",
            f"Base models: {', '.join(self.models.keys())}",
            f"Ensemble: {'yes' if self.ensemble is not None else 'no'}",
            "",
            self.performance_table().to_string(float_format=lambda v: f"{v:.4f}")
        ]
        return "\n".join(lines)


class ClassificationWorkflow:
    """Configured end-to-end run over one dataset.

    Parameters
    ----------
    config : WorkflowConfig
    configure_logging : bool, default=True
        Attach console (and optional file) handlers to the 'stackwise' logger.
    cancel_token : CancellationToken, optional
        Shared by every sweep of the run.

    Examples
    --------
    >>> config = WorkflowConfig(label='Class', positive_class='yes')
    >>> result = ClassificationWorkflow(config).run(data)
    >>> print(result.summary())
    """

    def __init__(
        self,
        config: WorkflowConfig,
        configure_logging: bool = True,
        cancel_token: Optional[CancellationToken] = None
    ):
        config.validate()
        self.config = config
        self.cancel_token = cancel_token
        self.database: Optional[RunDatabase] = None

        if configure_logging:
            tracking = config.tracking
            log_file = None
            if tracking.log_to_file:
                log_file = Path(tracking.log_directory) / f"stackwise_{time.strftime('%Y%m%d_%H%M%S')}.log"
            setup_logger('stackwise', level=getattr(logging, tracking.log_level), log_file=log_file)

        if config.tracking.db_path is not None:
            self.database = RunDatabase(Path(config.tracking.db_path))
            self.database.initialize()

    def run(self, data: pd.DataFrame) -> WorkflowResult:
        """Execute every phase on a raw dataset."""
        config = self.config
        root = RandomSource(config.random_state)
        n_workers = config.parallel.n_workers
        start_time = time.perf_counter()

        log_phase_start(logger, "Data split", config.summary())
        split = split_dataset(data, config.label, config.train_fraction, root.child('split'))
        logger.info(split.summary())

        pipeline = Pipeline.from_config(config.preprocessing, label_column=config.label)
        X_train = pipeline.fit_apply(split.train)
        X_test = pipeline.apply(split.test)
        y_train = split.train[config.label].to_numpy(dtype=object)
        y_test = split.test[config.label].to_numpy(dtype=object)

        selection = None
        features = None
        if config.feature_selection.enabled and X_train.shape[1] > 1:
            log_phase_start(logger, "Feature selection")
            phase_start = time.perf_counter()
            selection = RecursiveFeatureEliminator(
                sizes=config.feature_selection.sizes,
                positive_class=config.positive_class,
                ranking_algorithm=config.feature_selection.ranking_algorithm,
                resampling=config.feature_selection.resampling,
                metric=config.tuning.metric,
                random_source=root.child('rfe'),
                n_workers=n_workers,
                cancel_token=self.cancel_token
            ).fit(X_train, y_train)
            features = list(selection.features)
            logger.info(selection.summary())
            log_phase_end(logger, "Feature selection", time.perf_counter() - phase_start)

        log_phase_start(logger, "Base model training", f"Algorithms: {config.stacking.base_algorithms}")
        phase_start = time.perf_counter()
        models = train_model_list(
            config.stacking.base_algorithms,
            X_train,
            y_train,
            positive_class=config.positive_class,
            resampling=config.resampling,
            tuning=config.tuning,
            random_source=root.child('models'),
            n_workers=n_workers,
            features=features,
            database=self.database,
            cancel_token=self.cancel_token
        )
        log_phase_end(logger, "Base model training", time.perf_counter() - phase_start)

        comparison = None
        ensemble = None
        if len(models) >= 2:
            comparison = ResampleComparator(models)
            logger.info(comparison.summary())

            log_phase_start(logger, "Stacking", f"Meta-model: {config.stacking.meta_algorithm}")
            stacker = EnsembleStacker(
                meta_algorithm=config.stacking.meta_algorithm,
                resampling=config.stacking.resampling,
                tuning=TuningConfig(
                    tune_length=config.tuning.tune_length,
                    metric=config.tuning.metric
                ),
                random_source=root.child('stack'),
                n_workers=n_workers,
                database=self.database,
                cancel_token=self.cancel_token
            )
            try:
                ensemble = stacker.fit(models)
                logger.info(ensemble.summary())
            except ValueError as e:
                log_error(logger, e, context="stacking; ensemble not built")
            log_phase_end(logger, "Stacking")
        else:
            log_warning(logger, "Fewer than 2 base models trained; skipping comparison and stacking")

        log_phase_start(logger, "Test evaluation")
        evaluated = OrderedDict(models)
        if ensemble is not None:
            evaluated[ensemble.name] = ensemble

        reports: Dict[str, ClassificationReport] = {}
        curves: Dict[str, RocCurve] = {}
        for name, model in evaluated.items():
            X_model = X_test[list(model.input_columns)]
            reports[name] = evaluate(
                model.predict(X_model), y_test, config.positive_class,
                negative_class=model.classes[0]
            )
            curves[name] = roc_report(y_test, model.positive_probability(X_model), config.positive_class)

            metrics = {'roc_auc': curves[name].auc}
            metrics.update(reports[name].as_dict())
            log_performance_metrics(logger, metrics, prefix=f"{name} (test)")
            if self.database is not None:
                self.database.insert_evaluation(name, 'test', metrics)

        artifacts_dir = None
        if config.paths.artifacts_dir is not None:
            artifacts_dir = self._persist(pipeline, evaluated)

        result = WorkflowResult(
            split=split,
            pipeline=pipeline,
            feature_selection=selection,
            models=models,
            comparison=comparison,
            ensemble=ensemble,
            test_reports=reports,
            roc_curves=curves,
            artifacts_dir=artifacts_dir
        )

        elapsed = time.perf_counter() - start_time
        log_phase_end(logger, "Workflow", elapsed)
        best = max(curves, key=lambda n: -np.inf if np.isnan(curves[n].auc) else curves[n].auc)
        log_success(logger, f"Best test ROC AUC: {best} ({curves[best].auc:.4f})")
        return result

    def _persist(self, pipeline: Pipeline, models) -> Path:
        directory = Path(self.config.paths.artifacts_dir)
        save_pipeline(pipeline, directory / 'pipeline')
        for name, model in models.items():
            save_model(model, directory / 'models' / f"{name}.joblib")
        logger.info(f"Artifacts saved to {directory}")
        return directory
