"""Unit tests for tracking modules (database and logging).

This test suite validates RunDatabase and logging utilities.
"""

import unittest
import sys
import tempfile
from pathlib import Path
import logging
import numpy as np
import pandas as pd
from sklearn.datasets import make_classification

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stackwise.config import ResamplingConfig, TuningConfig
from stackwise.core import RandomSource
from stackwise.tracking import (
    RunDatabase, setup_logger, log_phase_start, log_performance_metrics, log_training_progress, log_error
)
from stackwise.training import ModelTrainer


def _resample_record(**overrides):
    record = {
        'model_name': 'rf',
        'algorithm': 'rf',
        'combination_id': 0,
        'params': '{"max_features": 2}',
        'resample': 'Fold01.Rep01',
        'resample_id': 0,
        'metric': 'roc_auc',
        'value': 0.85,
        'status': 'ok',
        'fit_time_sec': 0.4
    }
    record.update(overrides)
    return record


class TestDatabaseInitialization(unittest.TestCase):
    """Test database initialization."""

    def setUp(self):
        """Set up temporary database."""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = Path(self.temp_dir.name) / 'test.db'

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_initialization(self):
        """Test database can be initialized."""
        database = RunDatabase(db_path=self.db_path)
        database.initialize()

        self.assertTrue(database.exists())
        self.assertGreater(database.get_size_mb(), 0)

    def test_initialize_twice(self):
        database = RunDatabase(db_path=self.db_path)
        database.initialize()
        database.initialize()
        self.assertTrue(database.query_models().empty)

    def test_reset(self):
        database = RunDatabase(db_path=self.db_path)
        database.initialize()
        database.reset()

        self.assertFalse(database.exists())
        self.assertEqual(database.get_size_mb(), 0.0)


class TestDatabaseOperations(unittest.TestCase):
    """Test inserts and queries."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.database = RunDatabase(Path(self.temp_dir.name) / 'runs.db')
        self.database.initialize()

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_insert_resample(self):
        self.database.insert_resample(_resample_record())
        records = self.database.query_resamples()

        self.assertEqual(len(records), 1)
        self.assertAlmostEqual(records['value'].iloc[0], 0.85)

    def test_undefined_value_stored_as_null(self):
        self.database.insert_resamples([
            _resample_record(),
            _resample_record(resample_id=1, resample='Fold02.Rep01', value=np.nan, status='undefined')
        ])
        records = self.database.query_resamples('rf')

        self.assertEqual(len(records), 2)
        self.assertTrue(pd.isna(records['value'].iloc[1]))

    def test_query_by_model(self):
        self.database.insert_resamples([_resample_record(), _resample_record(model_name='knn')])
        self.assertEqual(len(self.database.query_resamples('knn')), 1)

    def test_insert_evaluation(self):
        self.database.insert_evaluation('rf', 'test', {'accuracy': 0.8, 'kappa': float('nan')})
        evaluations = self.database.query_evaluations('rf')

        self.assertEqual(list(evaluations['metric']), ['accuracy', 'kappa'])
        self.assertTrue(pd.isna(evaluations['value'].iloc[1]))


class TestTrainerTracking(unittest.TestCase):
    """Test that a tracked sweep writes every job and the selected model."""

    def test_trainer_writes_records(self):
        X, y = make_classification(n_samples=90, n_features=4, n_informative=3,
                                   n_redundant=0, random_state=5)
        X = pd.DataFrame(X, columns=[f'feature_{i}' for i in range(4)])
        y = np.where(y == 1, 'yes', 'no')

        with tempfile.TemporaryDirectory() as tmpdir:
            database = RunDatabase(Path(tmpdir) / 'runs.db')
            database.initialize()

            ModelTrainer(
                'knn', positive_class='yes',
                resampling=ResamplingConfig('cv', number=3),
                tuning=TuningConfig(tune_length=2),
                random_source=RandomSource(315),
                database=database
            ).fit(X, y)

            resamples = database.query_resamples('knn')
            models = database.query_models()

            self.assertEqual(len(resamples), 6)
            self.assertEqual(set(resamples['status']), {'ok'})
            self.assertEqual(len(models), 1)
            self.assertEqual(models['n_combinations'].iloc[0], 2)
            self.assertEqual(models['n_resamples'].iloc[0], 3)


class TestLogging(unittest.TestCase):
    """Test logging utilities."""

    def test_setup_logger(self):
        logger = setup_logger('stackwise.test', level=logging.DEBUG)

        self.assertEqual(logger.level, logging.DEBUG)
        self.assertEqual(len(logger.handlers), 1)

    def test_setup_logger_replaces_handlers(self):
        setup_logger('stackwise.test')
        logger = setup_logger('stackwise.test')
        self.assertEqual(len(logger.handlers), 1)

    def test_progress_and_error_helpers(self):
        logger = logging.getLogger('stackwise.helpers_test')

        with self.assertLogs(logger, level='INFO') as captured:
            log_training_progress(logger, current=1, total=4, message='Model list')
            try:
                raise ValueError("degenerate base models")
            except ValueError as e:
                log_error(logger, e, context='stacking')

        self.assertIn('Model list: 1/4 (25.0%)', captured.output[0])
        self.assertIn('Error in stacking: ValueError', captured.output[1])

    def test_log_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_file = Path(tmpdir) / 'logs' / 'run.log'
            logger = setup_logger('stackwise.file_test', log_file=log_file)
            log_phase_start(logger, 'Stacking', 'Meta-model: glm')
            log_performance_metrics(logger, {'roc_auc': 0.91}, prefix='ensemble')

            for handler in logger.handlers:
                handler.flush()
            content = log_file.read_text()
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)

            self.assertIn('STACKING', content)
            self.assertIn('roc_auc: 0.910000', content)


if __name__ == '__main__':
    unittest.main(verbosity=2)
