"""Unit tests for the workflow configuration system.

This test suite validates default values, validation rules and the
configuration summary.
"""

import unittest
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stackwise.config import (
    WorkflowConfig, PreprocessingConfig, ResamplingConfig, TuningConfig,
    FeatureSelectionConfig, StackingConfig, ParallelConfig, PathsConfig
)


class TestBasicInstantiation(unittest.TestCase):
    """Test basic configuration instantiation."""

    def test_default_instantiation(self):
        """Test that config can be instantiated with defaults."""
        config = WorkflowConfig()
        config.validate()
        self.assertIsNotNone(config)

    def test_random_state(self):
        """Test default random state."""
        config = WorkflowConfig()
        self.assertEqual(config.random_state, 315)


class TestConfigurationValues(unittest.TestCase):
    """Test default configuration values."""

    def setUp(self):
        self.config = WorkflowConfig()

    def test_preprocessing_config(self):
        self.assertEqual(self.config.preprocessing.n_neighbors, 5)
        self.assertEqual(self.config.preprocessing.categorical_distance, 'exclude')
        self.assertEqual(self.config.preprocessing.handle_unknown, 'zero')

    def test_resampling_config(self):
        self.assertEqual(self.config.resampling.method, 'repeatedcv')
        self.assertEqual(self.config.resampling.number, 10)
        self.assertEqual(self.config.resampling.repeats, 3)

    def test_tuning_config(self):
        self.assertEqual(self.config.tuning.strategy, 'length')
        self.assertEqual(self.config.tuning.tune_length, 3)
        self.assertEqual(self.config.tuning.metric, 'roc_auc')

    def test_stacking_config(self):
        self.assertEqual(self.config.stacking.meta_algorithm, 'glm')
        self.assertIn('rf', self.config.stacking.base_algorithms)
        self.assertEqual(self.config.stacking.resampling.method, 'cv')

    def test_paths_convert_to_path(self):
        paths = PathsConfig(artifacts_dir='out/artifacts')
        self.assertIsInstance(paths.artifacts_dir, Path)


class TestValidation(unittest.TestCase):
    """Test configuration validation."""

    def test_invalid_resampling_method(self):
        with self.assertRaises(AssertionError):
            ResamplingConfig(method='holdout').validate()

    def test_cv_needs_two_folds(self):
        with self.assertRaises(AssertionError):
            ResamplingConfig(method='cv', number=1).validate()

    def test_invalid_unknown_policy(self):
        with self.assertRaises(AssertionError):
            PreprocessingConfig(handle_unknown='ignore').validate()

    def test_invalid_distance_policy(self):
        with self.assertRaises(AssertionError):
            PreprocessingConfig(categorical_distance='gower').validate()

    def test_unknown_metric(self):
        with self.assertRaises(AssertionError):
            TuningConfig(metric='mcc').validate()

    def test_unregistered_algorithm(self):
        with self.assertRaises(AssertionError):
            StackingConfig(base_algorithms=['glm', 'deep_forest']).validate()

    def test_feature_selection_sizes(self):
        with self.assertRaises(AssertionError):
            FeatureSelectionConfig(sizes=[0, 2]).validate()

    def test_workers_positive(self):
        with self.assertRaises(AssertionError):
            ParallelConfig(n_workers=0).validate()

    def test_train_fraction_bounds(self):
        with self.assertRaises(AssertionError):
            WorkflowConfig(train_fraction=1.0).validate()


class TestTuningGrids(unittest.TestCase):
    """Test explicit grid lookup."""

    def test_grid_strategy_returns_grid(self):
        tuning = TuningConfig(strategy='grid', grids={'knn': {'n_neighbors': [3, 5]}})
        self.assertEqual(tuning.grid_for('knn'), {'n_neighbors': [3, 5]})
        self.assertIsNone(tuning.grid_for('rf'))

    def test_length_strategy_ignores_grids(self):
        tuning = TuningConfig(strategy='length', grids={'knn': {'n_neighbors': [3, 5]}})
        self.assertIsNone(tuning.grid_for('knn'))


class TestConfigSummary(unittest.TestCase):
    """Test configuration summary generation."""

    def test_summary_generation(self):
        config = WorkflowConfig(label='diagnosis', positive_class='M')
        summary = config.summary()

        self.assertIsInstance(summary, str)
        self.assertIn('Workflow Configuration Summary', summary)
        self.assertIn('diagnosis', summary)
        self.assertIn('repeatedcv', summary)


if __name__ == '__main__':
    unittest.main(verbosity=2)
