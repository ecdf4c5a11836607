"""Unit tests for model lists and the stacked ensemble.

This test suite validates shared-resample training of several algorithms,
meta-feature construction from out-of-fold predictions and ensemble
prediction.
"""

import unittest
import sys
from pathlib import Path
import numpy as np
import pandas as pd
from sklearn.datasets import make_classification
from sklearn.dummy import DummyClassifier

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stackwise.config import ResamplingConfig, TuningConfig
from stackwise.core import RandomSource
from stackwise.errors import FeatureLayoutMismatchError, SweepFailedError
from stackwise.stacking import EnsembleModel, EnsembleStacker, train_model_list
from stackwise.training import AlgorithmConfig, AlgorithmRegistry, get_default_algorithm_configs
from stackwise.utils import compute_resample_hash


def _training_data(n_samples=150, n_features=5, seed=7):
    X, y = make_classification(
        n_samples=n_samples,
        n_features=n_features,
        n_informative=3,
        n_redundant=1,
        n_classes=2,
        flip_y=0.05,
        random_state=seed
    )
    X = pd.DataFrame(X, columns=[f'feature_{i}' for i in range(n_features)])
    return X, np.where(y == 1, 'yes', 'no').astype(object)


def _registry_with_constant_model():
    registry = AlgorithmRegistry(get_default_algorithm_configs())
    registry.register('constant', AlgorithmConfig(
        DummyClassifier,
        fixed_params={'strategy': 'constant', 'constant': 1},
        seeded=False,
        description='Always predicts the positive class'
    ))
    return registry


class TestTrainModelList(unittest.TestCase):
    """Test train_model_list functionality."""

    def setUp(self):
        self.X, self.y = _training_data()
        self.kwargs = dict(
            positive_class='yes',
            resampling=ResamplingConfig('cv', number=3),
            tuning=TuningConfig(tune_length=2),
            random_source=RandomSource(315)
        )

    def test_models_share_resamples(self):
        models = train_model_list(['glm', 'knn'], self.X, self.y, **self.kwargs)

        self.assertEqual(list(models.keys()), ['glm', 'knn'])
        self.assertEqual(
            compute_resample_hash(models['glm'].resamples),
            compute_resample_hash(models['knn'].resamples)
        )

    def test_duplicate_algorithms_rejected(self):
        with self.assertRaises(ValueError):
            train_model_list(['glm', 'glm'], self.X, self.y, **self.kwargs)

    def test_unknown_algorithm_rejected(self):
        with self.assertRaises(KeyError):
            train_model_list(['glm', 'deep_forest'], self.X, self.y, **self.kwargs)

    def test_failed_algorithm_left_out(self):
        tuning = TuningConfig(strategy='grid', tune_length=2, grids={'glm': [{'C': -1.0}]})
        kwargs = dict(self.kwargs, tuning=tuning)

        models = train_model_list(['glm', 'knn'], self.X, self.y, **kwargs)
        self.assertEqual(list(models.keys()), ['knn'])

    def test_every_algorithm_failed(self):
        tuning = TuningConfig(strategy='grid', grids={'glm': [{'C': -1.0}]})
        kwargs = dict(self.kwargs, tuning=tuning)

        with self.assertRaises(SweepFailedError):
            train_model_list(['glm'], self.X, self.y, **kwargs)

    def test_feature_subset(self):
        models = train_model_list(['glm'], self.X, self.y, features=['feature_1', 'feature_3'], **self.kwargs)
        self.assertEqual(models['glm'].input_columns, ('feature_1', 'feature_3'))


class TestEnsembleStacker(unittest.TestCase):
    """Test EnsembleStacker functionality."""

    def setUp(self):
        self.X, self.y = _training_data()
        self.registry = _registry_with_constant_model()
        self.kwargs = dict(
            positive_class='yes',
            resampling=ResamplingConfig('cv', number=3),
            tuning=TuningConfig(tune_length=2),
            random_source=RandomSource(315),
            registry=self.registry
        )
        self.stacker = EnsembleStacker(
            resampling=ResamplingConfig('cv', number=3),
            random_source=RandomSource(1)
        )

    def test_meta_features_from_oof(self):
        models = train_model_list(['glm', 'knn'], self.X, self.y, **self.kwargs)
        features, labels, excluded = self.stacker.meta_features(models)

        self.assertEqual(list(features.columns), ['glm', 'knn'])
        self.assertEqual(len(features), len(self.y))
        self.assertEqual(excluded, [])
        np.testing.assert_allclose(features['glm'].to_numpy(), models['glm'].oof.averaged().to_numpy())
        np.testing.assert_array_equal(labels, self.y)

    def test_bootstrap_rows_never_held_out_dropped(self):
        kwargs = dict(self.kwargs, resampling=ResamplingConfig('boot', number=3))
        models = train_model_list(['glm', 'knn'], self.X, self.y, **kwargs)
        kept = models['glm'].oof.coverage() > 0

        features, labels, excluded = self.stacker.meta_features(models)

        # Out-of-bag rows only: some rows land in every bootstrap sample
        self.assertTrue((~kept).any())
        np.testing.assert_array_equal(models['knn'].oof.coverage() > 0, kept)
        self.assertEqual(len(features), int(kept.sum()))
        np.testing.assert_array_equal(labels, models['glm'].training_labels[kept])
        np.testing.assert_allclose(
            features['knn'].to_numpy(), models['knn'].oof.averaged().to_numpy()[kept]
        )
        self.assertEqual(excluded, [])

        ensemble = self.stacker.fit(models)
        self.assertIsInstance(ensemble, EnsembleModel)
        self.assertEqual(len(ensemble.meta_model.training_labels), int(kept.sum()))

    def test_fit_and_predict(self):
        models = train_model_list(['glm', 'knn'], self.X, self.y, **self.kwargs)
        ensemble = self.stacker.fit(models)

        self.assertIsInstance(ensemble, EnsembleModel)
        self.assertEqual(ensemble.model_names, ['glm', 'knn'])
        self.assertEqual(ensemble.meta_model.input_columns, ('glm', 'knn'))

        probabilities = ensemble.predict_proba(self.X)
        self.assertEqual(list(probabilities.columns), ['no', 'yes'])
        self.assertTrue(set(ensemble.predict(self.X)) <= {'yes', 'no'})

    def test_layout_checked(self):
        models = train_model_list(['glm', 'knn'], self.X, self.y, **self.kwargs)
        ensemble = self.stacker.fit(models)

        with self.assertRaises(FeatureLayoutMismatchError):
            ensemble.predict(self.X.drop(columns=['feature_0']))

    def test_degenerate_model_excluded(self):
        models = train_model_list(['glm', 'knn', 'constant'], self.X, self.y, **self.kwargs)
        ensemble = self.stacker.fit(models)

        self.assertEqual(ensemble.excluded, ('constant',))
        self.assertEqual(ensemble.model_names, ['glm', 'knn'])
        self.assertIn('Excluded', ensemble.summary())

    def test_too_few_usable_models(self):
        models = train_model_list(['glm', 'constant'], self.X, self.y, **self.kwargs)
        with self.assertRaises(ValueError):
            self.stacker.fit(models)

    def test_single_model_rejected(self):
        models = train_model_list(['glm'], self.X, self.y, **self.kwargs)
        with self.assertRaises(ValueError):
            self.stacker.fit(models)

    def test_accepts_model_list(self):
        models = train_model_list(['glm', 'knn'], self.X, self.y, **self.kwargs)
        ensemble = self.stacker.fit(list(models.values()))
        self.assertEqual(ensemble.model_names, ['glm', 'knn'])

    def test_deterministic(self):
        models = train_model_list(['glm', 'knn'], self.X, self.y, **self.kwargs)
        first = self.stacker.fit(models).positive_probability(self.X)
        second = self.stacker.fit(models).positive_probability(self.X)
        np.testing.assert_array_equal(first, second)


if __name__ == '__main__':
    unittest.main(verbosity=2)
