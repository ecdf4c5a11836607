"""Unit tests for artifact persistence and single-observation prediction."""

import unittest
import sys
import tempfile
from pathlib import Path
import numpy as np
import pandas as pd
from sklearn.datasets import make_classification

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stackwise.config import PreprocessingConfig, ResamplingConfig, TuningConfig
from stackwise.core import RandomSource
from stackwise.errors import PipelineStateError
from stackwise.persistence import load_model, load_pipeline, save_model, save_pipeline
from stackwise.predict import Prediction, predict
from stackwise.preprocessing import Pipeline
from stackwise.stacking import EnsembleStacker, train_model_list


def _raw_data(n=120, seed=11):
    X, y = make_classification(n_samples=n, n_features=4, n_informative=3,
                               n_redundant=0, random_state=seed)
    rng = np.random.RandomState(seed)
    data = pd.DataFrame(X, columns=['glucose', 'mass', 'age', 'pressure'])
    data['smoker'] = rng.choice(['never', 'former', 'current'], n).astype(object)
    data.loc[[3, 17, 40], 'mass'] = np.nan
    data['Class'] = np.where(y == 1, 'pos', 'neg')
    return data


class TestPipelinePersistence(unittest.TestCase):
    """Test pipeline save/load."""

    def setUp(self):
        self.data = _raw_data()
        self.pipeline = Pipeline.from_config(PreprocessingConfig(), label_column='Class')
        self.pipeline.fit(self.data.iloc[:90])
        self.temp_dir = tempfile.TemporaryDirectory()
        self.directory = Path(self.temp_dir.name) / 'pipeline'

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_three_artifact_files(self):
        save_pipeline(self.pipeline, self.directory)
        for name in ('imputation.joblib', 'encoding.joblib', 'normalization.joblib'):
            self.assertTrue((self.directory / name).exists())

    def test_loaded_pipeline_replays(self):
        save_pipeline(self.pipeline, self.directory)
        loaded = load_pipeline(self.directory, label_column='Class')

        test = self.data.iloc[90:]
        pd.testing.assert_frame_equal(loaded.apply(test), self.pipeline.apply(test))

    def test_loaded_pipeline_cannot_refit(self):
        save_pipeline(self.pipeline, self.directory)
        loaded = load_pipeline(self.directory, label_column='Class')

        with self.assertRaises(PipelineStateError):
            loaded.fit(self.data)

    def test_unfitted_pipeline_rejected(self):
        with self.assertRaises(PipelineStateError):
            save_pipeline(Pipeline(label_column='Class'), self.directory)

    def test_missing_artifact(self):
        save_pipeline(self.pipeline, self.directory)
        (self.directory / 'encoding.joblib').unlink()

        with self.assertRaises(FileNotFoundError):
            load_pipeline(self.directory)


class TestModelPersistenceAndPrediction(unittest.TestCase):
    """Test model save/load and the prediction entrypoint."""

    @classmethod
    def setUpClass(cls):
        cls.data = _raw_data()
        cls.pipeline = Pipeline.from_config(PreprocessingConfig(), label_column='Class')
        X = cls.pipeline.fit_apply(cls.data)
        y = cls.data['Class'].to_numpy(dtype=object)

        cls.models = train_model_list(
            ['glm', 'knn'], X, y,
            positive_class='pos',
            resampling=ResamplingConfig('cv', number=3),
            tuning=TuningConfig(tune_length=1),
            random_source=RandomSource(315)
        )
        cls.ensemble = EnsembleStacker(
            resampling=ResamplingConfig('cv', number=3),
            random_source=RandomSource(2)
        ).fit(cls.models)
        cls.X = X

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.directory = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_model_round_trip(self):
        path = save_model(self.models['glm'], self.directory / 'glm.joblib')
        loaded = load_model(path)

        self.assertEqual(loaded.hyperparameters, self.models['glm'].hyperparameters)
        np.testing.assert_array_equal(
            loaded.positive_probability(self.X), self.models['glm'].positive_probability(self.X)
        )

    def test_ensemble_round_trip(self):
        path = save_model(self.ensemble, self.directory / 'ensemble.joblib')
        loaded = load_model(path)

        np.testing.assert_array_equal(loaded.predict(self.X), self.ensemble.predict(self.X))

    def test_not_a_bundle(self):
        with self.assertRaises(TypeError):
            save_model({'model': None}, self.directory / 'bad.joblib')

    def test_predict_mapping(self):
        row = self.data.drop(columns=['Class']).iloc[0].to_dict()
        prediction = predict(self.pipeline, self.models['glm'], row)

        self.assertIsInstance(prediction, Prediction)
        self.assertIn(prediction.label, ('pos', 'neg'))
        self.assertAlmostEqual(sum(prediction.probabilities.values()), 1.0)
        self.assertAlmostEqual(
            prediction.probabilities['pos'],
            self.models['glm'].positive_probability(self.X.iloc[[0]])[0]
        )

    def test_predict_with_missing_value(self):
        row = self.data.drop(columns=['Class']).iloc[0].to_dict()
        row['mass'] = None
        prediction = predict(self.pipeline, self.ensemble, row)
        self.assertIn(prediction.label, ('pos', 'neg'))

    def test_predict_soft_vote(self):
        row = self.data.iloc[5]
        prediction = predict(self.pipeline, list(self.models.values()), row)

        expected = np.mean([
            model.positive_probability(self.X.iloc[[5]])[0] for model in self.models.values()
        ])
        self.assertAlmostEqual(prediction.probabilities['pos'], expected)

    def test_predict_rejects_many_rows(self):
        with self.assertRaises(ValueError):
            predict(self.pipeline, self.models['glm'], self.data.iloc[:2])


if __name__ == '__main__':
    unittest.main(verbosity=2)
