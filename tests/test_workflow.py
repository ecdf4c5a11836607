"""End-to-end test of the classification workflow."""

import unittest
import sys
import tempfile
from pathlib import Path
import numpy as np
import pandas as pd
from sklearn.datasets import make_classification

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stackwise.config import (
    WorkflowConfig, ResamplingConfig, TuningConfig, FeatureSelectionConfig,
    StackingConfig, TrackingConfig, PathsConfig
)
from stackwise.persistence import load_model, load_pipeline
from stackwise.predict import predict
from stackwise.tracking import RunDatabase
from stackwise.workflow import ClassificationWorkflow, WorkflowResult


def _raw_data(n=160, seed=21):
    X, y = make_classification(
        n_samples=n,
        n_features=5,
        n_informative=3,
        n_redundant=1,
        weights=[0.6, 0.4],
        flip_y=0.03,
        random_state=seed
    )
    rng = np.random.RandomState(seed)
    data = pd.DataFrame(X, columns=['pregnant', 'glucose', 'pressure', 'mass', 'age'])
    data['region'] = rng.choice(['north', 'south', 'east'], n).astype(object)
    data.loc[rng.choice(n, 8, replace=False), 'glucose'] = np.nan
    data.loc[rng.choice(n, 4, replace=False), 'region'] = np.nan
    data['Class'] = np.where(y == 1, 'pos', 'neg')
    return data


class TestClassificationWorkflow(unittest.TestCase):
    """Run the whole workflow once and inspect everything it produced."""

    @classmethod
    def setUpClass(cls):
        cls.temp_dir = tempfile.TemporaryDirectory()
        root = Path(cls.temp_dir.name)
        cls.config = WorkflowConfig(
            label='Class',
            positive_class='pos',
            resampling=ResamplingConfig('cv', number=3),
            tuning=TuningConfig(tune_length=2),
            feature_selection=FeatureSelectionConfig(
                sizes=[2, 4],
                ranking_algorithm='glm',
                resampling=ResamplingConfig('cv', number=3)
            ),
            stacking=StackingConfig(
                base_algorithms=['glm', 'knn'],
                resampling=ResamplingConfig('cv', number=3)
            ),
            tracking=TrackingConfig(db_path=str(root / 'runs.db')),
            paths=PathsConfig(artifacts_dir=root / 'artifacts')
        )
        cls.data = _raw_data()
        cls.result = ClassificationWorkflow(cls.config, configure_logging=False).run(cls.data)

    @classmethod
    def tearDownClass(cls):
        cls.temp_dir.cleanup()

    def test_result_type(self):
        self.assertIsInstance(self.result, WorkflowResult)

    def test_models_trained(self):
        self.assertEqual(list(self.result.models.keys()), ['glm', 'knn'])
        self.assertIsNotNone(self.result.ensemble)
        self.assertIsNotNone(self.result.comparison)

    def test_selected_features_used(self):
        features = self.result.features
        self.assertIn(len(features), (2, 4, len(self.result.pipeline.output_columns)))
        for model in self.result.models.values():
            self.assertEqual(list(model.input_columns), features)

    def test_split_disjoint(self):
        split = self.result.split
        self.assertEqual(np.intersect1d(split.train_index, split.test_index).size, 0)

    def test_every_model_evaluated(self):
        table = self.result.performance_table()
        self.assertEqual(list(table.index), ['glm', 'knn', 'ensemble'])
        self.assertTrue(((table['accuracy'] >= 0) & (table['accuracy'] <= 1)).all())

    def test_models_share_resamples(self):
        glm, knn = self.result.models['glm'], self.result.models['knn']
        self.assertEqual(
            [r.name for r in glm.resamples], [r.name for r in knn.resamples]
        )
        np.testing.assert_array_equal(glm.resamples[0].holdout_index, knn.resamples[0].holdout_index)

    def test_reproducible(self):
        again = ClassificationWorkflow(self.config, configure_logging=False).run(self.data)
        pd.testing.assert_frame_equal(again.performance_table(), self.result.performance_table())

    def test_artifacts_written(self):
        directory = self.result.artifacts_dir
        pipeline = load_pipeline(directory / 'pipeline', label_column='Class')
        ensemble = load_model(directory / 'models' / 'ensemble.joblib')

        row = self.data.drop(columns=['Class']).iloc[self.result.split.test_index[0]].to_dict()
        prediction = predict(pipeline, ensemble, row)
        self.assertIn(prediction.label, ('pos', 'neg'))

    def test_database_records(self):
        database = RunDatabase(Path(self.config.tracking.db_path))
        models = database.query_models()
        evaluations = database.query_evaluations('ensemble')

        self.assertTrue({'glm', 'knn', 'ensemble.meta'} <= set(models['model_name']))
        self.assertIn('accuracy', set(evaluations['metric']))

    def test_summary(self):
        summary = self.result.summary()
        self.assertIn('Workflow Result Summary', summary)
        self.assertIn('ensemble', summary)


if __name__ == '__main__':
    unittest.main(verbosity=2)
