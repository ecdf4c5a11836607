"""Unit tests for held-out evaluation and resample comparison."""

import unittest
import sys
from pathlib import Path
import numpy as np
import pandas as pd
from sklearn.datasets import make_classification

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stackwise.config import ResamplingConfig, TuningConfig
from stackwise.core import RandomSource
from stackwise.errors import ResampleMismatchError
from stackwise.evaluation import ClassificationReport, ResampleComparator, evaluate, roc_report
from stackwise.stacking import train_model_list
from stackwise.training import ModelTrainer


class TestEvaluate(unittest.TestCase):
    """Test confusion matrix statistics."""

    def setUp(self):
        self.report = evaluate(['A', 'B', 'B', 'B', 'A'], ['A', 'A', 'B', 'B', 'A'], 'A')

    def test_worked_example(self):
        self.assertIsInstance(self.report, ClassificationReport)
        self.assertEqual((self.report.tp, self.report.fn, self.report.fp, self.report.tn), (2, 1, 0, 2))
        self.assertAlmostEqual(self.report.precision, 1.0)
        self.assertAlmostEqual(self.report.recall, 2 / 3)
        self.assertAlmostEqual(self.report.accuracy, 0.8)
        self.assertAlmostEqual(self.report.specificity, 1.0)

    def test_confusion_matrix_orientation(self):
        matrix = self.report.confusion_matrix
        self.assertEqual(matrix.index.name, 'Predicted')
        self.assertEqual(matrix.loc['B', 'A'], 1)
        self.assertEqual(matrix.loc['A', 'B'], 0)

    def test_kappa(self):
        # Observed agreement 0.8, chance agreement 0.48
        self.assertAlmostEqual(self.report.kappa, (0.8 - 0.48) / (1 - 0.48))

    def test_zero_denominator_is_nan(self):
        report = evaluate(['B', 'B'], ['B', 'B'], 'A')
        self.assertTrue(np.isnan(report.precision))
        self.assertTrue(np.isnan(report.recall))
        self.assertAlmostEqual(report.accuracy, 1.0)

    def test_single_class_agreement_is_nan(self):
        report = evaluate(['B', 'B'], ['B', 'B'], 'A')
        self.assertTrue(np.isnan(report.kappa))
        self.assertTrue(np.isnan(report.f1))
        self.assertTrue(np.isnan(report.balanced_accuracy))
        self.assertAlmostEqual(report.specificity, 1.0)

    def test_f1_undefined_without_true_positives(self):
        report = evaluate(['B', 'A'], ['A', 'B'], 'A')
        self.assertEqual(report.precision, 0.0)
        self.assertEqual(report.recall, 0.0)
        self.assertTrue(np.isnan(report.f1))

    def test_per_class_statistics(self):
        per_class = self.report.per_class
        self.assertAlmostEqual(per_class.loc['A', 'f1'], 0.8)
        self.assertAlmostEqual(per_class.loc['B', 'precision'], 2 / 3)
        self.assertAlmostEqual(per_class.loc['B', 'f1'], 0.8)
        self.assertAlmostEqual(self.report.balanced_accuracy, (2 / 3 + 1.0) / 2)

    def test_numeric_labels_with_placeholder_negative(self):
        report = evaluate([1, 1, 1], [1, 1, 1], positive_class=1)

        self.assertEqual(report.negative_class, 'other')
        self.assertEqual(report.tp, 3)
        self.assertEqual(report.confusion_matrix.loc['other', 'other'], 0)
        self.assertTrue(np.isnan(report.specificity))

    def test_empty_input(self):
        report = evaluate([], [], 'A', negative_class='B')
        self.assertEqual(report.n, 0)
        self.assertTrue(np.isnan(report.accuracy))
        self.assertTrue(np.isnan(report.precision))

    def test_length_mismatch(self):
        with self.assertRaises(ValueError):
            evaluate(['A'], ['A', 'B'], 'A')

    def test_more_than_two_levels(self):
        with self.assertRaises(ValueError):
            evaluate(['A', 'B', 'C'], ['A', 'B', 'C'], 'A')

    def test_per_class_support(self):
        self.assertEqual(list(self.report.per_class['support']), [3, 2])

    def test_summary(self):
        self.assertIn('Classification Report', self.report.summary())


class TestRocReport(unittest.TestCase):
    """Test ROC curves."""

    def test_auc(self):
        curve = roc_report(['n', 'n', 'y', 'y'], [0.1, 0.4, 0.35, 0.8], 'y')
        self.assertAlmostEqual(curve.auc, 0.75)
        self.assertEqual(list(curve.as_frame().columns), ['fpr', 'tpr', 'threshold'])

    def test_single_class(self):
        curve = roc_report(['y', 'y'], [0.3, 0.9], 'y')
        self.assertTrue(np.isnan(curve.auc))
        self.assertEqual(len(curve.fpr), 0)


class TestResampleComparator(unittest.TestCase):
    """Test ResampleComparator functionality."""

    @classmethod
    def setUpClass(cls):
        X, y = make_classification(n_samples=120, n_features=5, n_informative=3,
                                   n_redundant=1, random_state=3)
        cls.X = pd.DataFrame(X, columns=[f'feature_{i}' for i in range(5)])
        cls.y = np.where(y == 1, 'yes', 'no').astype(object)
        cls.models = train_model_list(
            ['glm', 'knn', 'nb'], cls.X, cls.y,
            positive_class='yes',
            resampling=ResamplingConfig('repeatedcv', number=3, repeats=2),
            tuning=TuningConfig(tune_length=1),
            random_source=RandomSource(315)
        )

    def test_values(self):
        values = ResampleComparator(self.models).values()
        self.assertEqual(values.shape, (6, 3))
        self.assertEqual(list(values.columns), ['glm', 'knn', 'nb'])

    def test_summary_table(self):
        table = ResampleComparator(self.models).summary_table()
        self.assertAlmostEqual(table.loc['glm', 'mean'], self.models['glm'].best_score)
        self.assertEqual(int(table.loc['knn', 'n']), 6)

    def test_differences(self):
        differences = ResampleComparator(self.models).differences()

        self.assertEqual(len(differences), 3)
        self.assertEqual(list(differences['n_resamples']), [6, 6, 6])
        self.assertTrue(((differences['p_value'] >= 0) & (differences['p_value'] <= 1)).all())

    def test_prediction_correlation(self):
        correlation = ResampleComparator(self.models).prediction_correlation()
        self.assertAlmostEqual(correlation.loc['glm', 'glm'], 1.0)

    def test_diversity(self):
        diversity = ResampleComparator(self.models).diversity()
        self.assertEqual(diversity['n_pairs'], 3)

    def test_different_resamples_rejected(self):
        other = ModelTrainer(
            'glm', positive_class='yes',
            resampling=ResamplingConfig('repeatedcv', number=3, repeats=2),
            tuning=TuningConfig(tune_length=1),
            random_source=RandomSource(1),
            name='glm_other'
        ).fit(self.X, self.y)

        with self.assertRaises(ResampleMismatchError):
            ResampleComparator([self.models['glm'], other])

    def test_single_model_rejected(self):
        with self.assertRaises(ValueError):
            ResampleComparator([self.models['glm']])

    def test_summary(self):
        self.assertIn('Resample Comparison Summary', ResampleComparator(self.models).summary())


if __name__ == '__main__':
    unittest.main(verbosity=2)
