"""Unit tests for data management modules.

This test suite validates the stratified split and CSV loading.
"""

import unittest
import sys
import tempfile
import math
from pathlib import Path
import numpy as np
import pandas as pd
from sklearn.datasets import make_classification

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from stackwise.core import RandomSource
from stackwise.data import DataSplit, split_dataset, load_dataset
from stackwise.errors import InsufficientDataError


class TestSplitDataset(unittest.TestCase):
    """Test split_dataset functionality."""

    def setUp(self):
        """Set up test data."""
        X, y = make_classification(
            n_samples=200,
            n_features=6,
            n_informative=4,
            n_redundant=1,
            n_classes=2,
            weights=[0.7, 0.3],
            random_state=42,
            flip_y=0.05
        )

        feature_names = [f'feature_{i}' for i in range(X.shape[1])]
        self.df = pd.DataFrame(X, columns=feature_names)
        self.df['Class'] = np.where(y == 1, 'yes', 'no')

    def test_returns_data_split(self):
        split = split_dataset(self.df, 'Class', 0.75, RandomSource(315))
        self.assertIsInstance(split, DataSplit)

    def test_partition_is_complete_and_disjoint(self):
        split = split_dataset(self.df, 'Class', 0.75, RandomSource(315))

        self.assertEqual(np.intersect1d(split.train_index, split.test_index).size, 0)
        self.assertEqual(len(split.train_index) + len(split.test_index), len(self.df))

    def test_per_class_counts(self):
        """Each class contributes ceil(p * n_class) training rows."""
        split = split_dataset(self.df, 'Class', 0.75, RandomSource(315))
        counts = self.df['Class'].value_counts()
        train_counts = split.train['Class'].value_counts()

        for label, n in counts.items():
            self.assertEqual(train_counts[label], math.ceil(0.75 * n))

    def test_deterministic(self):
        first = split_dataset(self.df, 'Class', 0.75, RandomSource(7))
        second = split_dataset(self.df, 'Class', 0.75, RandomSource(7))
        np.testing.assert_array_equal(first.train_index, second.train_index)

    def test_different_seed_differs(self):
        first = split_dataset(self.df, 'Class', 0.75, RandomSource(7))
        second = split_dataset(self.df, 'Class', 0.75, RandomSource(8))
        self.assertFalse(np.array_equal(first.train_index, second.train_index))

    def test_get_train_drops_label(self):
        split = split_dataset(self.df, 'Class', 0.75, RandomSource(315))
        X_train, y_train = split.get_train()
        X_test, y_test = split.get_test()

        self.assertNotIn('Class', X_train.columns)
        self.assertNotIn('Class', X_test.columns)
        self.assertEqual(len(X_train), len(y_train))
        self.assertEqual(len(X_test), len(y_test))

    def test_both_sides_get_every_class(self):
        tiny = pd.DataFrame({'x': range(4), 'Class': ['yes', 'yes', 'no', 'no']})
        split = split_dataset(tiny, 'Class', 0.9, RandomSource(1))

        self.assertEqual(set(split.train['Class']), {'yes', 'no'})
        self.assertEqual(set(split.test['Class']), {'yes', 'no'})

    def test_single_row_class_rejected(self):
        tiny = pd.DataFrame({'x': range(4), 'Class': ['yes', 'no', 'no', 'no']})
        with self.assertRaises(InsufficientDataError):
            split_dataset(tiny, 'Class', 0.75, RandomSource(1))

    def test_invalid_fraction(self):
        for p in (0.0, 1.0, 1.5):
            with self.assertRaises(ValueError):
                split_dataset(self.df, 'Class', p, RandomSource(1))

    def test_missing_label_column(self):
        with self.assertRaises(ValueError):
            split_dataset(self.df, 'target', 0.75, RandomSource(1))

    def test_summary(self):
        split = split_dataset(self.df, 'Class', 0.75, RandomSource(315))
        summary = split.summary()

        self.assertIn('Data Split Summary', summary)
        self.assertIn('yes', summary)


class TestLoadDataset(unittest.TestCase):
    """Test CSV loading."""

    def test_label_read_as_string(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / 'data.csv'
            path.write_text("x,color,Class\n1.5,red,1\n,blue,0\nNA,red,1\n")

            data = load_dataset(path, 'Class')

            self.assertEqual(list(data['Class']), ['1', '0', '1'])
            self.assertEqual(int(data['x'].isna().sum()), 2)

    def test_missing_label_column(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / 'data.csv'
            path.write_text("x,y\n1,2\n")

            with self.assertRaises(ValueError):
                load_dataset(path, 'Class')


if __name__ == '__main__':
    unittest.main(verbosity=2)
