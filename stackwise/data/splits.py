"""Stratified train/test partitioning.

This module provides the DataSplit container and the split_dataset function
that partitions labelled rows into a training and a test set while keeping
each class's proportion on both sides.
"""

import math
from typing import Tuple

import numpy as np
import pandas as pd

from stackwise.core.random_source import RandomSource
from stackwise.errors import InsufficientDataError


class DataSplit:
    """Holds a stratified train/test partition of a dataset.

    The partition is computed per class: every class contributes
    ceil(p * n_class) rows to the training set, clamped so that both sides
    receive at least one row of every class.
    """

    def __init__(
        self,
        data: pd.DataFrame,
        label_column: str,
        train_index: np.ndarray,
        test_index: np.ndarray
    ):
        """Initialize the split from precomputed positional indices.

        Parameters
        ----------
        data : pd.DataFrame
            Full dataset with labels.
        label_column : str
            Name of the label column.
        train_index : np.ndarray
            Positional indices of the training rows.
        test_index : np.ndarray
            Positional indices of the test rows.
        """
        self.label_column = label_column
        self.train_index = np.asarray(train_index)
        self.test_index = np.asarray(test_index)

        self.train = data.iloc[self.train_index]
        self.test = data.iloc[self.test_index]

        self._sizes = {
            'train': len(self.train),
            'test': len(self.test),
            'total': len(data)
        }

        self._class_distributions = {
            'full': data[label_column].value_counts(normalize=True).sort_index(),
            'train': self.train[label_column].value_counts(normalize=True).sort_index(),
            'test': self.test[label_column].value_counts(normalize=True).sort_index()
        }

    def get_train(self) -> Tuple[pd.DataFrame, pd.Series]:
        """Get training features and labels.

        Returns
        -------
        X_train : pd.DataFrame
            Training features (label column removed).
        y_train : pd.Series
            Training labels.
        """
        return self.train.drop(columns=[self.label_column]), self.train[self.label_column]

    def get_test(self) -> Tuple[pd.DataFrame, pd.Series]:
        """Get test features and labels.

        Returns
        -------
        X_test : pd.DataFrame
            Test features (label column removed).
        y_test : pd.Series
            Test labels.
        """
        return self.test.drop(columns=[self.label_column]), self.test[self.label_column]

    def class_distribution(self, part: str) -> pd.Series:
        """Class proportions of 'full', 'train' or 'test'."""
        return self._class_distributions[part]

    def summary(self) -> str:
        """Get summary of the split.

        Returns
        -------
        summary : str
            Human-readable summary of split sizes and class proportions.
        """
        lines = [
            "Data Split Summary",
            "=" * 60,
            f"Total samples: {self._sizes['total']:,}",
            "",
            "Split sizes:",
            f"  Train: {self._sizes['train']:,} "
            f"({self._sizes['train'] / self._sizes['total'] * 100:.1f}%)",
            f"  Test:  {self._sizes['test']:,} "
            f"({self._sizes['test'] / self._sizes['total'] * 100:.1f}%)",
            "",
            "Class distributions:"
        ]
        for label, proportion in self._class_distributions['full'].items():
            train_prop = self._class_distributions['train'].get(label, 0.0)
            test_prop = self._class_distributions['test'].get(label, 0.0)
            lines.append(
                f"  {label}: full={proportion:.3f} train={train_prop:.3f} test={test_prop:.3f}"
            )
        lines.append("=" * 60)
        return "\n".join(lines)


def split_dataset(
    data: pd.DataFrame,
    label_column: str,
    p: float,
    random_source: RandomSource
) -> DataSplit:
    """Create a stratified train/test split.

    Parameters
    ----------
    data : pd.DataFrame
        Full dataset with labels.
    label_column : str
        Name of the label column.
    p : float
        Target proportion of rows in the training set, in (0, 1).
    random_source : RandomSource
        Source of randomness; the same source gives the same split.

    Returns
    -------
    split : DataSplit

    Raises
    ------
    InsufficientDataError
        If any class has fewer than 2 rows.
    ValueError
        If p is outside (0, 1) or the label column is missing.
    """
    if not 0 < p < 1:
        raise ValueError(f"p must be in (0, 1), got {p}")
    if label_column not in data.columns:
        raise ValueError(f"Label column '{label_column}' not found")

    labels = data[label_column].to_numpy()
    if pd.isna(data[label_column]).any():
        raise ValueError(f"Label column '{label_column}' contains missing values")

    classes, counts = np.unique(labels, return_counts=True)
    too_small = [str(c) for c, n in zip(classes, counts) if n < 2]
    if too_small:
        raise InsufficientDataError(
            f"Cannot stratify: classes {too_small} have fewer than 2 rows"
        )

    rng = random_source.rng()
    train_parts = []
    test_parts = []

    for cls in classes:
        rows = np.flatnonzero(labels == cls)
        n_train = min(max(math.ceil(p * len(rows)), 1), len(rows) - 1)
        shuffled = rng.permutation(rows)
        train_parts.append(shuffled[:n_train])
        test_parts.append(shuffled[n_train:])

    train_index = np.sort(np.concatenate(train_parts))
    test_index = np.sort(np.concatenate(test_parts))

    return DataSplit(data, label_column, train_index, test_index)
