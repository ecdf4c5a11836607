"""Fold assignment for cross-validated tuning, selection and stacking.

Provides the Resample record and the factory that builds resamples for
every supported method:
- cv: stratified k-fold
- repeatedcv: stratified k-fold repeated with different partitions
- boot: bootstrap, holding out the out-of-bag rows
- loocv: leave-one-out
- lgocv: leave-group-out (repeated stratified train/holdout splits)

Train and holdout indices are positional (0..n-1) and always disjoint.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from sklearn.model_selection import (
    StratifiedKFold, RepeatedStratifiedKFold, LeaveOneOut, StratifiedShuffleSplit
)

from stackwise.config import ResamplingConfig, RESAMPLING_METHODS
from stackwise.core.random_source import RandomSource
from stackwise.errors import InsufficientDataError


@dataclass(frozen=True, eq=False)
class Resample:
    """One train/holdout partition of the training rows.

    Attributes:
        resample_id: Position of this resample in its resampling scheme
        repeat: Repeat number (0 for methods without repeats)
        fold: Fold number within the repeat
        train_index: Rows the model is fitted on (may contain duplicates for boot)
        holdout_index: Rows the model is scored on, never in train_index
    """
    resample_id: int
    repeat: int
    fold: int
    train_index: np.ndarray = field(repr=False)
    holdout_index: np.ndarray = field(repr=False)

    def __post_init__(self):
        train = np.array(self.train_index, dtype=np.int64)
        holdout = np.array(self.holdout_index, dtype=np.int64)

        if np.intersect1d(train, holdout).size > 0:
            raise ValueError(
                f"Resample {self.resample_id}: train and holdout rows overlap"
            )

        train.setflags(write=False)
        holdout.setflags(write=False)
        object.__setattr__(self, 'train_index', train)
        object.__setattr__(self, 'holdout_index', holdout)

    @property
    def name(self) -> str:
        return f"Fold{self.fold + 1:02d}.Rep{self.repeat + 1:02d}"


def make_resamples(
    y,
    config: ResamplingConfig,
    random_source: RandomSource
) -> List[Resample]:
    """Build the resamples for a label vector.

    Parameters
    ----------
    y : array-like of shape (n_samples,)
        Training labels; stratification uses these.
    config : ResamplingConfig
        Method and sizes.
    random_source : RandomSource
        Source for the partitions. The same source always yields the
        same resamples.

    Returns
    -------
    resamples : list of Resample
        Ordered by resample_id.

    Raises
    ------
    InsufficientDataError
        If the labels cannot support the requested scheme.
    """
    y = np.asarray(y)
    n = len(y)
    classes, counts = np.unique(y, return_counts=True)

    if len(classes) < 2:
        raise InsufficientDataError("Resampling requires at least two label classes")

    method = config.method
    if method not in RESAMPLING_METHODS:
        raise ValueError(f"Unknown resampling method '{method}'")

    if method in ('cv', 'repeatedcv') and counts.max() < config.number:
        raise InsufficientDataError(
            f"Cannot build {config.number} folds: largest class has {counts.max()} rows"
        )
    if method in ('cv', 'repeatedcv') and n < config.number:
        raise InsufficientDataError(f"Cannot build {config.number} folds from {n} rows")

    seed = random_source.random_state
    placeholder = np.zeros((n, 1))
    resamples = []

    if method == 'cv':
        splitter = StratifiedKFold(n_splits=config.number, shuffle=True, random_state=seed)
        for i, (train, holdout) in enumerate(splitter.split(placeholder, y)):
            resamples.append(Resample(i, 0, i, train, holdout))

    elif method == 'repeatedcv':
        splitter = RepeatedStratifiedKFold(
            n_splits=config.number, n_repeats=config.repeats, random_state=seed
        )
        for i, (train, holdout) in enumerate(splitter.split(placeholder, y)):
            resamples.append(Resample(i, i // config.number, i % config.number, train, holdout))

    elif method == 'loocv':
        for i, (train, holdout) in enumerate(LeaveOneOut().split(placeholder)):
            resamples.append(Resample(i, 0, i, train, holdout))

    elif method == 'lgocv':
        if counts.min() < 2:
            raise InsufficientDataError("lgocv requires at least 2 rows per class")
        splitter = StratifiedShuffleSplit(
            n_splits=config.number, train_size=config.p, random_state=seed
        )
        for i, (train, holdout) in enumerate(splitter.split(placeholder, y)):
            resamples.append(Resample(i, i, 0, train, holdout))

    else:  # boot
        rng = random_source.rng()
        all_rows = np.arange(n)
        for i in range(config.number):
            in_bag = rng.randint(0, n, size=n)
            out_of_bag = np.setdiff1d(all_rows, in_bag)
            resamples.append(Resample(i, i, 0, np.sort(in_bag), out_of_bag))

    return resamples


def holdout_coverage(resamples: List[Resample], n_rows: int, repeat: Optional[int] = None) -> np.ndarray:
    """Count how often each row is held out, optionally within one repeat."""
    coverage = np.zeros(n_rows, dtype=np.int64)
    for resample in resamples:
        if repeat is not None and resample.repeat != repeat:
            continue
        np.add.at(coverage, resample.holdout_index, 1)
    return coverage
