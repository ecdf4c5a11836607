"""Explicit random state threaded through every stochastic operation.

A RandomSource is never global. Each split, fold assignment, bootstrap and
estimator receives its own source, derived from a parent with child(), so
results do not depend on execution order or on which process runs a job.
"""

import zlib
from dataclasses import dataclass
from typing import Union

import numpy as np


def _key_to_int(key: Union[int, str]) -> int:
    if isinstance(key, (int, np.integer)):
        return int(key)
    return zlib.crc32(str(key).encode('utf-8'))


@dataclass(frozen=True)
class RandomSource:
    """Immutable seed holder with deterministic child derivation.

    Example:
        >>> root = RandomSource(315)
        >>> fold_source = root.child('resampling')
        >>> model_source = root.child('rf', 3)
        >>> rng = fold_source.rng()
    """
    seed: int

    def __post_init__(self):
        if self.seed < 0:
            raise ValueError(f"seed must be non-negative, got {self.seed}")

    def rng(self) -> np.random.RandomState:
        """Fresh NumPy generator seeded from this source."""
        return np.random.RandomState(self.seed)

    def child(self, *keys: Union[int, str]) -> 'RandomSource':
        """Derive an independent source for a named sub-task."""
        entropy = [self.seed] + [_key_to_int(k) for k in keys]
        state = np.random.SeedSequence(entropy).generate_state(1)[0]
        return RandomSource(int(state))

    @property
    def random_state(self) -> int:
        """Seed value in the form sklearn's random_state parameters expect."""
        return int(self.seed % (2 ** 32))
