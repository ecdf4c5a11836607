"""Registry of pluggable classification algorithms.

Each algorithm is an AlgorithmConfig: an sklearn estimator class, fixed
constructor parameters, and a grid generator used when tuning by length.
The trainer only talks to the registry, so a new backend is added with
register_algorithm() and nothing else changes.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import numpy as np
from sklearn.base import BaseEstimator
from sklearn.ensemble import RandomForestClassifier, GradientBoostingClassifier, ExtraTreesClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.model_selection import ParameterGrid
from sklearn.naive_bayes import GaussianNB
from sklearn.neighbors import KNeighborsClassifier
from sklearn.svm import SVC
from sklearn.tree import DecisionTreeClassifier

from stackwise.core.random_source import RandomSource


GridSpec = Union[None, Dict[str, List[Any]], List[Dict[str, Any]]]


@dataclass
class AlgorithmConfig:
    """Configuration for a single algorithm backend.

    Attributes:
        estimator_class: The sklearn classifier class
        fixed_params: Constructor parameters shared by every combination
        tune_grid: Callable (tune_length, n_features) -> list of parameter dicts
        seeded: Whether a random_state is injected when building
        description: Short human-readable description
    """
    estimator_class: type
    fixed_params: Dict[str, Any] = field(default_factory=dict)
    tune_grid: Callable[[int, int], List[Dict[str, Any]]] = lambda tune_length, n_features: [{}]
    seeded: bool = True
    description: str = ''


def expand_grid(grid: GridSpec) -> List[Dict[str, Any]]:
    """Turn a grid specification into an ordered list of combinations.

    A dict of lists is expanded as a Cartesian product, a list of dicts is
    used as-is and None means a single default combination.
    """
    if grid is None:
        return [{}]
    if isinstance(grid, dict):
        return [dict(c) for c in ParameterGrid(grid)]
    combinations = [dict(c) for c in grid]
    return combinations or [{}]


def _mtry_values(tune_length: int, n_features: int) -> List[int]:
    # Evenly spaced feature counts between 2 and p
    if n_features <= 2:
        return [max(1, n_features)]
    values = np.floor(np.linspace(2, n_features, tune_length)).astype(int)
    return sorted(set(int(v) for v in values))


def get_default_algorithm_configs() -> Dict[str, AlgorithmConfig]:
    """Get the default algorithm backends.

    Returns:
        Dict mapping algorithm names to AlgorithmConfig objects
    """
    return {
        'glm': AlgorithmConfig(
            estimator_class=LogisticRegression,
            fixed_params={'max_iter': 1000},
            description='Logistic regression'
        ),
        'rf': AlgorithmConfig(
            estimator_class=RandomForestClassifier,
            fixed_params={'n_estimators': 200},
            tune_grid=lambda tune_length, n_features: [
                {'max_features': m} for m in _mtry_values(tune_length, n_features)
            ],
            description='Random forest'
        ),
        'extra_trees': AlgorithmConfig(
            estimator_class=ExtraTreesClassifier,
            fixed_params={'n_estimators': 200},
            tune_grid=lambda tune_length, n_features: [
                {'max_features': m} for m in _mtry_values(tune_length, n_features)
            ],
            description='Extremely randomized trees'
        ),
        'gbm': AlgorithmConfig(
            estimator_class=GradientBoostingClassifier,
            fixed_params={'learning_rate': 0.1, 'min_samples_leaf': 10},
            tune_grid=lambda tune_length, n_features: expand_grid({
                'max_depth': list(range(1, tune_length + 1)),
                'n_estimators': [50 * i for i in range(1, tune_length + 1)]
            }),
            description='Stochastic gradient boosting'
        ),
        'svm_radial': AlgorithmConfig(
            estimator_class=SVC,
            fixed_params={'kernel': 'rbf', 'probability': True, 'gamma': 'scale'},
            tune_grid=lambda tune_length, n_features: [
                {'C': 2.0 ** (i - 2)} for i in range(tune_length)
            ],
            description='Support vector machine with radial basis kernel'
        ),
        'knn': AlgorithmConfig(
            estimator_class=KNeighborsClassifier,
            tune_grid=lambda tune_length, n_features: [
                {'n_neighbors': 5 + 2 * i} for i in range(tune_length)
            ],
            description='k-nearest neighbors'
        ),
        'nb': AlgorithmConfig(
            estimator_class=GaussianNB,
            tune_grid=lambda tune_length, n_features: [
                {'var_smoothing': 10.0 ** (-9 + 2 * i)} for i in range(tune_length)
            ],
            description='Gaussian naive Bayes'
        ),
        'tree': AlgorithmConfig(
            estimator_class=DecisionTreeClassifier,
            tune_grid=lambda tune_length, n_features: [
                {'ccp_alpha': float(a)} for a in np.linspace(0.0, 0.05, tune_length)
            ],
            description='CART decision tree'
        ),
    }


class AlgorithmRegistry:
    """Open registry of algorithm backends.

    Example:
        >>> from stackwise.training.algorithms import ALGORITHMS, AlgorithmConfig
        >>> ALGORITHMS.register('lda', AlgorithmConfig(LinearDiscriminantAnalysis))
        >>> estimator = ALGORITHMS.build_estimator('rf', {'max_features': 3}, RandomSource(1))
    """

    def __init__(self, configs: Optional[Dict[str, AlgorithmConfig]] = None):
        self._configs: Dict[str, AlgorithmConfig] = dict(configs or {})

    def __contains__(self, name: str) -> bool:
        return name in self._configs

    def __iter__(self):
        return iter(self._configs)

    def names(self) -> List[str]:
        return list(self._configs.keys())

    def register(self, name: str, config: AlgorithmConfig, overwrite: bool = False) -> None:
        """Add an algorithm backend.

        Raises:
            ValueError: If the name exists and overwrite is False
            TypeError: If the estimator lacks fit/predict_proba
        """
        if name in self._configs and not overwrite:
            raise ValueError(f"Algorithm '{name}' is already registered")
        for method in ('fit', 'predict_proba'):
            if not hasattr(config.estimator_class, method):
                raise TypeError(
                    f"{config.estimator_class.__name__} has no '{method}' method"
                )
        self._configs[name] = config

    def get_config(self, name: str) -> AlgorithmConfig:
        if name not in self._configs:
            raise KeyError(f"Algorithm '{name}' not found. Available: {self.names()}")
        return self._configs[name]

    def tuning_grid(self, name: str, tune_length: int, n_features: int) -> List[Dict[str, Any]]:
        """Auto-generated combinations for tuning by length."""
        return expand_grid(self.get_config(name).tune_grid(tune_length, n_features))

    def build_estimator(
        self,
        name: str,
        params: Optional[Dict[str, Any]] = None,
        random_source: Optional[RandomSource] = None
    ) -> BaseEstimator:
        """Instantiate an unfitted estimator.

        Fixed parameters are overridden by params. Estimators that accept a
        random_state receive one from random_source.
        """
        config = self.get_config(name)
        kwargs = dict(config.fixed_params)
        kwargs.update(params or {})

        estimator = config.estimator_class(**kwargs)
        if (config.seeded and random_source is not None
                and 'random_state' in estimator.get_params()):
            estimator.set_params(random_state=random_source.random_state)
        return estimator

    def summary(self) -> str:
        """Generate human-readable summary of the registry."""
        lines = [
            "Algorithm Registry Summary",
            "=" * 50,
            f"Registered algorithms: {len(self._configs)}",
            ""
        ]
        for name, config in self._configs.items():
            lines.append(f"  - {name}: {config.estimator_class.__name__} ({config.description})")
        return "\n".join(lines)


ALGORITHMS = AlgorithmRegistry(get_default_algorithm_configs())


def register_algorithm(name: str, config: AlgorithmConfig, overwrite: bool = False) -> None:
    """Register a backend in the default registry."""
    ALGORITHMS.register(name, config, overwrite=overwrite)
