"""Consolidated configuration for the classification workflow.

This module provides a type-safe, validated configuration structure using
dataclasses. Every tunable of the workflow lives here with:
- Clear documentation
- Type hints
- Validation logic
- Sensible defaults

The configuration is organized hierarchically:
    WorkflowConfig (root)
    ├── PreprocessingConfig
    ├── ResamplingConfig
    ├── TuningConfig
    ├── FeatureSelectionConfig
    │   └── ResamplingConfig
    ├── StackingConfig
    │   └── ResamplingConfig
    ├── ParallelConfig
    ├── TrackingConfig
    └── PathsConfig

Usage:
    >>> from stackwise.config import WorkflowConfig
    >>> config = WorkflowConfig(label='Class', positive_class='yes')
    >>> config.validate()

    >>> # Or customize
    >>> config = WorkflowConfig(
    ...     label='Class',
    ...     positive_class='yes',
    ...     resampling=ResamplingConfig(method='cv', number=5),
    ...     tuning=TuningConfig(strategy='grid', grids={'knn': {'n_neighbors': [5, 9]}})
    ... )
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from pathlib import Path


RESAMPLING_METHODS = ('cv', 'repeatedcv', 'boot', 'loocv', 'lgocv')
TUNING_STRATEGIES = ('grid', 'length')
UNKNOWN_CATEGORY_POLICIES = ('zero', 'error')
CATEGORICAL_DISTANCE_POLICIES = ('exclude', 'mismatch')


# ==============================================================================
# PREPROCESSING CONFIGURATION
# ==============================================================================

@dataclass
class PreprocessingConfig:
    """Imputation and encoding policies for the transform pipeline.

    Attributes:
        n_neighbors: Number of neighbors used by the k-NN imputer
        categorical_distance: Whether categorical features take part in the
            imputation distance ('exclude') or add a mismatch penalty ('mismatch')
        handle_unknown: Encoder policy for unseen categories: 'zero' fills the
            one-hot block with zeros, 'error' raises UnseenCategoryError
        categorical_features: Explicit categorical columns (None = infer from dtype)
    """
    n_neighbors: int = 5
    categorical_distance: str = 'exclude'
    handle_unknown: str = 'zero'
    categorical_features: Optional[List[str]] = None

    def validate(self):
        """Validate preprocessing configuration."""
        assert self.n_neighbors > 0, "n_neighbors must be positive"
        assert self.categorical_distance in CATEGORICAL_DISTANCE_POLICIES, \
            f"categorical_distance must be one of {CATEGORICAL_DISTANCE_POLICIES}"
        assert self.handle_unknown in UNKNOWN_CATEGORY_POLICIES, \
            f"handle_unknown must be one of {UNKNOWN_CATEGORY_POLICIES}"


# ==============================================================================
# RESAMPLING CONFIGURATION
# ==============================================================================

@dataclass
class ResamplingConfig:
    """Resampling scheme used for tuning and selection.

    Attributes:
        method: One of 'cv', 'repeatedcv', 'boot', 'loocv', 'lgocv'
        number: Folds for cv/repeatedcv, iterations for boot/lgocv
        repeats: Repeats for repeatedcv (ignored by the other methods)
        p: Training fraction for lgocv (leave-group-out)
    """
    method: str = 'repeatedcv'
    number: int = 10
    repeats: int = 3
    p: float = 0.75

    def validate(self):
        """Validate resampling configuration."""
        assert self.method in RESAMPLING_METHODS, \
            f"method must be one of {RESAMPLING_METHODS}"
        assert self.number > 0, "number must be positive"
        if self.method in ('cv', 'repeatedcv'):
            assert self.number >= 2, "cv requires at least 2 folds"
        assert self.repeats > 0, "repeats must be positive"
        assert 0 < self.p < 1, "p must be in (0, 1)"


# ==============================================================================
# TUNING CONFIGURATION
# ==============================================================================

@dataclass
class TuningConfig:
    """Hyperparameter search configuration.

    Attributes:
        strategy: 'grid' uses the explicit grids, 'length' auto-generates
            tune_length values per tuning parameter
        tune_length: Number of values per tuning parameter for 'length'
        grids: Dict mapping algorithm names to explicit grids
        metric: Metric name used to rank combinations
    """
    strategy: str = 'length'
    tune_length: int = 3
    grids: Dict[str, Any] = field(default_factory=dict)
    metric: str = 'roc_auc'

    def validate(self):
        """Validate tuning configuration."""
        assert self.strategy in TUNING_STRATEGIES, \
            f"strategy must be one of {TUNING_STRATEGIES}"
        assert self.tune_length > 0, "tune_length must be positive"

        from stackwise.core.metrics import METRICS
        assert self.metric in METRICS, f"unknown metric '{self.metric}'"

    def grid_for(self, algorithm: str):
        """Explicit grid for an algorithm, or None when it should be generated."""
        if self.strategy == 'grid':
            return self.grids.get(algorithm)
        return None


# ==============================================================================
# FEATURE SELECTION CONFIGURATION
# ==============================================================================

@dataclass
class FeatureSelectionConfig:
    """Recursive feature elimination configuration.

    Attributes:
        enabled: Whether the workflow runs feature selection
        sizes: Candidate subset sizes (the full feature count is always added)
        ranking_algorithm: Registered algorithm used to rank and score subsets
        resampling: Resampling used to score each subset size
    """
    enabled: bool = True
    sizes: List[int] = field(default_factory=lambda: [1, 2, 4, 8, 16])
    ranking_algorithm: str = 'rf'
    resampling: ResamplingConfig = field(
        default_factory=lambda: ResamplingConfig(method='repeatedcv', number=5, repeats=2)
    )

    def validate(self):
        """Validate feature selection configuration."""
        assert len(self.sizes) > 0, "must have at least one candidate size"
        assert all(s > 0 for s in self.sizes), "sizes must be positive"
        self.resampling.validate()


# ==============================================================================
# STACKING CONFIGURATION
# ==============================================================================

@dataclass
class StackingConfig:
    """Base model list and meta-model configuration.

    Attributes:
        base_algorithms: Registered algorithm names trained as base models
        meta_algorithm: Registered algorithm name used as the meta-model
        resampling: Resampling used to tune the meta-model
    """
    base_algorithms: List[str] = field(default_factory=lambda: ['glm', 'rf', 'gbm', 'knn'])
    meta_algorithm: str = 'glm'
    resampling: ResamplingConfig = field(
        default_factory=lambda: ResamplingConfig(method='cv', number=5)
    )

    def validate(self):
        """Validate stacking configuration."""
        from stackwise.training.algorithms import ALGORITHMS

        assert len(self.base_algorithms) > 0, "must have at least one base algorithm"
        for name in self.base_algorithms + [self.meta_algorithm]:
            assert name in ALGORITHMS, f"Algorithm '{name}' is not registered"
        self.resampling.validate()


# ==============================================================================
# PARALLEL EXECUTION CONFIGURATION
# ==============================================================================

@dataclass
class ParallelConfig:
    """Worker pool configuration.

    Attributes:
        n_workers: Number of worker processes (1 = run inline)
    """
    n_workers: int = 1

    def validate(self):
        """Validate parallel configuration."""
        assert self.n_workers > 0, "n_workers must be positive"


# ==============================================================================
# TRACKING CONFIGURATION
# ==============================================================================

@dataclass
class TrackingConfig:
    """Database and logging configuration.

    Attributes:
        db_path: Path to SQLite database file (None disables tracking)
        log_level: Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR')
        log_to_file: Whether to log to file in addition to stdout
        log_directory: Directory for log files
    """
    db_path: Optional[str] = None
    log_level: str = 'INFO'
    log_to_file: bool = False
    log_directory: str = 'logs'

    def validate(self):
        """Validate tracking configuration."""
        assert self.log_level in ['DEBUG', 'INFO', 'WARNING', 'ERROR'], \
            "log_level must be DEBUG, INFO, WARNING, or ERROR"


# ==============================================================================
# PATHS CONFIGURATION
# ==============================================================================

@dataclass
class PathsConfig:
    """File paths configuration.

    Attributes:
        artifacts_dir: Directory for persisted transform and model artifacts
            (None disables persistence)
    """
    artifacts_dir: Optional[Path] = None

    def __post_init__(self):
        """Convert strings to Path objects."""
        if self.artifacts_dir:
            self.artifacts_dir = Path(self.artifacts_dir)

    def validate(self):
        """Validate paths configuration."""
        # Directories are created on demand
        pass


# ==============================================================================
# ROOT CONFIGURATION
# ==============================================================================

@dataclass
class WorkflowConfig:
    """Complete workflow configuration.

    This is the root configuration object. Create an instance and call
    validate() before use.

    Attributes:
        random_state: Seed for the root RandomSource
        label: Label column name
        positive_class: Label value treated as the positive (event) class
        train_fraction: Proportion of rows assigned to the training split
        preprocessing: Imputation and encoding policies
        resampling: Resampling used to tune base models
        tuning: Hyperparameter search configuration
        feature_selection: Recursive feature elimination configuration
        stacking: Base model list and meta-model configuration
        parallel: Worker pool configuration
        tracking: Database and logging configuration
        paths: File paths configuration

    Example:
        >>> config = WorkflowConfig(label='diagnosis', positive_class='M')
        >>> config.validate()
        >>> print(config.summary())
    """
    random_state: int = 315
    label: str = 'Class'
    positive_class: Any = 'yes'
    train_fraction: float = 0.75
    preprocessing: PreprocessingConfig = field(default_factory=PreprocessingConfig)
    resampling: ResamplingConfig = field(default_factory=ResamplingConfig)
    tuning: TuningConfig = field(default_factory=TuningConfig)
    feature_selection: FeatureSelectionConfig = field(default_factory=FeatureSelectionConfig)
    stacking: StackingConfig = field(default_factory=StackingConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    def validate(self):
        """Validate entire configuration hierarchy.

        Raises:
            AssertionError: If any configuration parameter is invalid
        """
        assert self.label, "label must be set"
        assert 0 < self.train_fraction < 1, "train_fraction must be in (0, 1)"
        self.preprocessing.validate()
        self.resampling.validate()
        self.tuning.validate()
        self.feature_selection.validate()
        self.stacking.validate()
        self.parallel.validate()
        self.tracking.validate()
        self.paths.validate()

    def summary(self) -> str:
        """Generate a human-readable configuration summary.

        Returns:
            Multi-line string describing key configuration parameters
        """
        lines = [
            "Workflow Configuration Summary",
            "=" * 50,
            f"Random State: {self.random_state}",
            f"Label: {self.label} (positive class: {self.positive_class})",
            f"Train fraction: {self.train_fraction}",
            "",
            "Preprocessing:",
            f"  k-NN imputation neighbors: {self.preprocessing.n_neighbors}",
            f"  Categorical distance: {self.preprocessing.categorical_distance}",
            f"  Unseen categories: {self.preprocessing.handle_unknown}",
            "",
            "Resampling:",
            f"  Method: {self.resampling.method}",
            f"  Number: {self.resampling.number}",
            f"  Repeats: {self.resampling.repeats}",
            "",
            "Tuning:",
            f"  Strategy: {self.tuning.strategy}",
            f"  Tune length: {self.tuning.tune_length}",
            f"  Metric: {self.tuning.metric}",
            "",
            "Feature selection:",
            f"  Enabled: {self.feature_selection.enabled}",
            f"  Sizes: {self.feature_selection.sizes}",
            "",
            "Stacking:",
            f"  Base algorithms: {', '.join(self.stacking.base_algorithms)}",
            f"  Meta algorithm: {self.stacking.meta_algorithm}",
            "",
            f"Workers: {self.parallel.n_workers}",
            ""
        ]
        return "\n".join(lines)
