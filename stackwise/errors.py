"""Exception taxonomy for the stackwise workflow.

Transform and layout errors abort immediately. Undefined metrics and
convergence failures are recorded by the trainer and excluded from
aggregation; they only surface to the caller when nothing usable is left.
"""


class StackwiseError(Exception):
    """Base class for all workflow errors."""


class InsufficientDataError(StackwiseError):
    """Too few rows per class to split, stratify or resample."""


class UnseenCategoryError(StackwiseError):
    """A category absent from the fit-time encoding appeared at apply time."""

    def __init__(self, feature, values):
        self.feature = feature
        self.values = sorted(str(v) for v in values)
        super().__init__(
            f"Feature '{feature}' has categories not seen during fit: {self.values}"
        )


class FeatureLayoutMismatchError(StackwiseError):
    """Apply-time column layout diverges from the fit-time layout."""

    def __init__(self, expected, received, context: str = ""):
        self.expected = list(expected)
        self.received = list(received)
        missing = [c for c in self.expected if c not in self.received]
        extra = [c for c in self.received if c not in self.expected]
        details = []
        if missing:
            details.append(f"missing={missing}")
        if extra:
            details.append(f"unexpected={extra}")
        if not details:
            details.append("column order differs")
        prefix = f"{context}: " if context else ""
        super().__init__(f"{prefix}feature layout mismatch ({', '.join(details)})")


class UndefinedMetricError(StackwiseError):
    """A metric cannot be computed, typically because a label class is absent."""


class ConvergenceFailure(StackwiseError):
    """An underlying algorithm failed to fit for a hyperparameter combination."""


class SweepFailedError(ConvergenceFailure):
    """Every hyperparameter combination of a sweep failed."""


class SweepCancelledError(StackwiseError):
    """A sweep was cancelled between job boundaries; partial results were discarded."""


class PipelineStateError(StackwiseError):
    """A pipeline was used in the wrong lifecycle state (refit, or applied before fit)."""


class ResampleMismatchError(StackwiseError):
    """Models that must share resamples were trained on different ones."""
