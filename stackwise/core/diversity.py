"""Diversity scoring for stacked base models.

Measures how different base models are from each other based on their
out-of-fold predictions. Highly correlated base models add little to a
stack; the comparator reports this alongside resample metrics.
"""

from typing import Dict, List

import numpy as np
import pandas as pd


class DiversityScorer:
    """Calculates correlation-based diversity between model predictions.

    Diversity is measured as the mean pairwise correlation between model
    predictions. Lower correlation indicates higher diversity.

    Example:
        >>> scorer = DiversityScorer()
        >>> predictions = {name: model.oof.averaged().values for name, model in models.items()}
        >>> print(scorer.correlation_frame(predictions))
    """

    def score(self, predictions: List[np.ndarray]) -> float:
        """Calculate mean pairwise correlation between predictions.

        Args:
            predictions: List of 1D prediction arrays for the same rows.

        Returns:
            Mean pairwise correlation. Lower is more diverse.

        Raises:
            ValueError: If fewer than 2 prediction sets provided
            ValueError: If prediction arrays have different shapes
        """
        pairwise = self._pairwise(predictions)
        return float(np.nanmean(pairwise))

    def detailed_diversity(self, predictions: List[np.ndarray]) -> dict:
        """Get mean, min, max and spread of the pairwise correlations."""
        pairwise = self._pairwise(predictions)

        return {
            'mean_correlation': float(np.nanmean(pairwise)),
            'min_correlation': float(np.nanmin(pairwise)),
            'max_correlation': float(np.nanmax(pairwise)),
            'std_correlation': float(np.nanstd(pairwise)),
            'n_pairs': len(pairwise),
            'n_models': len(predictions)
        }

    def correlation_frame(self, predictions: Dict[str, np.ndarray]) -> pd.DataFrame:
        """Full correlation matrix labelled by model name."""
        names = list(predictions.keys())
        matrix = self._correlation_matrix([np.asarray(predictions[n]) for n in names])
        return pd.DataFrame(matrix, index=names, columns=names)

    @staticmethod
    def is_diverse(mean_correlation: float, threshold: float = 0.75) -> bool:
        """Rule of thumb used for stacking: mean correlation below 0.75."""
        return mean_correlation < threshold

    def _pairwise(self, predictions: List[np.ndarray]) -> np.ndarray:
        if len(predictions) < 2:
            raise ValueError("Need at least 2 predictions to calculate diversity")

        first_shape = np.shape(predictions[0])
        for i, pred in enumerate(predictions[1:], 1):
            if np.shape(pred) != first_shape:
                raise ValueError(
                    f"Prediction {i} has shape {np.shape(pred)}, "
                    f"expected {first_shape}"
                )

        corr_matrix = self._correlation_matrix(predictions)

        # Upper triangle holds each unique pair once
        upper_indices = np.triu_indices(len(predictions), k=1)
        return corr_matrix[upper_indices]

    @staticmethod
    def _correlation_matrix(predictions: List[np.ndarray]) -> np.ndarray:
        # Constant prediction vectors have no defined correlation
        with np.errstate(divide='ignore', invalid='ignore'):
            return np.corrcoef(np.vstack(predictions))
