"""Held-out evaluation of predicted labels and probabilities.

The confusion matrix has predicted classes as rows and observed classes as
columns. Statistics come from sklearn.metrics with zero_division=np.nan, so
any ratio with a zero denominator is NaN; evaluation never raises for a
degenerate test set.
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score, balanced_accuracy_score, cohen_kappa_score, confusion_matrix,
    precision_recall_fscore_support, roc_auc_score, roc_curve
)


@dataclass(frozen=True)
class ClassificationReport:
    """Confusion matrix and derived statistics for one positive class."""
    positive_class: Any
    negative_class: Any
    confusion_matrix: pd.DataFrame = field(repr=False)
    tp: int
    fn: int
    fp: int
    tn: int
    accuracy: float
    precision: float
    recall: float
    specificity: float
    f1: float
    kappa: float
    balanced_accuracy: float
    per_class: pd.DataFrame = field(repr=False)

    @property
    def sensitivity(self) -> float:
        return self.recall

    @property
    def n(self) -> int:
        return self.tp + self.fn + self.fp + self.tn

    def as_dict(self) -> Dict[str, float]:
        """Scalar statistics keyed by name."""
        return {
            'accuracy': self.accuracy,
            'precision': self.precision,
            'recall': self.recall,
            'specificity': self.specificity,
            'f1': self.f1,
            'kappa': self.kappa,
            'balanced_accuracy': self.balanced_accuracy,
            'tp': self.tp,
            'fn': self.fn,
            'fp': self.fp,
            'tn': self.tn
        }

    def summary(self) -> str:
        """Generate human-readable summary of the evaluation."""
        lines = [
            "Classification Report",
            "=" * 50,
            f"Positive class: {self.positive_class}",
            "",
            "Confusion matrix (rows = predicted, columns = observed):",
            self.confusion_matrix.to_string(),
            "",
            f"Accuracy:          {self.accuracy:.4f}",
            f"Kappa:             {self.kappa:.4f}",
            f"Precision:         {self.precision:.4f}",
            f"Recall:            {self.recall:.4f}",
            f"Specificity:       {self.specificity:.4f}",
            f"F1:                {self.f1:.4f}",
            f"Balanced accuracy: {self.balanced_accuracy:.4f}",
            "",
            self.per_class.to_string(float_format=lambda v: f"{v:.4f}")
        ]
        return "\n".join(lines)


def evaluate(
    predicted,
    observed,
    positive_class: Any,
    negative_class: Optional[Any] = None
) -> ClassificationReport:
    """Compare predicted labels to observed labels.

    Parameters
    ----------
    predicted : array-like
        Predicted labels.
    observed : array-like
        Observed labels, same length as predicted.
    positive_class : Any
        Label treated as positive.
    negative_class : Any, optional
        The other level. Inferred from the data when omitted; needed only
        when the data contain the positive class alone.

    Returns
    -------
    report : ClassificationReport

    Raises
    ------
    ValueError
        If the lengths differ or more than two levels are present.
    """
    predicted = np.asarray(predicted, dtype=object)
    observed = np.asarray(observed, dtype=object)
    if predicted.shape != observed.shape:
        raise ValueError(
            f"predicted has {len(predicted)} labels but observed has {len(observed)}"
        )

    levels = set(predicted.tolist()) | set(observed.tolist()) | {positive_class}
    if negative_class is not None:
        levels.add(negative_class)
    others = sorted((level for level in levels if level != positive_class), key=str)
    if len(others) > 1:
        raise ValueError(f"Binary evaluation expects 2 levels, got {sorted(levels, key=str)}")
    if negative_class is None:
        negative_class = others[0] if others else 'other'

    # 1 = positive, 0 = negative; label types never reach sklearn
    y_pred = (predicted == positive_class).astype(int)
    y_true = (observed == positive_class).astype(int)

    if len(y_true) == 0:
        matrix = np.zeros((2, 2), dtype=int)
    else:
        matrix = confusion_matrix(y_true, y_pred, labels=[1, 0])
    (tp, fn), (fp, tn) = matrix.tolist()

    if len(y_true) == 0:
        accuracy = kappa = balanced_accuracy = np.nan
        precisions = recalls = f1s = np.full(2, np.nan)
    else:
        accuracy = float(accuracy_score(y_true, y_pred))
        precisions, recalls, f1s, _ = precision_recall_fscore_support(
            y_true, y_pred, labels=[1, 0], zero_division=np.nan
        )
        with warnings.catch_warnings(), np.errstate(divide='ignore', invalid='ignore'):
            # All predictions and observations in one class: chance agreement is 1
            warnings.simplefilter('ignore')
            kappa = float(cohen_kappa_score(y_true, y_pred, labels=[1, 0]))
        if not np.isfinite(kappa):
            kappa = np.nan
        if len(np.unique(y_true)) < 2:
            balanced_accuracy = np.nan
        else:
            balanced_accuracy = float(balanced_accuracy_score(y_true, y_pred))

    # F1 as the harmonic mean: undefined inputs, or precision = recall = 0, give 0/0
    precisions, recalls = np.asarray(precisions, dtype=float), np.asarray(recalls, dtype=float)
    undefined_f1 = np.isnan(precisions) | np.isnan(recalls) | ((precisions == 0) & (recalls == 0))
    f1s = np.where(undefined_f1, np.nan, f1s)
    precision, negative_precision = (float(v) for v in precisions)
    recall, specificity = (float(v) for v in recalls)
    f1, negative_f1 = (float(v) for v in f1s)

    # sklearn rows are observed classes; the report shows predicted rows
    confusion = pd.DataFrame(
        matrix.T,
        index=pd.Index([positive_class, negative_class], name='Predicted'),
        columns=pd.Index([positive_class, negative_class], name='Observed')
    )

    per_class = pd.DataFrame(
        {
            'precision': [precision, negative_precision],
            'recall': [recall, specificity],
            'f1': [f1, negative_f1],
            'support': [tp + fn, fp + tn]
        },
        index=pd.Index([positive_class, negative_class], name='class')
    )

    return ClassificationReport(
        positive_class=positive_class,
        negative_class=negative_class,
        confusion_matrix=confusion,
        tp=tp,
        fn=fn,
        fp=fp,
        tn=tn,
        accuracy=accuracy,
        precision=precision,
        recall=recall,
        specificity=specificity,
        f1=f1,
        kappa=kappa,
        balanced_accuracy=balanced_accuracy,
        per_class=per_class
    )


@dataclass(frozen=True, eq=False)
class RocCurve:
    """Receiver operating characteristic of positive-class probabilities."""
    fpr: np.ndarray = field(repr=False)
    tpr: np.ndarray = field(repr=False)
    thresholds: np.ndarray = field(repr=False)
    auc: float

    def as_frame(self) -> pd.DataFrame:
        return pd.DataFrame({'fpr': self.fpr, 'tpr': self.tpr, 'threshold': self.thresholds})


def roc_report(observed, probabilities, positive_class: Any) -> RocCurve:
    """ROC curve and area for positive-class probabilities.

    The area is NaN when the observed labels contain a single class.
    """
    observed = np.asarray(observed, dtype=object)
    probabilities = np.asarray(probabilities, dtype=float)
    if observed.shape != probabilities.shape:
        raise ValueError("observed and probabilities must have the same length")

    y_true = (observed == positive_class).astype(int)
    if len(np.unique(y_true)) < 2:
        empty = np.array([], dtype=float)
        return RocCurve(fpr=empty, tpr=empty, thresholds=empty, auc=np.nan)

    fpr, tpr, thresholds = roc_curve(y_true, probabilities)
    return RocCurve(
        fpr=fpr,
        tpr=tpr,
        thresholds=thresholds,
        auc=float(roc_auc_score(y_true, probabilities))
    )
