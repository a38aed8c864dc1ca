"""
Held-out evaluation: ROC curve, AUC and cutoff selection.

Choosing a cutoff is a calibration step. The accuracy-vs-cutoff curve is
returned as data so callers can pick their own cutoff, or let
`select_cutoff` derive one.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.metrics import auc, roc_curve

from .model import DistributionModel

logger = logging.getLogger(__name__)

CUTOFF_METHODS = ("balanced", "accuracy")


@dataclass
class Evaluation:
    """Evaluation of a fitted model on test data."""

    auc: float
    roc: pd.DataFrame
    accuracy: pd.DataFrame
    cutoff: float

    def summary(self) -> dict:
        """AUC and cutoff, with rates read from the curve row nearest the cutoff."""
        best = self.accuracy.loc[(self.accuracy["cutoff"] - self.cutoff).abs().idxmin()]
        return {
            "auc": self.auc,
            "cutoff": self.cutoff,
            "sensitivity": float(best["sensitivity"]),
            "specificity": float(best["specificity"]),
            "accuracy": float(best["accuracy"]),
        }


def _check_labels(labels: np.ndarray) -> None:
    classes = np.unique(labels)
    if len(classes) != 2:
        raise ValueError(f"Evaluation needs both presences and absences, got classes {classes.tolist()}")


def roc_points(labels, scores) -> pd.DataFrame:
    """
    ROC curve over decreasing thresholds.

    Returns:
        DataFrame with columns threshold, fpr, tpr. The first row has an
        infinite threshold (nothing predicted present).
    """
    labels = np.asarray(labels).astype(int)
    _check_labels(labels)
    fpr, tpr, thresholds = roc_curve(labels, np.asarray(scores), drop_intermediate=False)
    return pd.DataFrame({"threshold": thresholds, "fpr": fpr, "tpr": tpr})


def accuracy_curve(labels, scores) -> pd.DataFrame:
    """
    Sensitivity, specificity and accuracy at every finite ROC threshold.

    Returns:
        DataFrame with columns cutoff, sensitivity, specificity, accuracy,
        balanced_accuracy, ordered by decreasing cutoff
    """
    labels = np.asarray(labels).astype(int)
    roc = roc_points(labels, scores)
    roc = roc[np.isfinite(roc["threshold"])]

    n_pos = int(labels.sum())
    n_neg = len(labels) - n_pos
    sensitivity = roc["tpr"].to_numpy()
    specificity = 1.0 - roc["fpr"].to_numpy()

    return pd.DataFrame({
        "cutoff": np.clip(roc["threshold"].to_numpy(), 0.0, 1.0),
        "sensitivity": sensitivity,
        "specificity": specificity,
        "accuracy": (sensitivity * n_pos + specificity * n_neg) / (n_pos + n_neg),
        "balanced_accuracy": (sensitivity + specificity) / 2,
    }).reset_index(drop=True)


def select_cutoff(curve: pd.DataFrame, method: str = "balanced") -> float:
    """
    Pick a cutoff from an accuracy curve.

    Args:
        curve: Output of accuracy_curve
        method: "balanced" maximizes (TPR + TNR) / 2, "accuracy" maximizes accuracy

    Returns:
        The highest cutoff reaching the maximum
    """
    if method not in CUTOFF_METHODS:
        raise ValueError(f"Unknown cutoff method: {method}. Choose from {list(CUTOFF_METHODS)}")
    column = "balanced_accuracy" if method == "balanced" else "accuracy"
    best = curve[curve[column] == curve[column].max()]
    return float(best["cutoff"].max())


def evaluate(
    model: DistributionModel,
    test_table: pd.DataFrame,
    label: str = "label",
    cutoff: float | None = None,
    method: str = "balanced",
) -> Evaluation:
    """
    Evaluate a fitted model on held-out rows.

    Args:
        model: Trained DistributionModel
        test_table: Covariate table rows not used for training
        label: Name of the label column
        cutoff: Cutoff to report; derived with `method` when omitted
        method: Cutoff selection method (see select_cutoff)

    Returns:
        Evaluation with AUC, ROC points, accuracy curve and cutoff
    """
    labels = test_table[label].to_numpy().astype(int)
    _check_labels(labels)
    scores = model.predict_proba(test_table)

    roc = roc_points(labels, scores)
    area = float(auc(roc["fpr"], roc["tpr"]))
    curve = accuracy_curve(labels, scores)

    if cutoff is None:
        cutoff = select_cutoff(curve, method)
    elif not 0 <= cutoff <= 1:
        raise ValueError(f"Cutoff must be within [0, 1], got {cutoff}")

    logger.info(f"Test AUC: {area:.3f} on {len(labels)} rows; cutoff {cutoff:.3f}")
    return Evaluation(auc=area, roc=roc, accuracy=curve, cutoff=float(cutoff))
