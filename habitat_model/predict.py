"""
Probability surfaces, binarization and scenario projection.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from tqdm import tqdm

from .errors import GeometryError
from .model import DistributionModel
from .raster import RasterStack

logger = logging.getLogger(__name__)

# Codes written by range_change
ABSENT = 0
LOST = 1
GAINED = 2
RETAINED = 3

CHANGE_LABELS = {ABSENT: "absent", LOST: "lost", GAINED: "gained", RETAINED: "retained"}


def predict_raster(
    model: DistributionModel,
    stack: RasterStack,
    batch_size: int = 100_000,
) -> RasterStack:
    """
    Apply a fitted model to every cell of a covariate stack.

    Args:
        model: Trained DistributionModel
        stack: Stack whose band names include every model predictor
        batch_size: Cells scored per call to the model

    Returns:
        Single-band stack named "probability"; NaN wherever any predictor is NaN
    """
    missing = [p for p in model.predictors if p not in stack.band_names]
    if missing:
        raise ValueError(f"Covariate stack is missing predictor bands: {missing}")

    X = stack.select(model.predictors).data.reshape(len(model.predictors), -1).T
    valid_mask = ~np.isnan(X).any(axis=1)
    valid_idx = np.flatnonzero(valid_mask)

    scores = np.full(X.shape[0], np.nan, dtype=np.float32)
    for i in tqdm(range(0, len(valid_idx), batch_size), desc="Predicting", disable=len(valid_idx) <= batch_size):
        idx = valid_idx[i:i + batch_size]
        scores[idx] = model.predict_proba(X[idx])

    logger.info(f"Predicted {len(valid_idx):,} of {X.shape[0]:,} cells")
    if len(valid_idx):
        logger.info(f"  Probability range: {np.nanmin(scores):.3f} - {np.nanmax(scores):.3f}")

    return stack.replace(scores.reshape(1, stack.height, stack.width), ["probability"])


def classify(prediction: RasterStack, cutoff: float) -> RasterStack:
    """
    Binarize a probability raster: 1 where p >= cutoff, else 0; NaN stays NaN.
    """
    if not 0 <= cutoff <= 1:
        raise ValueError(f"Cutoff must be within [0, 1], got {cutoff}")
    if prediction.count != 1:
        raise ValueError(f"Expected a single-band prediction, got {prediction.count} bands")

    probs = prediction.data[0]
    presence = np.where(np.isnan(probs), np.nan, (probs >= cutoff).astype(np.float32))
    return prediction.replace(presence[np.newaxis], ["presence"])


def range_change(current: RasterStack, future: RasterStack) -> RasterStack:
    """
    Compare two presence rasters cell by cell.

    Codes: 0 absent in both, 1 lost (present now only), 2 gained (present in
    future only), 3 retained. NaN where either input is NaN.
    """
    if not current.same_grid(future):
        raise GeometryError("Current and future presence rasters are on different grids")
    for name, stack in (("current", current), ("future", future)):
        values = np.unique(stack.data[0][~np.isnan(stack.data[0])])
        if stack.count != 1 or not np.isin(values, (0, 1)).all():
            raise ValueError(
                f"{name.capitalize()} raster must be a single-band 0/1 presence map; "
                "binarize it with classify first"
            )

    now = current.data[0]
    later = future.data[0]
    change = now + 2 * later
    change[np.isnan(now) | np.isnan(later)] = np.nan
    return current.replace(change[np.newaxis], ["change"])


def change_summary(change: RasterStack) -> dict[str, int]:
    """Number of cells per range-change category."""
    values = change.data[0]
    return {name: int((values == code).sum()) for code, name in CHANGE_LABELS.items()}


@dataclass
class ScenarioProjection:
    """Predictions from one model over current and future covariates."""

    current: RasterStack
    future: RasterStack
    cutoff: Optional[float] = None
    current_presence: Optional[RasterStack] = None
    future_presence: Optional[RasterStack] = None
    change: Optional[RasterStack] = None


def project(
    model: DistributionModel,
    current: RasterStack,
    future: RasterStack,
    cutoff: Optional[float] = None,
) -> ScenarioProjection:
    """
    Predict current and future suitability with the same fitted model.

    Both stacks must share one grid so the outputs are directly comparable;
    align them with `raster.resample` beforehand if needed.

    Args:
        model: Trained DistributionModel
        current: Covariates for the reference period
        future: Covariates for the future scenario
        cutoff: Optional threshold; when given, presence maps and range change are added

    Returns:
        ScenarioProjection
    """
    if not current.same_grid(future):
        raise GeometryError(
            f"Current ({current.width} x {current.height}, {current.crs}) and future "
            f"({future.width} x {future.height}, {future.crs}) covariates are on different grids"
        )

    logger.info("Predicting current scenario...")
    current_prediction = predict_raster(model, current)
    logger.info("Predicting future scenario...")
    future_prediction = predict_raster(model, future)
    result = ScenarioProjection(current=current_prediction, future=future_prediction, cutoff=cutoff)

    if cutoff is not None:
        result.current_presence = classify(result.current, cutoff)
        result.future_presence = classify(result.future, cutoff)
        result.change = range_change(result.current_presence, result.future_presence)
        logger.info(f"  Range change at cutoff {cutoff:.3f}: {change_summary(result.change)}")

    return result
