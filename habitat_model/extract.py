"""
Covariate extraction at occurrence points and train/test splitting.
"""

import logging

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio
from sklearn.model_selection import train_test_split

from .errors import GeometryError
from .raster import RasterStack

logger = logging.getLogger(__name__)


def sample_at_points(
    stack: RasterStack, xs: np.ndarray, ys: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """
    Look up every band of a stack at the given coordinates.

    Args:
        stack: Covariate stack
        xs, ys: Coordinates in the stack CRS

    Returns:
        Tuple of (values, valid_mask)
        - values: array of shape (n_points, n_bands), NaN where invalid
        - valid_mask: True where the point is inside the extent and no band is NaN
    """
    values = np.full((len(xs), stack.count), np.nan, dtype=np.float32)
    if len(xs) == 0:
        return values, np.zeros(0, dtype=bool)

    rows, cols = rasterio.transform.rowcol(stack.transform, xs, ys)
    rows = np.asarray(rows, dtype=int)
    cols = np.asarray(cols, dtype=int)

    inside = (rows >= 0) & (rows < stack.height) & (cols >= 0) & (cols < stack.width)
    values[inside] = stack.data[:, rows[inside], cols[inside]].T

    valid_mask = inside & ~np.isnan(values).any(axis=1)
    return values, valid_mask


def extract_covariates(
    points: gpd.GeoDataFrame,
    stack: RasterStack,
    label: str = "label",
) -> pd.DataFrame:
    """
    Build a covariate table by joining points against a raster stack.

    Points outside the stack extent, or on a no-data cell in any band, are
    dropped. Retained rows keep the input order and the input index.

    Args:
        points: Labelled points with a CRS
        stack: Covariate stack
        label: Name of the label column in `points`

    Returns:
        DataFrame with the label column followed by one column per band
    """
    if points.crs is None:
        raise GeometryError("Occurrence points have no coordinate reference system")
    if label not in points.columns:
        raise KeyError(f"Points have no {label!r} column")

    projected = points.to_crs(stack.crs.to_wkt())
    xs = projected.geometry.x.to_numpy()
    ys = projected.geometry.y.to_numpy()

    values, valid_mask = sample_at_points(stack, xs, ys)

    n_invalid = int((~valid_mask).sum())
    if n_invalid:
        logger.warning(f"{n_invalid} of {len(points)} points outside covariate coverage; dropped")
    if len(points) and not valid_mask.any():
        raise GeometryError(f"None of the {len(points)} points fall on valid cells of the covariate stack")

    table = pd.DataFrame(values[valid_mask], columns=list(stack.band_names), index=points.index[valid_mask])
    table.insert(0, label, points[label].to_numpy()[valid_mask].astype(int))

    logger.info(f"Covariate table: {len(table)} rows x {stack.count} predictors")
    return table


def split_table(
    table: pd.DataFrame,
    train_fraction: float = 0.7,
    seed: int = 42,
    label: str = "label",
    stratify: bool = True,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split a covariate table into training and testing subsets.

    Args:
        table: Covariate table
        train_fraction: Share of rows used for training
        seed: Random seed
        label: Label column used for stratification
        stratify: Keep the class balance equal in both subsets

    Returns:
        Tuple of (train, test); every row lands in exactly one of them
    """
    if not 0 < train_fraction < 1:
        raise ValueError(f"train_fraction must be between 0 and 1, got {train_fraction}")

    train, test = train_test_split(
        table,
        train_size=train_fraction,
        random_state=seed,
        stratify=table[label] if stratify else None,
    )
    logger.info(f"Split {len(table)} rows: {len(train)} train, {len(test)} test")
    return train, test
