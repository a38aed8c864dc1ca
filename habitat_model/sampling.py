"""
Occurrence point generation.

Presence/absence points are drawn from a reclassified land-cover raster by
stratified random sampling, or built from occurrence records already
downloaded from a species-occurrence service.
"""

import logging
from typing import Optional

import geopandas as gpd
import numpy as np
import pandas as pd
import rasterio.transform

from .raster import RasterStack

logger = logging.getLogger(__name__)


def stratified_sample(
    raster: RasterStack,
    n_per_class: int = 1000,
    seed: int = 42,
    year: Optional[int] = None,
) -> gpd.GeoDataFrame:
    """
    Draw a fixed number of cells from every class of a categorical raster.

    Cells with no data are never drawn. When a class has fewer cells than
    requested, all of its cells are returned.

    Args:
        raster: Single-band raster reclassified to 0 (absence) and 1 (presence)
        n_per_class: Number of cells to draw from each class
        seed: Random seed for reproducibility
        year: Optional year recorded on every point

    Returns:
        GeoDataFrame of cell-centre points with an integer `label` column
    """
    if raster.count != 1:
        raise ValueError(f"Stratified sampling needs a single-band raster, got {raster.count} bands")
    if n_per_class < 1:
        raise ValueError(f"n_per_class must be positive, got {n_per_class}")

    values = raster.data[0].ravel()
    valid = ~np.isnan(values)
    classes = np.unique(values[valid])
    unexpected = [c for c in classes.tolist() if c not in (0, 1)]
    if unexpected:
        raise ValueError(
            f"Stratified sampling needs a 0/1 raster; found values {unexpected[:10]}. "
            "Reclassify the land cover first"
        )

    rng = np.random.default_rng(seed)

    cells = []
    labels = []
    for cls in classes:
        idx = np.flatnonzero(valid & (values == cls))
        if len(idx) < n_per_class:
            logger.warning(
                f"Class {cls:g} has only {len(idx)} cells (requested {n_per_class}); using all of them"
            )
            chosen = idx
        else:
            chosen = rng.choice(idx, size=n_per_class, replace=False)
        cells.append(chosen)
        labels.append(np.full(len(chosen), int(cls)))

    if not cells:
        logger.warning("Raster has no valid cells to sample")
        xs, ys, labels = [], [], [np.array([], dtype=int)]
    else:
        rows, cols = np.unravel_index(np.concatenate(cells), (raster.height, raster.width))
        xs, ys = rasterio.transform.xy(raster.transform, rows, cols, offset="center")

    points = gpd.GeoDataFrame(
        {"label": np.concatenate(labels).astype(int)},
        geometry=gpd.points_from_xy(np.asarray(xs, dtype=float), np.asarray(ys, dtype=float)),
        crs=raster.crs.to_wkt(),
    )
    if year is not None:
        points.insert(1, "year", year)

    counts = points["label"].value_counts().sort_index().to_dict()
    logger.info(f"Sampled {len(points)} points: {counts}")
    return points


def occurrences_from_records(
    records: list[dict],
    crs: str = "EPSG:4326",
    label: int = 1,
) -> gpd.GeoDataFrame:
    """
    Convert occurrence-service records to labelled points.

    Args:
        records: Dictionaries with decimalLongitude, decimalLatitude and optionally year
        crs: CRS of the record coordinates
        label: Label assigned to every point (1 for presence records)

    Returns:
        GeoDataFrame with `label` and `year` columns
    """
    rows = []
    for rec in records:
        lon = rec.get("decimalLongitude")
        lat = rec.get("decimalLatitude")
        if lon is None or lat is None:
            continue
        rows.append({"x": float(lon), "y": float(lat), "year": rec.get("year")})

    skipped = len(records) - len(rows)
    if skipped:
        logger.warning(f"Skipped {skipped} records without coordinates")

    df = pd.DataFrame(rows, columns=["x", "y", "year"])
    df["year"] = df["year"].astype("Int64")
    return gpd.GeoDataFrame(
        {"label": np.full(len(df), label, dtype=int), "year": df["year"]},
        geometry=gpd.points_from_xy(df["x"], df["y"]),
        crs=crs,
    )
