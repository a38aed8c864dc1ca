"""Shared fixtures: small synthetic rasters, boundaries and training tables."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.crs import CRS
from rasterio.transform import from_origin
from shapely.geometry import box

from habitat_model.boundary import Boundary
from habitat_model.model import BoostingConfig, DistributionModel
from habitat_model.raster import RasterStack

WGS84 = CRS.from_epsg(4326)


def make_stack(
    data: np.ndarray,
    names: list[str] | None = None,
    origin: tuple[float, float] = (0.0, 10.0),
    res: float = 1.0,
) -> RasterStack:
    """Build a stack on a north-up grid with 1-degree cells by default."""
    data = np.asarray(data, dtype=np.float32)
    if data.ndim == 2:
        data = data[np.newaxis]
    if names is None:
        names = [f"b{i}" for i in range(data.shape[0])]
    return RasterStack(
        data=data,
        transform=from_origin(origin[0], origin[1], res, res),
        crs=WGS84,
        band_names=tuple(names),
    )


def write_tif(
    path: Path,
    data: np.ndarray,
    descriptions: list[str] | None = None,
    nodata: float | None = None,
    origin: tuple[float, float] = (0.0, 10.0),
    dtype: str = "float32",
) -> Path:
    """Write a plain GeoTIFF with rasterio (no habitat_model code involved)."""
    data = np.asarray(data)
    if data.ndim == 2:
        data = data[np.newaxis]
    with rasterio.open(
        path, "w",
        driver="GTiff",
        height=data.shape[1],
        width=data.shape[2],
        count=data.shape[0],
        dtype=dtype,
        crs=WGS84,
        transform=from_origin(origin[0], origin[1], 1.0, 1.0),
        nodata=nodata,
    ) as dst:
        dst.write(data.astype(dtype))
        if descriptions:
            for i, name in enumerate(descriptions, start=1):
                dst.set_band_description(i, name)
    return path


def separable_table(n: int = 200, seed: int = 0) -> pd.DataFrame:
    """Rows where label == (x > 0), with a gap of (-1, 1) around zero and a noise column z."""
    rng = np.random.default_rng(seed)
    x = np.concatenate([rng.uniform(-2, -1, n // 2), rng.uniform(1, 2, n - n // 2)])
    z = rng.normal(size=n)
    return pd.DataFrame({"label": (x > 0).astype(int), "x": x, "z": z})


FAST_BOOSTING = BoostingConfig(learning_rate=0.1, n_trees=60, n_iter_no_change=None)


@pytest.fixture
def fast_config() -> BoostingConfig:
    return FAST_BOOSTING


@pytest.fixture
def training_table() -> pd.DataFrame:
    return separable_table()


@pytest.fixture
def trained_model(training_table: pd.DataFrame) -> DistributionModel:
    model = DistributionModel(FAST_BOOSTING)
    model.train(training_table, ["x", "z"])
    return model


@pytest.fixture
def square_boundary() -> Boundary:
    return Boundary.from_geometry(box(2, 2, 6, 7), crs="EPSG:4326")
