"""
Raster stack I/O and whole-stack transforms.

Stacks are held in memory as float32 arrays of shape (bands, rows, cols)
with NaN marking no-data cells. Every transform returns a new stack.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import rasterio
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.errors import RasterioIOError
from rasterio.features import geometry_mask
from rasterio.transform import Affine, array_bounds
from rasterio.warp import reproject
from rasterio.windows import Window
from rasterio.windows import from_bounds as window_from_bounds
from rasterio.windows import transform as window_transform

from .boundary import Boundary
from .errors import GeometryError

logger = logging.getLogger(__name__)

# (low, high, output): values with low < v <= high map to output
ReclassRule = tuple[float, float, float]


@dataclass(frozen=True)
class Grid:
    """Target grid geometry for resampling."""

    transform: Affine
    crs: CRS
    width: int
    height: int

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return west, south, east, north

    def aggregate(self, factor: int) -> "Grid":
        """Coarser grid over the same extent, with width and height divided by `factor`."""
        if factor < 1:
            raise ValueError(f"Aggregation factor must be >= 1, got {factor}")
        width = max(self.width // factor, 1)
        height = max(self.height // factor, 1)
        transform = rasterio.transform.from_bounds(*self.bounds, width, height)
        return Grid(transform=transform, crs=self.crs, width=width, height=height)


@dataclass(frozen=True, eq=False)
class RasterStack:
    """One or more named bands sharing a single grid."""

    data: np.ndarray
    transform: Affine
    crs: CRS
    band_names: tuple[str, ...]

    def __post_init__(self):
        if self.data.ndim != 3:
            raise ValueError(f"Stack data must be (bands, rows, cols), got shape {self.data.shape}")
        if len(self.band_names) != self.data.shape[0]:
            raise ValueError(
                f"{len(self.band_names)} band names for {self.data.shape[0]} bands"
            )
        if len(set(self.band_names)) != len(self.band_names):
            raise ValueError(f"Duplicate band names: {list(self.band_names)}")

    @property
    def count(self) -> int:
        return self.data.shape[0]

    @property
    def height(self) -> int:
        return self.data.shape[1]

    @property
    def width(self) -> int:
        return self.data.shape[2]

    @property
    def grid(self) -> Grid:
        return Grid(transform=self.transform, crs=self.crs, width=self.width, height=self.height)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return self.grid.bounds

    def band(self, name: str) -> np.ndarray:
        """2-D array for the named band."""
        try:
            return self.data[self.band_names.index(name)]
        except ValueError:
            raise KeyError(f"No band named {name!r}; available: {list(self.band_names)}") from None

    def select(self, names: Sequence[str]) -> "RasterStack":
        """New stack with only the named bands, in the given order."""
        missing = [n for n in names if n not in self.band_names]
        if missing:
            raise KeyError(f"Bands not in stack: {missing}")
        idx = [self.band_names.index(n) for n in names]
        return self.replace(data=self.data[idx], band_names=tuple(names))

    def replace(self, data: np.ndarray, band_names: Optional[Sequence[str]] = None) -> "RasterStack":
        """New stack on the same grid with different cell values."""
        return RasterStack(
            data=data.astype(np.float32, copy=False),
            transform=self.transform,
            crs=self.crs,
            band_names=tuple(band_names) if band_names is not None else self.band_names,
        )

    def same_grid(self, other: "RasterStack") -> bool:
        """True when both stacks share shape, transform and CRS."""
        return (
            self.height == other.height
            and self.width == other.width
            and np.allclose(tuple(self.transform), tuple(other.transform))
            and self.crs == other.crs
        )

    def cell_centers(self) -> tuple[np.ndarray, np.ndarray]:
        """(x, y) arrays of shape (rows, cols) holding cell-centre coordinates."""
        rows, cols = np.indices((self.height, self.width))
        xs, ys = rasterio.transform.xy(self.transform, rows.ravel(), cols.ravel(), offset="center")
        shape = (self.height, self.width)
        return np.asarray(xs, dtype=float).reshape(shape), np.asarray(ys, dtype=float).reshape(shape)


def _default_band_names(path: Path, count: int, descriptions: Sequence[Optional[str]]) -> list[str]:
    if all(descriptions) and len(set(descriptions)) == count:
        return list(descriptions)
    if count == 1:
        return [path.stem]
    return [f"{path.stem}_{i + 1}" for i in range(count)]


def load_stack(path: str | Path, band_names: Optional[Sequence[str]] = None) -> RasterStack:
    """
    Load every band of a raster file.

    Args:
        path: Path to a GDAL-readable raster
        band_names: Names for the bands (default: band descriptions, else file stem)

    Returns:
        RasterStack with the file's no-data cells set to NaN
    """
    path = Path(path)
    if not path.exists():
        raise IOError(f"Raster file not found: {path}")

    try:
        with rasterio.open(path) as src:
            data = src.read(masked=True).astype(np.float32).filled(np.nan)
            transform = src.transform
            crs = src.crs
            descriptions = src.descriptions
    except RasterioIOError as e:
        raise IOError(f"Could not read raster {path}: {e}") from e

    if crs is None:
        raise GeometryError(f"Raster {path} has no coordinate reference system")

    if band_names is None:
        band_names = _default_band_names(path, data.shape[0], descriptions)
    elif len(band_names) != data.shape[0]:
        raise ValueError(f"{path} has {data.shape[0]} bands but {len(band_names)} names were given")

    logger.info(f"Loaded {path.name}: {data.shape[0]} band(s), {data.shape[1]} x {data.shape[2]}")
    return RasterStack(data=data, transform=transform, crs=crs, band_names=tuple(band_names))


def stack_layers(stacks: Sequence[RasterStack]) -> RasterStack:
    """Combine stacks on the same grid into one multi-band stack."""
    if not stacks:
        raise ValueError("No stacks to combine")
    first = stacks[0]
    for other in stacks[1:]:
        if not first.same_grid(other):
            raise GeometryError(
                f"Cannot stack {list(other.band_names)} onto {list(first.band_names)}: grids differ"
            )
    names = [name for s in stacks for name in s.band_names]
    return first.replace(np.concatenate([s.data for s in stacks], axis=0), names)


def load_stacks(paths: Sequence[str | Path], band_names: Optional[Sequence[str]] = None) -> RasterStack:
    """
    Load several single- or multi-band files and stack them.

    `band_names`, when given, renames the combined bands in order so that
    scenarios stored under different file names share predictor names.
    """
    stack = stack_layers([load_stack(p) for p in paths])
    if band_names is not None:
        if len(band_names) != stack.count:
            raise ValueError(f"{stack.count} bands loaded but {len(band_names)} names were given")
        stack = stack.replace(stack.data, band_names)
    return stack


def write_stack(stack: RasterStack, path: str | Path) -> Path:
    """
    Write a stack to GeoTIFF, replacing any existing file.

    The data goes to a temporary sibling first and is moved into place
    only once the dataset is closed, so a failed write never leaves a
    truncated file at `path`.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.partial")

    try:
        with rasterio.open(
            tmp_path, 'w',
            driver='GTiff',
            height=stack.height,
            width=stack.width,
            count=stack.count,
            dtype='float32',
            crs=stack.crs,
            transform=stack.transform,
            nodata=np.nan,
            compress='lzw',
        ) as dst:
            dst.write(stack.data.astype(np.float32))
            for i, name in enumerate(stack.band_names, start=1):
                dst.set_band_description(i, name)
        tmp_path.replace(path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise

    logger.info(f"Wrote {path}")
    return path


def _overlaps(a: tuple[float, float, float, float], b: tuple[float, float, float, float]) -> bool:
    return a[0] < b[2] and b[0] < a[2] and a[1] < b[3] and b[1] < a[3]


def crop(stack: RasterStack, boundary: Boundary) -> RasterStack:
    """Restrict a stack to the bounding box of a boundary."""
    boundary = boundary.to_crs(stack.crs)
    min_x, min_y, max_x, max_y = boundary.bounds
    if not _overlaps(stack.bounds, boundary.bounds):
        raise GeometryError(
            f"Boundary extent {boundary.bounds} does not overlap raster extent {stack.bounds}"
        )

    bbox = window_from_bounds(min_x, min_y, max_x, max_y, transform=stack.transform)
    row_start = max(int(np.floor(bbox.row_off)), 0)
    row_stop = min(int(np.ceil(bbox.row_off + bbox.height)), stack.height)
    col_start = max(int(np.floor(bbox.col_off)), 0)
    col_stop = min(int(np.ceil(bbox.col_off + bbox.width)), stack.width)

    window = Window(col_start, row_start, col_stop - col_start, row_stop - row_start)
    data = stack.data[:, row_start:row_stop, col_start:col_stop].copy()
    logger.debug(f"Cropped {stack.width} x {stack.height} to {data.shape[2]} x {data.shape[1]}")

    return RasterStack(
        data=data,
        transform=window_transform(window, stack.transform),
        crs=stack.crs,
        band_names=stack.band_names,
    )


def mask(stack: RasterStack, boundary: Boundary) -> RasterStack:
    """Set cells whose centre falls outside the boundary polygon to no-data."""
    boundary = boundary.to_crs(stack.crs)
    if not _overlaps(stack.bounds, boundary.bounds):
        raise GeometryError(
            f"Boundary extent {boundary.bounds} does not overlap raster extent {stack.bounds}"
        )

    outside = geometry_mask(
        [boundary.geometry],
        out_shape=(stack.height, stack.width),
        transform=stack.transform,
    )
    data = stack.data.copy()
    data[:, outside] = np.nan
    return stack.replace(data)


def _resampling(method) -> Resampling:
    if method is None:
        raise ValueError("A resampling method is required (use 'nearest' for categorical data)")
    if isinstance(method, Resampling):
        return method
    try:
        return Resampling[method]
    except KeyError:
        raise ValueError(f"Unknown resampling method: {method!r}") from None


def resample(stack: RasterStack, target: Grid | RasterStack, method: Resampling | str) -> RasterStack:
    """
    Re-grid a stack onto a target grid.

    Args:
        stack: Source stack
        target: Grid (or stack whose grid to match)
        method: Resampling method; there is deliberately no default

    Returns:
        Stack on the target grid with NaN where no source data maps
    """
    resampling = _resampling(method)
    grid = target.grid if isinstance(target, RasterStack) else target

    out = np.full((stack.count, grid.height, grid.width), np.nan, dtype=np.float32)
    for i in range(stack.count):
        reproject(
            source=stack.data[i],
            destination=out[i],
            src_transform=stack.transform,
            src_crs=stack.crs,
            src_nodata=np.nan,
            dst_transform=grid.transform,
            dst_crs=grid.crs,
            dst_nodata=np.nan,
            resampling=resampling,
        )

    return RasterStack(data=out, transform=grid.transform, crs=grid.crs, band_names=stack.band_names)


def reclassify(
    stack: RasterStack,
    rules: Sequence[ReclassRule],
    unmatched: str = "nodata",
) -> RasterStack:
    """
    Map value ranges to new values.

    A cell matches a rule (low, high, output) when low < value <= high.
    Rules are tried in order and the first match wins.

    Args:
        stack: Input stack (all bands are reclassified)
        rules: Ordered (low, high, output) triples
        unmatched: "nodata" to set unmatched cells to NaN, "keep" to pass them through

    Returns:
        Reclassified stack
    """
    if unmatched not in ("nodata", "keep"):
        raise ValueError(f"unmatched must be 'nodata' or 'keep', got {unmatched!r}")

    src = stack.data
    out = src.copy() if unmatched == "keep" else np.full_like(src, np.nan)
    assigned = np.isnan(src)

    for low, high, output in rules:
        hit = ~assigned & (src > low) & (src <= high)
        out[hit] = output
        assigned |= hit

    n_unmatched = int((~assigned).sum())
    if n_unmatched:
        logger.debug(f"{n_unmatched} cells matched no reclassification rule ({unmatched})")

    return stack.replace(out)


def to_dataframe(stack: RasterStack, aggregate: int = 1) -> pd.DataFrame:
    """
    Flatten a stack into a long table of cell values.

    Args:
        stack: Input stack
        aggregate: Integer factor to coarsen the grid by (nearest neighbour) first

    Returns:
        DataFrame with columns x, y, value, variable (one row per cell per band)
    """
    if aggregate != 1:
        stack = resample(stack, stack.grid.aggregate(aggregate), Resampling.nearest)

    xs, ys = stack.cell_centers()
    n_cells = stack.height * stack.width
    frames = [
        pd.DataFrame({
            "x": xs.ravel(),
            "y": ys.ravel(),
            "value": stack.data[i].ravel(),
            "variable": name,
        })
        for i, name in enumerate(stack.band_names)
    ]
    df = pd.concat(frames, ignore_index=True)
    df["variable"] = pd.Categorical(df["variable"], categories=list(stack.band_names))
    logger.debug(f"Flattened {stack.count} band(s) x {n_cells} cells")
    return df
