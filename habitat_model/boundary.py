"""
Study-area boundary loading and reprojection.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import geopandas as gpd
from rasterio.crs import CRS
from shapely.geometry.base import BaseGeometry

from .errors import GeometryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Boundary:
    """Polygon study area with its coordinate reference system."""

    frame: gpd.GeoDataFrame

    @classmethod
    def from_geometry(cls, geometry: BaseGeometry, crs) -> "Boundary":
        """Wrap a single shapely polygon."""
        return cls(gpd.GeoDataFrame(geometry=[geometry], crs=crs))

    @property
    def crs(self) -> CRS:
        return CRS.from_user_input(self.frame.crs)

    @property
    def geometry(self) -> BaseGeometry:
        """Union of all boundary features."""
        return self.frame.geometry.union_all()

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y) in the boundary CRS."""
        min_x, min_y, max_x, max_y = self.frame.total_bounds
        return float(min_x), float(min_y), float(max_x), float(max_y)

    def to_crs(self, crs) -> "Boundary":
        """Return the boundary reprojected to `crs` (no-op when already there)."""
        target = CRS.from_user_input(crs)
        if self.crs == target:
            return self
        return Boundary(self.frame.to_crs(target.to_wkt()))


def load_boundary(path: str | Path, layer: Optional[str] = None) -> Boundary:
    """
    Load a polygon boundary from a vector file.

    Args:
        path: Shapefile, GeoPackage or GeoJSON path
        layer: Layer name for multi-layer sources

    Returns:
        Boundary in the file's native CRS
    """
    path = Path(path)
    if not path.exists():
        raise IOError(f"Boundary file not found: {path}")

    try:
        frame = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
    except Exception as e:
        raise IOError(f"Could not read boundary {path}: {e}") from e

    if frame.empty:
        raise GeometryError(f"Boundary {path} contains no features")
    if frame.crs is None:
        raise GeometryError(f"Boundary {path} has no coordinate reference system")

    logger.info(f"Loaded boundary {path.name}: {len(frame)} feature(s), CRS {frame.crs}")
    return Boundary(frame)
