"""
Workflow configuration.

A run is described by a WorkflowConfig, usually loaded from a JSON file:

    {
        "boundary": "data/boundary.gpkg",
        "landcover": "data/landcover.tif",
        "current_covariates": ["data/bioclim_1991_2020.tif"],
        "future_covariates": ["data/bioclim_2041_2070.tif"],
        "output_dir": "output",
        "boosting": {"learning_rate": 0.01, "tree_complexity": 5}
    }

Relative paths are resolved against the directory holding the JSON file.
"""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from .model import BoostingConfig
from .raster import ReclassRule

DEFAULT_SEED = 42
DEFAULT_SAMPLES_PER_CLASS = 1000
DEFAULT_TRAIN_FRACTION = 0.7
DEFAULT_CUTOFF_METHOD = "balanced"

# Land-cover classes 1-2 as absence, 3 (target cover) as presence, 5-30 as absence
DEFAULT_LANDCOVER_RULES: list[ReclassRule] = [
    (-1, 2, 0),
    (2, 3, 1),
    (4, 30, 0),
]

_PATH_FIELDS = ("boundary", "landcover", "output_dir")
_PATH_LIST_FIELDS = ("current_covariates", "future_covariates")


@dataclass
class WorkflowConfig:
    """Inputs and settings for one train-and-project run."""

    boundary: Path
    landcover: Path
    current_covariates: list[Path]
    output_dir: Path = Path("output")
    future_covariates: list[Path] = field(default_factory=list)
    boundary_layer: Optional[str] = None
    band_names: Optional[list[str]] = None
    predictors: Optional[list[str]] = None
    landcover_rules: list[ReclassRule] = field(default_factory=lambda: list(DEFAULT_LANDCOVER_RULES))
    unmatched: str = "nodata"
    samples_per_class: int = DEFAULT_SAMPLES_PER_CLASS
    sample_year: Optional[int] = None
    train_fraction: float = DEFAULT_TRAIN_FRACTION
    seed: int = DEFAULT_SEED
    cutoff: Optional[float] = None
    cutoff_method: str = DEFAULT_CUTOFF_METHOD
    boosting: BoostingConfig = field(default_factory=BoostingConfig)

    def __post_init__(self):
        for name in _PATH_FIELDS:
            setattr(self, name, Path(getattr(self, name)))
        for name in _PATH_LIST_FIELDS:
            value = getattr(self, name)
            if isinstance(value, (str, Path)):
                value = [value]
            setattr(self, name, [Path(p) for p in value])
        if not self.current_covariates:
            raise ValueError("At least one current covariate raster is required")
        self.landcover_rules = [tuple(rule) for rule in self.landcover_rules]
        if isinstance(self.boosting, dict):
            self.boosting = BoostingConfig(**self.boosting)

    def resolve(self, base_dir: Path) -> "WorkflowConfig":
        """Make relative paths absolute with respect to `base_dir`."""
        def _abs(p: Path) -> Path:
            return p if p.is_absolute() else base_dir / p

        for name in _PATH_FIELDS:
            setattr(self, name, _abs(getattr(self, name)))
        for name in _PATH_LIST_FIELDS:
            setattr(self, name, [_abs(p) for p in getattr(self, name)])
        return self


def load_config(path: str | Path) -> WorkflowConfig:
    """Load a WorkflowConfig from a JSON file."""
    path = Path(path)
    if not path.exists():
        raise IOError(f"Config file not found: {path}")
    with open(path) as f:
        raw = json.load(f)

    known = {f.name for f in fields(WorkflowConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {unknown}")

    return WorkflowConfig(**raw).resolve(path.parent.resolve())
