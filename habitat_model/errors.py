"""
Exceptions raised by the habitat modelling workflow.

File problems are reported with the built-in IOError (OSError) so that
callers can catch them the same way as any other failed read or write.
"""


class HabitatModelError(Exception):
    """Base class for workflow errors."""


class GeometryError(HabitatModelError):
    """Mismatched CRS, grids or non-overlapping extents."""


class TrainingError(HabitatModelError):
    """Training data is too small or degenerate to fit a model."""


class ExtractionError(HabitatModelError):
    """
    Covariate extraction failure.

    Points outside a raster are currently dropped and logged rather than
    raising this.
    """
