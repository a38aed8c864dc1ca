"""
Species Distribution Modelling with Boosted Regression Trees

This package samples presence/absence points from land cover, extracts
climate covariates, fits a boosted regression tree and projects habitat
suitability onto current and future climate rasters.
"""

from .boundary import Boundary, load_boundary
from .raster import (
    Grid, RasterStack, load_stack, load_stacks, stack_layers, write_stack,
    crop, mask, resample, reclassify, to_dataframe,
)
from .sampling import stratified_sample, occurrences_from_records
from .extract import extract_covariates, split_table
from .model import BoostingConfig, DistributionModel
from .predict import predict_raster, classify, project, range_change, ScenarioProjection
from .evaluate import Evaluation, evaluate, roc_points, accuracy_curve, select_cutoff
from .errors import GeometryError, TrainingError, ExtractionError
from .config import WorkflowConfig, load_config
from .pipeline import run_workflow, project_scenario

__all__ = [
    'Boundary',
    'load_boundary',
    'Grid',
    'RasterStack',
    'load_stack',
    'load_stacks',
    'stack_layers',
    'write_stack',
    'crop',
    'mask',
    'resample',
    'reclassify',
    'to_dataframe',
    'stratified_sample',
    'occurrences_from_records',
    'extract_covariates',
    'split_table',
    'BoostingConfig',
    'DistributionModel',
    'predict_raster',
    'classify',
    'project',
    'range_change',
    'ScenarioProjection',
    'Evaluation',
    'evaluate',
    'roc_points',
    'accuracy_curve',
    'select_cutoff',
    'GeometryError',
    'TrainingError',
    'ExtractionError',
    'WorkflowConfig',
    'load_config',
    'run_workflow',
    'project_scenario',
]
