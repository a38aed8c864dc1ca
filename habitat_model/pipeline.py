"""
Main pipeline: sample, extract, train, predict, evaluate, project.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd

from .boundary import Boundary, load_boundary
from .config import WorkflowConfig
from .evaluate import Evaluation, evaluate
from .extract import extract_covariates, split_table
from .model import DistributionModel
from .predict import ScenarioProjection, change_summary, classify, predict_raster, project
from .raster import RasterStack, crop, load_stack, load_stacks, mask, reclassify, write_stack
from .sampling import stratified_sample

logger = logging.getLogger(__name__)

MODEL_FILENAME = "model.joblib"


@dataclass
class WorkflowResult:
    """Container for the outputs of one run."""

    model: DistributionModel
    evaluation: Evaluation
    n_points: int
    n_train: int
    n_test: int
    current: RasterStack
    current_presence: RasterStack
    projection: Optional[ScenarioProjection] = None

    def summary(self) -> dict:
        summary = {
            "n_points": self.n_points,
            "n_train": self.n_train,
            "n_test": self.n_test,
            "training": self.model.train_stats,
            "evaluation": self.evaluation.summary(),
            "importance": self.model.importance.round(3).to_dict(),
        }
        if self.projection is not None and self.projection.change is not None:
            summary["range_change"] = change_summary(self.projection.change)
        return summary

    def save(self, output_dir: Path) -> dict[str, Path]:
        """Save model, rasters, tables and summary to `output_dir`."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = {}

        paths["model"] = output_dir / MODEL_FILENAME
        self.model.save(paths["model"])

        paths["probability_current"] = write_stack(self.current, output_dir / "probability_current.tif")
        paths["presence_current"] = write_stack(self.current_presence, output_dir / "presence_current.tif")

        if self.projection is not None:
            paths["probability_future"] = write_stack(self.projection.future, output_dir / "probability_future.tif")
            if self.projection.change is not None:
                paths["presence_future"] = write_stack(
                    self.projection.future_presence, output_dir / "presence_future.tif"
                )
                paths["range_change"] = write_stack(self.projection.change, output_dir / "range_change.tif")

        paths["roc"] = output_dir / "roc.csv"
        self.evaluation.roc.to_csv(paths["roc"], index=False)
        paths["accuracy"] = output_dir / "accuracy_curve.csv"
        self.evaluation.accuracy.to_csv(paths["accuracy"], index=False)
        paths["importance"] = output_dir / "importance.csv"
        self.model.importance.rename_axis("predictor").to_csv(paths["importance"])

        paths["summary"] = output_dir / "summary.json"
        with open(paths["summary"], "w") as f:
            json.dump(self.summary(), f, indent=2)
        logger.info(f"Saved results summary to {paths['summary']}")

        return paths


def clip_to_boundary(stack: RasterStack, boundary: Boundary) -> RasterStack:
    """Crop a stack to a boundary's extent and mask cells outside it."""
    return mask(crop(stack, boundary), boundary)


def build_training_table(config: WorkflowConfig, boundary: Boundary, covariates: RasterStack) -> pd.DataFrame:
    """Sample labelled points from land cover and extract covariates at them."""
    landcover = clip_to_boundary(load_stack(config.landcover), boundary)
    binary = reclassify(landcover, config.landcover_rules, unmatched=config.unmatched)
    points = stratified_sample(
        binary, n_per_class=config.samples_per_class, seed=config.seed, year=config.sample_year
    )
    return extract_covariates(points, covariates)


def run_workflow(config: WorkflowConfig, save: bool = True) -> WorkflowResult:
    """
    Run the full workflow for one configuration.

    Args:
        config: Workflow configuration
        save: Write outputs to `config.output_dir`

    Returns:
        WorkflowResult with the fitted model, evaluation and prediction rasters
    """
    logger.info("=" * 60)
    logger.info("Species distribution workflow")
    logger.info("=" * 60)

    logger.info("[1/7] Loading boundary...")
    boundary = load_boundary(config.boundary, layer=config.boundary_layer)

    logger.info("[2/7] Loading current covariates...")
    current = clip_to_boundary(load_stacks(config.current_covariates, config.band_names), boundary)
    logger.info(f"  Bands: {list(current.band_names)}")

    logger.info("[3/7] Sampling occurrences and extracting covariates...")
    table = build_training_table(config, boundary, current)
    train, test = split_table(table, train_fraction=config.train_fraction, seed=config.seed)

    logger.info("[4/7] Training model...")
    predictors = config.predictors or list(current.band_names)
    model = DistributionModel(config.boosting)
    model.train(train, predictors)
    for name, score in model.importance.items():
        logger.info(f"  {name}: {score:.1f}")

    logger.info("[5/7] Evaluating on held-out rows...")
    evaluation = evaluate(model, test, cutoff=config.cutoff, method=config.cutoff_method)

    projection = None
    if config.future_covariates:
        logger.info("[6/7] Projecting current and future scenarios...")
        future = clip_to_boundary(load_stacks(config.future_covariates, config.band_names), boundary)
        projection = project(model, current, future, cutoff=evaluation.cutoff)
        current_prediction = projection.current
        current_presence = projection.current_presence
    else:
        logger.info("[6/7] Predicting current scenario...")
        current_prediction = predict_raster(model, current)
        current_presence = classify(current_prediction, evaluation.cutoff)

    result = WorkflowResult(
        model=model,
        evaluation=evaluation,
        n_points=len(table),
        n_train=len(train),
        n_test=len(test),
        current=current_prediction,
        current_presence=current_presence,
        projection=projection,
    )

    if save:
        logger.info("[7/7] Saving outputs...")
        result.save(config.output_dir)
    else:
        logger.info("[7/7] Skipping output (save=False)")

    logger.info("=" * 60)
    logger.info("COMPLETE")
    logger.info("=" * 60)
    return result


def project_scenario(
    model_path: str | Path,
    covariate_paths: list[str | Path],
    output_dir: str | Path,
    boundary_path: Optional[str | Path] = None,
    cutoff: Optional[float] = None,
    band_names: Optional[list[str]] = None,
    name: str = "future",
) -> dict[str, Path]:
    """
    Apply a persisted model to another covariate scenario.

    Args:
        model_path: Model saved by a previous run
        covariate_paths: Rasters holding the scenario covariates
        output_dir: Directory for the output rasters
        boundary_path: Optional boundary to crop and mask the covariates to
        cutoff: Optional cutoff; when given a presence raster is also written
        band_names: Names for the loaded bands (must match the model predictors)
        name: Suffix for the output file names

    Returns:
        Mapping of output kind to written path
    """
    model = DistributionModel.load(model_path)
    stack = load_stacks(covariate_paths, band_names)
    if boundary_path is not None:
        stack = clip_to_boundary(stack, load_boundary(boundary_path))

    prediction = predict_raster(model, stack)
    output_dir = Path(output_dir)
    paths = {"probability": write_stack(prediction, output_dir / f"probability_{name}.tif")}
    if cutoff is not None:
        paths["presence"] = write_stack(classify(prediction, cutoff), output_dir / f"presence_{name}.tif")
    return paths
