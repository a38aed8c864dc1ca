"""
Command-line interface for the habitat model workflow.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import load_config
from .errors import HabitatModelError
from .pipeline import project_scenario, run_workflow

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def cmd_run(args: argparse.Namespace) -> None:
    config = load_config(args.config)
    if args.output_dir:
        config.output_dir = Path(args.output_dir)
    result = run_workflow(config)
    print(json.dumps(result.evaluation.summary(), indent=2))


def cmd_project(args: argparse.Namespace) -> None:
    paths = project_scenario(
        model_path=args.model,
        covariate_paths=args.covariates,
        output_dir=args.output_dir,
        boundary_path=args.boundary,
        cutoff=args.cutoff,
        band_names=args.band_names,
        name=args.name,
    )
    for kind, path in paths.items():
        print(f"{kind}: {path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Train and project a species distribution model")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Sample, train, evaluate and predict from a JSON config")
    run.add_argument("config", help="Path to the workflow JSON config")
    run.add_argument("--output-dir", "-o", default=None, help="Override the config output directory")
    run.set_defaults(func=cmd_run)

    proj = sub.add_parser("project", help="Apply a saved model to another covariate scenario")
    proj.add_argument("--model", "-m", required=True, help="Model saved by a previous run")
    proj.add_argument("--covariates", "-c", nargs="+", required=True, help="Covariate rasters")
    proj.add_argument("--output-dir", "-o", default="./output", help="Output directory")
    proj.add_argument("--boundary", "-b", default=None, help="Boundary to crop and mask to")
    proj.add_argument("--cutoff", type=float, default=None, help="Cutoff for a presence raster")
    proj.add_argument("--band-names", nargs="+", default=None, help="Names for the covariate bands")
    proj.add_argument("--name", default="future", help="Suffix for output file names")
    proj.set_defaults(func=cmd_project)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        args.func(args)
    except (OSError, ValueError, KeyError, HabitatModelError) as e:
        logger.error(f"{args.command} failed: {type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
