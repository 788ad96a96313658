#!/usr/bin/env python3
"""
Recipe: Rangeland Biomass

Reproduces the rangeland biomass products from DPM field data:

1. Biomass regression against the baseline-year Sentinel-2 composite
2. Validation metrics and variable importance
3. Baseline biomass map
4. Yearly mean biomass series

Usage:
    python rangeland_biomass_recipe.py [OPTIONS]

Examples:
    # Run with the component configuration
    python rangeland_biomass_recipe.py

    # Only validate that the input data is in place
    python rangeland_biomass_recipe.py --check-only

Author: Rangeland Biomass Team
"""

import argparse
import sys
import time
from pathlib import Path
from typing import List, Optional

# Add repo root to path for absolute imports
sys.path.insert(0, str(Path(__file__).parent))

from shared_utils.central_data_paths_constants import (
    BIOMASS_MAPS_DIR, BOUNDARIES_FILE, FIELD_DATA_FILE, FIGURES_DIR, MODELS_DIR, TABLES_DIR
)
from shared_utils.logging_utils import setup_logging

from rangeland_biomass.scripts.run_full_pipeline import main as run_biomass_pipeline_main


class RangelandBiomassRecipe:
    """
    Recipe for rangeland biomass reproduction.

    Checks the input data, prepares the output tree and runs the component
    pipeline.
    """

    def __init__(self, log_level: str = "INFO"):
        self.logger = setup_logging(
            level=log_level,
            component_name='rangeland_recipe'
        )
        self.stage_results = {}
        self.logger.info("Initialized Rangeland Biomass Recipe")

    def validate_prerequisites(self) -> bool:
        """
        Validate that required input data exists.

        Returns:
            bool: True if prerequisites are met
        """
        self.logger.info("Validating prerequisites for rangeland biomass...")

        ok = True
        for path, description in [(FIELD_DATA_FILE, "DPM field data"),
                                  (BOUNDARIES_FILE, "Country boundaries")]:
            if path.exists():
                self.logger.info(f"{description} found: {path}")
            else:
                self.logger.error(f"{description} not found: {path}")
                ok = False
        return ok

    def create_output_structure(self) -> None:
        """Create necessary output directories."""
        self.logger.info("Creating output directory structure...")
        for directory in [BIOMASS_MAPS_DIR, TABLES_DIR, FIGURES_DIR, MODELS_DIR]:
            directory.mkdir(parents=True, exist_ok=True)

    def run_pipeline(self, argv: Optional[List[str]] = None) -> bool:
        """
        Run the rangeland biomass pipeline.

        Args:
            argv: Arguments forwarded to the component script

        Returns:
            bool: True if successful
        """
        stage_name = "Rangeland Biomass Pipeline"
        self.logger.info(f"\n{'='*60}")
        self.logger.info(f"Starting {stage_name}")
        self.logger.info(f"{'='*60}")

        stage_start = time.time()
        result = run_biomass_pipeline_main(argv or [])
        stage_time = time.time() - stage_start

        success = result == 0
        self.stage_results[stage_name] = {
            'success': success,
            'duration_minutes': stage_time / 60,
            'result': result
        }

        if success:
            self.logger.info(f"{stage_name} completed successfully in {stage_time/60:.2f} minutes")
        else:
            self.logger.error(f"{stage_name} failed after {stage_time/60:.2f} minutes (exit code {result})")
        return success


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rangeland biomass reproduction recipe")
    parser.add_argument('--config', type=str, default=None, help='Path to configuration file')
    parser.add_argument('--check-only', action='store_true', help='Only validate prerequisites')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level')
    return parser.parse_args()


def main():
    """Main entry point for the rangeland biomass recipe."""
    args = parse_arguments()
    start_time = time.time()

    recipe = RangelandBiomassRecipe(log_level=args.log_level)

    if not recipe.validate_prerequisites():
        recipe.logger.error("Prerequisites validation failed")
        sys.exit(1)
    if args.check_only:
        return

    recipe.create_output_structure()

    forwarded = ['--log-level', args.log_level]
    if args.config:
        forwarded += ['--config', args.config]

    if not recipe.run_pipeline(forwarded):
        recipe.logger.error("Rangeland biomass pipeline failed")
        sys.exit(1)

    elapsed_time = time.time() - start_time
    recipe.logger.info(f"Rangeland biomass recipe completed successfully in {elapsed_time/60:.2f} minutes!")


if __name__ == "__main__":
    main()
