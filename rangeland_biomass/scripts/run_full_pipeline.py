#!/usr/bin/env python3
"""
Rangeland Biomass Full Pipeline

Runs the complete rangeland biomass workflow:
1. DPM field heights -> biomass targets
2. Baseline-year Sentinel-2 median composite
3. Random forest fit and validation (RMSE, MAE, R²)
4. Baseline biomass map
5. Yearly mean biomass series with per-year maps

Usage:
    python -m rangeland_biomass.scripts.run_full_pipeline [OPTIONS]

Examples:
    # Run with the component config
    python -m rangeland_biomass.scripts.run_full_pipeline

    # Custom config, shorter series, verbose logging
    python -m rangeland_biomass.scripts.run_full_pipeline --config my_config.yaml \\
        --years 2021 2023 --log-level DEBUG

Author: Rangeland Biomass Team
"""

import argparse
import sys
from typing import List, Optional

from shared_utils import load_config

from rangeland_biomass.core.exceptions import RangelandBiomassError
from rangeland_biomass.core.pipeline import COMPONENT_NAME, BiomassRegressionPipeline
from rangeland_biomass.core.run_config import RunConfig
from rangeland_biomass.core.timeseries import STATUS_COMPUTED


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Rangeland biomass regression from DPM field data and Sentinel-2",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Outputs (under the results directory):
  biomass_maps/biomass_rf_s2_ndvi_<region>_<baseline year>.tif
  biomass_maps/biomass_rf_<year>.tif            one per computed year
  tables/DPM_Biomass_Field_Data.shp
  tables/RF_Variable_Importance.csv
  tables/RF_Validation_<baseline year>.csv
  tables/biomass_timeseries_<region>.csv
"""
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Path to configuration file',
        default=None
    )
    parser.add_argument(
        '--region',
        type=str,
        help='Region name to resolve in the boundary file'
    )
    parser.add_argument(
        '--baseline-year',
        type=int,
        help='Year used for training and the baseline map'
    )
    parser.add_argument(
        '--years',
        type=int,
        nargs=2,
        metavar=('START', 'END'),
        help='Inclusive time-series year range'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level'
    )
    parser.add_argument(
        '--no-export',
        action='store_true',
        help='Skip raster, table and figure exports'
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    try:
        config = load_config(args.config, component_name=COMPONENT_NAME)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: Failed to load configuration: {e}")
        return 1

    if args.log_level:
        config.setdefault('logging', {})['level'] = args.log_level
    if args.no_export:
        config.setdefault('export', {})['enabled'] = False

    try:
        run_config = RunConfig.from_config(config).with_overrides(
            region_name=args.region,
            baseline_year=args.baseline_year,
            series_years=tuple(args.years) if args.years else None
        )
        pipeline = BiomassRegressionPipeline(config=config, run_config=run_config)
    except (ValueError, KeyError) as e:
        print(f"ERROR: Failed to initialize pipeline: {e}")
        return 1

    try:
        result = pipeline.run_full_pipeline()
    except KeyboardInterrupt:
        pipeline.logger.error("Pipeline interrupted by user")
        return 1
    except RangelandBiomassError as e:
        pipeline.logger.error(f"Pipeline aborted: {e}")
        return 1

    computed = sum(1 for r in result.yearly_results if r.status == STATUS_COMPUTED)
    pipeline.logger.info(f"RMSE {result.validation.rmse:.2f} kg/ha, MAE {result.validation.mae:.2f} kg/ha, "
                         f"R² {result.validation.r2:.4f}; {computed}/{len(result.yearly_results)} years computed")

    if result.export_failures:
        pipeline.logger.warning(f"{len(result.export_failures)} exports failed")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
