"""
Main execution pipeline for rangeland biomass regression.

This module orchestrates the complete workflow:
- Converting DPM field heights to biomass targets
- Building the baseline-year Sentinel-2 median composite
- Sampling the composite at the field points and splitting train/test
- Fitting and validating the random forest
- Predicting the baseline biomass map and the multi-year mean series
- Exporting rasters, tables and figures

External collaborators (region source, imagery archive, export and report
sinks) are injected; defaults are built from the configuration.

Author: Rangeland Biomass Team
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import geopandas as gpd
import pandas as pd
import xarray as xr

from shared_utils import (
    get_config_value, load_config, log_memory_usage, log_pipeline_end,
    log_pipeline_start, log_section, setup_logging, timer
)
from shared_utils.central_data_paths_constants import (
    BOUNDARIES_FILE, FIELD_DATA_FILE, FIGURES_DIR, FITTED_MODEL_FILE, RESULTS_DIR
)

from .adapters import BoundaryFileRegionSource, LocalExportSink, StacImageArchive
from .composite import CompositeBuilder, is_no_composite
from .dpm_biomass import add_biomass_column, load_field_observations
from .evaluation import ValidationReport, evaluate_model
from .exceptions import ArchiveQueryFailure, ExportFailure, InsufficientTrainingData
from .interfaces import ExportSink, ImageArchive, RegionSource, ReportSink
from .regression import FittedModel, RegressionEngine
from .reporting import FigureReportSink, LoggingReportSink
from .run_config import RunConfig
from .sampling import extract_samples
from .splitting import split_train_test
from .timeseries import TimeSeriesRunner, YearlyResult, results_to_frame, retry_policy

COMPONENT_NAME = 'rangeland_biomass'


@dataclass
class RunResult:
    """Everything one pipeline run produced."""
    run_config: RunConfig
    observations: gpd.GeoDataFrame
    samples: gpd.GeoDataFrame
    train: pd.DataFrame
    test: pd.DataFrame
    model: FittedModel
    validation: ValidationReport
    importances: Dict[str, float]
    baseline_prediction: xr.DataArray
    yearly_results: List[YearlyResult]
    export_failures: List[str] = field(default_factory=list)
    elapsed_time: float = 0.0

    def timeseries_table(self) -> pd.DataFrame:
        return results_to_frame(self.yearly_results)


class BiomassRegressionPipeline:
    """
    Rangeland biomass regression pipeline.

    Fits a random forest between DPM-derived biomass and a baseline-year
    Sentinel-2 composite, validates it, maps the baseline year and projects
    the model over a series of years.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None,
                 config: Optional[Dict[str, Any]] = None,
                 run_config: Optional[RunConfig] = None,
                 region_source: Optional[RegionSource] = None,
                 archive: Optional[ImageArchive] = None,
                 export_sink: Optional[ExportSink] = None,
                 report_sink: Optional[ReportSink] = None,
                 observations: Optional[gpd.GeoDataFrame] = None,
                 model_path: Optional[Union[str, Path]] = None):
        """
        Initialize the pipeline.

        Args:
            config_path: Path to a configuration file (component config.yaml by default)
            config: Already-loaded configuration dictionary; takes precedence over config_path
            run_config: Run parameters; defaults to RunConfig.from_config(config)
            region_source: Region polygon provider (boundary file by default)
            archive: Imagery archive (STAC catalog by default)
            export_sink: Export destination (local results directory by default,
                None when export.enabled is false)
            report_sink: Report destination (figures when export.figures is true)
            observations: Field observations; read from the DPM field data file if omitted
            model_path: Where to save the fitted model (FITTED_MODEL_FILE when
                export.save_model is true)
        """
        self.config = config if config is not None else load_config(config_path, component_name=COMPONENT_NAME)

        self.logger = setup_logging(
            level=get_config_value(self.config, 'logging.level', 'INFO'),
            component_name='pipeline',
            log_file=get_config_value(self.config, 'logging.log_file')
        )

        self.run_config = run_config or RunConfig.from_config(self.config)
        self.region_crs = get_config_value(self.config, 'region.crs')
        export_enabled = get_config_value(self.config, 'export.enabled', True)

        self.region_source = region_source or self._default_region_source()
        self.archive = archive or self._default_archive()
        self.export_sink = export_sink or (self._default_export_sink() if export_enabled else None)
        self.report_sink = report_sink or self._default_report_sink(export_enabled)
        self.observations = observations

        if model_path is None and export_enabled and get_config_value(self.config, 'export.save_model', False):
            model_path = FITTED_MODEL_FILE
        self.model_path = Path(model_path) if model_path is not None else None

        self.builder = CompositeBuilder(
            self.archive,
            cloud_ceiling_pct=self.run_config.cloud_ceiling_pct,
            reflectance_scale=self.run_config.reflectance_scale
        )
        self.engine = RegressionEngine.from_run_config(self.run_config)
        self.export_failures: List[str] = []

        self.logger.info("Initialized BiomassRegressionPipeline")

    def _default_region_source(self) -> RegionSource:
        return BoundaryFileRegionSource(
            get_config_value(self.config, 'region.boundaries_file', BOUNDARIES_FILE),
            name_column=get_config_value(self.config, 'region.name_column', 'country_na'),
            crs=self.region_crs
        )

    def _default_archive(self) -> ImageArchive:
        if self.region_crs is None:
            raise ValueError("region.crs must be configured to query the STAC archive")
        return StacImageArchive(
            get_config_value(self.config, 'data.stac_url'),
            crs=self.region_crs,
            resolution=get_config_value(self.config, 'data.resolution_m', 10),
            collection=get_config_value(self.config, 'data.collection', 'sentinel-2-l2a'),
            chunk_size=get_config_value(self.config, 'processing.chunk_size')
        )

    def _default_export_sink(self) -> ExportSink:
        return LocalExportSink(get_config_value(self.config, 'export.output_dir', RESULTS_DIR))

    def _default_report_sink(self, export_enabled: bool) -> ReportSink:
        if export_enabled and get_config_value(self.config, 'export.figures', False):
            return FigureReportSink(get_config_value(self.config, 'export.figures_dir', FIGURES_DIR))
        return LoggingReportSink()

    @property
    def region_slug(self) -> str:
        return self.run_config.region_name.lower().replace(' ', '_')

    def run_full_pipeline(self, years: Optional[List[int]] = None) -> RunResult:
        """
        Execute the complete workflow.

        Args:
            years: Time-series years (defaults to the configured inclusive range)

        Returns:
            RunResult: All products of the run

        Raises:
            RegionNotFound: If the configured region does not resolve
            InsufficientTrainingData: If the baseline year has no imagery or no
                observation falls inside the composite
            DegenerateValidationSet: If the test set has no variance
        """
        start_time = time.time()
        self.export_failures = []
        log_pipeline_start(self.logger, "Rangeland Biomass Regression", self.run_config.summary())

        try:
            log_section(self.logger, "Region and field data")
            region = self.region_source.resolve(self.run_config.region_name)
            observations = self.prepare_observations()

            log_section(self.logger, f"Baseline composite {self.run_config.baseline_year}")
            with timer(self.logger, "Baseline composite"):
                composite = retry_policy(self.run_config, ArchiveQueryFailure)(
                    self.builder.build_for_year, region, self.run_config.baseline_year
                )
            if is_no_composite(composite):
                raise InsufficientTrainingData(
                    0, f"No qualifying imagery for baseline year {self.run_config.baseline_year}"
                )
            log_memory_usage(self.logger, "After baseline composite")

            log_section(self.logger, "Training table")
            samples = extract_samples(composite, observations, self.run_config.sample_scale_m)
            train, test = split_train_test(samples, self.run_config.train_fraction, self.run_config.split_seed)

            log_section(self.logger, "Random forest")
            with timer(self.logger, "Random forest fit"):
                model = self.engine.fit(train)
            validation = evaluate_model(model, test)
            importances = model.importances()

            log_section(self.logger, "Baseline biomass map")
            with timer(self.logger, "Baseline prediction"):
                baseline_prediction = model.predict_raster(composite)
            log_memory_usage(self.logger, "After baseline prediction")

            log_section(self.logger, "Time series")
            runner = TimeSeriesRunner(self.builder, model, self.run_config, self.export_sink)
            yearly_results = runner.run(region, years)

            result = RunResult(
                run_config=self.run_config,
                observations=observations,
                samples=samples,
                train=train,
                test=test,
                model=model,
                validation=validation,
                importances=importances,
                baseline_prediction=baseline_prediction,
                yearly_results=yearly_results,
            )

            log_section(self.logger, "Exports and report")
            self.export_results(result)
            self.report_results(result)

        except Exception as e:
            self.logger.error(f"Pipeline failed: {e}")
            log_pipeline_end(self.logger, "Rangeland Biomass Regression", False, time.time() - start_time)
            raise

        result.export_failures = list(self.export_failures)
        result.elapsed_time = time.time() - start_time
        log_pipeline_end(self.logger, "Rangeland Biomass Regression", True, result.elapsed_time)
        return result

    def prepare_observations(self) -> gpd.GeoDataFrame:
        """Load field observations if needed and derive the biomass target."""
        observations = self.observations
        if observations is None:
            observations = load_field_observations(
                get_config_value(self.config, 'data.field_data_file', FIELD_DATA_FILE),
                height_column=self.run_config.height_column,
                crs=self.region_crs
            )
        return add_biomass_column(observations, self.run_config.height_column)

    def export_results(self, result: RunResult) -> None:
        """Write the baseline map, field data, importance and series tables, and the model."""
        if self.model_path is not None:
            result.model.save(self.model_path)

        if self.export_sink is None:
            self.logger.info("Export disabled")
            return

        baseline_year = self.run_config.baseline_year
        field_format = get_config_value(self.config, 'export.field_data_format', 'shp')

        self._export(self.export_sink.write_raster, result.baseline_prediction,
                     f"biomass_rf_s2_ndvi_{self.region_slug}_{baseline_year}",
                     scale_m=self.run_config.export_scale_m)
        self._export(self.export_sink.write_table, result.observations,
                     f"DPM_Biomass_Field_Data.{field_format}")
        self._export(self.export_sink.write_table, result.model.importance_table(),
                     "RF_Variable_Importance.csv")
        self._export(self.export_sink.write_table, result.validation.table,
                     f"RF_Validation_{baseline_year}.csv")
        self._export(self.export_sink.write_table, result.timeseries_table(),
                     f"biomass_timeseries_{self.region_slug}.csv")

        for yearly in result.yearly_results:
            if yearly.export_error:
                self.export_failures.append(yearly.export_error)

    def _export(self, write, payload, destination: str, **kwargs) -> None:
        try:
            retry_policy(self.run_config, ExportFailure)(write, payload, destination, **kwargs)
        except ExportFailure as e:
            self.logger.error(f"Export of {destination} failed: {e}")
            self.export_failures.append(str(e))
        except Exception as e:
            self.logger.error(f"Export of {destination} failed with an unexpected error: {e}")
            self.export_failures.append(f"{type(e).__name__}: {e}")

    def report_results(self, result: RunResult) -> None:
        """Push metrics and the three charts to the report sink."""
        baseline_year = self.run_config.baseline_year

        for name, value in result.validation.metrics().items():
            self.report_sink.report_metric(name, value)

        table = result.validation.table
        self.report_sink.report_series(
            'observed_vs_predicted',
            list(zip(table['observed'], table['predicted'])),
            kind='scatter',
            title=f'Observed vs Predicted Biomass ({baseline_year})',
            xlabel='Observed Biomass (kg/ha)',
            ylabel='Predicted Biomass (kg/ha)'
        )
        importance = result.model.importance_table()
        self.report_sink.report_series(
            'variable_importance',
            list(zip(importance['variable'], importance['importance'])),
            kind='bar',
            title='Random Forest Variable Importance',
            xlabel='Predictor',
            ylabel='Importance'
        )
        self.report_sink.report_series(
            'mean_biomass_timeseries',
            [(r.year, r.mean_biomass) for r in result.yearly_results],
            kind='line',
            title=f'Mean Predicted Biomass ({self.run_config.region_name})',
            xlabel='Year',
            ylabel='Mean biomass (kg/ha)'
        )
