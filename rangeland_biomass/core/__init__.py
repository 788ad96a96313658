"""
Core rangeland biomass modules.

This package contains the processing logic of the biomass regression:
- dpm_biomass: DPM height to biomass transform and field data loading
- composite: Sentinel-2 median composites and the NO_COMPOSITE sentinel
- sampling: Composite sampling at field points and block aggregation
- splitting: Deterministic train/test partition
- regression: Random forest fit, prediction and importances
- evaluation: RMSE, MAE and R² validation
- timeseries: Per-year prediction and area means
- pipeline: End-to-end orchestration
- adapters, reporting: Region, imagery, export and report collaborators

Author: Rangeland Biomass Team
"""

from .exceptions import (
    RangelandBiomassError,
    InvalidMeasurement,
    RegionNotFound,
    InsufficientTrainingData,
    DegenerateValidationSet,
    ArchiveQueryFailure,
    ExportFailure
)
from .run_config import RunConfig
from .interfaces import RasterImage, RegionSource, ImageArchive, ExportSink, ReportSink
from .dpm_biomass import dpm_height_to_biomass, add_biomass_column, load_field_observations
from .composite import (
    CompositeBuilder,
    NO_COMPOSITE,
    PREDICTOR_BANDS,
    SPECTRAL_BANDS,
    compute_ndvi,
    is_no_composite
)
from .sampling import extract_samples, resample_to_scale
from .splitting import random_column, split_train_test
from .regression import FittedModel, RegressionEngine
from .evaluation import ValidationReport, compute_regression_metrics, evaluate_model
from .timeseries import TimeSeriesRunner, YearlyResult, area_mean_biomass
from .adapters import (
    BoundaryFileRegionSource,
    InMemoryImageArchive,
    LocalExportSink,
    StacImageArchive
)
from .reporting import FigureReportSink, LoggingReportSink
from .pipeline import BiomassRegressionPipeline, RunResult
