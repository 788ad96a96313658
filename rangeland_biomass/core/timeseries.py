"""
Multi-year biomass time series.

Applies the fitted model to each year's composite and reduces the prediction
to one area-wide mean. Years are independent of one another and run in a
bounded thread pool; a year without qualifying imagery is skipped and a year
whose archive queries keep failing is recorded as failed, neither of which
affects the other years.

Author: Rangeland Biomass Team
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd
import xarray as xr
from shapely.geometry.base import BaseGeometry
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from tqdm import tqdm

from shared_utils import get_logger

from .composite import CompositeBuilder, is_no_composite
from .exceptions import ArchiveQueryFailure, ExportFailure
from .interfaces import ExportSink
from .regression import FittedModel
from .run_config import RunConfig
from .sampling import resample_to_scale

STATUS_COMPUTED = 'computed'
STATUS_SKIPPED = 'skipped'
STATUS_FAILED = 'failed'


@dataclass
class YearlyResult:
    """Outcome of one year of the series; mean_biomass is None unless computed."""
    year: int
    mean_biomass: Optional[float] = None
    status: str = STATUS_COMPUTED
    n_images: int = 0
    error: Optional[str] = None
    export_error: Optional[str] = None


def retry_policy(run_config: RunConfig, exception_type) -> Retrying:
    """Bounded exponential backoff on one exception type; the last error is re-raised."""
    return Retrying(
        stop=stop_after_attempt(run_config.retry_attempts),
        wait=wait_exponential(min=run_config.retry_min_wait, max=run_config.retry_max_wait),
        retry=retry_if_exception_type(exception_type),
        reraise=True
    )


def yearly_export_name(year: int) -> str:
    return f"biomass_rf_{year}"


def area_mean_biomass(prediction: xr.DataArray, scale_m: float) -> Optional[float]:
    """
    Mean of all defined predicted pixels after aggregation to scale_m.

    Returns:
        float or None: None when no pixel is defined
    """
    coarse = resample_to_scale(prediction, scale_m)
    values = np.asarray(coarse.values, dtype=float)
    defined = values[~np.isnan(values)]
    if defined.size == 0:
        return None
    return float(defined.mean())


def results_to_frame(results: Iterable[YearlyResult]) -> pd.DataFrame:
    """Yearly results as a table, one row per year."""
    columns = ['year', 'mean_biomass', 'status', 'n_images', 'error', 'export_error']
    return pd.DataFrame([asdict(r) for r in results], columns=columns)


class TimeSeriesRunner:
    """
    Per-year composite, prediction and area mean.

    The fitted model is shared read-only by every worker thread.
    """

    def __init__(self, builder: CompositeBuilder, model: FittedModel,
                 run_config: Optional[RunConfig] = None,
                 export_sink: Optional[ExportSink] = None):
        """
        Initialize the runner.

        Args:
            builder: Composite builder configured with the baseline cloud ceiling
            model: Fitted biomass model
            run_config: Run parameters (mean scale, export scale, workers, retries)
            export_sink: Optional sink for the per-year prediction rasters
        """
        self.builder = builder
        self.model = model
        self.config = run_config or RunConfig()
        self.export_sink = export_sink
        self.logger = get_logger('timeseries')

    def run(self, region: BaseGeometry, years: Optional[Iterable[int]] = None) -> List[YearlyResult]:
        """
        Run the series over an inclusive range of years.

        Args:
            region: Region geometry in the archive CRS
            years: Years to process (defaults to the configured series_years range)

        Returns:
            list: One YearlyResult per year, sorted by year
        """
        years = sorted(set(years if years is not None else self.config.years))
        if not years:
            return []

        self.logger.info(f"Running biomass time series for {years[0]}-{years[-1]} "
                         f"({len(years)} years, {self.config.max_workers} workers)")

        results = []
        with ThreadPoolExecutor(max_workers=min(self.config.max_workers, len(years))) as executor:
            futures = {executor.submit(self.process_year, region, year): year for year in years}

            for future in tqdm(as_completed(futures), total=len(futures), desc="Processing years"):
                results.append(future.result())

        results.sort(key=lambda r: r.year)
        self.log_summary(results)
        return results

    def process_year(self, region: BaseGeometry, year: int) -> YearlyResult:
        """
        Compute one year. Archive failures and unexpected errors end up as a
        failed result rather than propagating.
        """
        try:
            composite = retry_policy(self.config, ArchiveQueryFailure)(self.builder.build_for_year, region, year)
        except ArchiveQueryFailure as e:
            self.logger.error(f"Year {year} failed after {self.config.retry_attempts} attempts: {e}")
            return YearlyResult(year=year, status=STATUS_FAILED, error=str(e))
        except Exception as e:
            self.logger.error(f"Year {year} failed building composite: {e}")
            return YearlyResult(year=year, status=STATUS_FAILED, error=f"{type(e).__name__}: {e}")

        if is_no_composite(composite):
            self.logger.warning(f"Year {year}: no qualifying imagery, skipping")
            return YearlyResult(year=year, status=STATUS_SKIPPED)

        n_images = int(composite.attrs.get('n_images', 0))

        try:
            prediction = self.model.predict_raster(composite)
            mean_biomass = area_mean_biomass(prediction, self.config.timeseries_mean_scale_m)
        except Exception as e:
            self.logger.error(f"Year {year} failed during prediction: {e}")
            return YearlyResult(year=year, status=STATUS_FAILED, n_images=n_images,
                                error=f"{type(e).__name__}: {e}")

        result = YearlyResult(year=year, mean_biomass=mean_biomass, n_images=n_images)

        if mean_biomass is None:
            self.logger.warning(f"Year {year}: no defined predicted pixel inside the region")
        else:
            self.logger.info(f"Year {year}: mean biomass {mean_biomass:.2f} kg/ha from {n_images} images")

        if self.export_sink is not None:
            result.export_error = self._export_year(prediction, year)

        return result

    def _export_year(self, prediction: xr.DataArray, year: int) -> Optional[str]:
        destination = yearly_export_name(year)
        try:
            retry_policy(self.config, ExportFailure)(
                self.export_sink.write_raster, prediction, destination, scale_m=self.config.export_scale_m
            )
        except ExportFailure as e:
            self.logger.error(f"Export of {destination} failed: {e}")
            return str(e)
        except Exception as e:
            self.logger.error(f"Export of {destination} failed with an unexpected error: {e}")
            return f"{type(e).__name__}: {e}"
        return None

    def log_summary(self, results: List[YearlyResult]) -> None:
        counts = {status: sum(1 for r in results if r.status == status)
                  for status in (STATUS_COMPUTED, STATUS_SKIPPED, STATUS_FAILED)}
        self.logger.info(f"Time series complete: {counts[STATUS_COMPUTED]} computed, "
                         f"{counts[STATUS_SKIPPED]} skipped, {counts[STATUS_FAILED]} failed")
        for r in results:
            value = f"{r.mean_biomass:.2f} kg/ha" if r.mean_biomass is not None else "n/a"
            self.logger.info(f"  {r.year}: {r.status:<8} {value}")
