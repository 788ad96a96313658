"""
Interfaces to the pipeline's external collaborators.

The core only depends on these protocols. Concrete implementations live in
adapters.py (boundary files, STAC catalog, local exports) and reporting.py.

Author: Rangeland Biomass Team
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, List, Protocol, Sequence, Tuple, Union

import pandas as pd
import xarray as xr
from shapely.geometry.base import BaseGeometry


@dataclass(frozen=True)
class RasterImage:
    """
    One acquisition from the imagery archive.

    Attributes:
        bands: Dataset of raw digital numbers, one variable per band on (y, x)
        timestamp: Acquisition time
        cloud_cover: Scene cloud-cover percentage from the image metadata
        image_id: Archive identifier, used in log messages
    """
    bands: xr.Dataset
    timestamp: datetime
    cloud_cover: float
    image_id: str = ""


class RegionSource(Protocol):
    """Supplies a single region polygon by name."""

    def resolve(self, name: str) -> BaseGeometry:
        """Return the region geometry, raising RegionNotFound if unmatched."""


class ImageArchive(Protocol):
    """Queryable multi-band image collection."""

    def query(self, region: BaseGeometry, start: date, end: date,
              max_cloud_pct: float) -> List[RasterImage]:
        """Return images intersecting region in [start, end] with cloud cover < max_cloud_pct."""


class ExportSink(Protocol):
    """Persists rasters and tables."""

    def write_raster(self, image: Union[xr.DataArray, xr.Dataset], destination: str,
                     scale_m: float = None) -> Any:
        """Persist a raster under the destination descriptor."""

    def write_table(self, rows: pd.DataFrame, destination: str) -> Any:
        """Persist a table under the destination descriptor."""


class ReportSink(Protocol):
    """Receives scalar metrics and chart series for display."""

    def report_metric(self, name: str, value: float) -> None:
        """Push a scalar metric."""

    def report_series(self, name: str, points: Sequence[Tuple[Any, Any]], **labels: Any) -> None:
        """Push a chart as a series of (x, y) pairs."""
