"""
Sentinel-2 median composite construction.

Builds a single multi-band reflectance composite for a region and date range:
images below the cloud-cover ceiling are rescaled to reflectance, extended with
an NDVI band, stacked along time and reduced with a per-pixel median. Pixels
outside the region are masked. Missing values are NaN throughout and are never
coerced to zero.

When no image qualifies the builder returns the NO_COMPOSITE sentinel, which
downstream consumers treat as "skip".

Author: Rangeland Biomass Team
"""

import warnings
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import rioxarray  # noqa: F401 - registers the rio accessor
import xarray as xr
from rasterio.features import geometry_mask
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from shared_utils import get_logger

from .exceptions import ArchiveQueryFailure
from .interfaces import ImageArchive, RasterImage

SPECTRAL_BANDS = ['B2', 'B3', 'B4', 'B8', 'B11', 'B12']
PREDICTOR_BANDS = SPECTRAL_BANDS + ['NDVI']

DEFAULT_REFLECTANCE_SCALE = 10000.0
DEFAULT_CLOUD_CEILING_PCT = 20.0


class NoComposite:
    """Sentinel for "no qualifying imagery"; distinct from a zero raster."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'NO_COMPOSITE'


NO_COMPOSITE = NoComposite()

CompositeResult = Union[xr.Dataset, NoComposite]


def is_no_composite(composite) -> bool:
    """Return True if the builder found no qualifying imagery."""
    return composite is NO_COMPOSITE


def calendar_year_range(year: int) -> Tuple[date, date]:
    """Return the inclusive (Jan 1, Dec 31) date range of a calendar year."""
    return date(year, 1, 1), date(year, 12, 31)


def compute_ndvi(nir: xr.DataArray, red: xr.DataArray) -> xr.DataArray:
    """
    Normalized difference vegetation index.

    NDVI is missing where NIR + red is zero or either input is missing.
    """
    denominator = nir + red
    with np.errstate(divide='ignore', invalid='ignore'):
        ndvi = (nir - red) / denominator
    return ndvi.where(denominator != 0).rename('NDVI')


def prepare_image(image: RasterImage, reflectance_scale: float = DEFAULT_REFLECTANCE_SCALE) -> xr.Dataset:
    """
    Rescale one image to reflectance and keep the predictor bands.

    Args:
        image: Raw archive image with at least the spectral bands
        reflectance_scale: Digital-number divisor

    Returns:
        xr.Dataset: Float dataset with the seven predictor bands

    Raises:
        KeyError: If a spectral band is missing from the image
    """
    missing = [b for b in SPECTRAL_BANDS if b not in image.bands.data_vars]
    if missing:
        raise KeyError(f"Image {image.image_id or image.timestamp} lacks bands {missing}")

    scaled = image.bands[SPECTRAL_BANDS].astype('float64') / reflectance_scale
    scaled['NDVI'] = compute_ndvi(scaled['B8'], scaled['B4'])
    return scaled[PREDICTOR_BANDS]


def median_composite(images: Sequence[xr.Dataset]) -> xr.Dataset:
    """
    Per-pixel, per-band median over a stack of prepared images.

    Missing values are skipped; a pixel missing in every image stays missing.
    """
    stack = xr.concat(list(images), dim='time', join='outer')
    with warnings.catch_warnings():
        # All-NaN slices are expected outside the swath
        warnings.simplefilter('ignore', category=RuntimeWarning)
        return stack.median(dim='time', skipna=True)


def clip_to_region(dataset: xr.Dataset, region: BaseGeometry, all_touched: bool = False) -> xr.Dataset:
    """
    Mask every pixel whose centre lies outside the region.

    The grid is kept unchanged. The region must be expressed in the raster CRS.
    """
    transform = dataset.rio.transform(recalc=True)
    inside = geometry_mask(
        [mapping(region)],
        out_shape=(dataset.sizes['y'], dataset.sizes['x']),
        transform=transform,
        invert=True,
        all_touched=all_touched
    )
    return dataset.where(xr.DataArray(inside, dims=('y', 'x')))


def valid_pixel_percentage(dataset: xr.Dataset) -> float:
    """Percentage of pixels where every band is defined."""
    defined = dataset.to_array('band').notnull().all('band')
    return float(defined.mean()) * 100 if defined.size else 0.0


def raster_resolution(dataset: Union[xr.Dataset, xr.DataArray]) -> float:
    """Absolute pixel size along x, in CRS units."""
    return abs(float(dataset.rio.resolution(recalc=True)[0]))


class CompositeBuilder:
    """
    Median reflectance composite builder.

    Queries the imagery archive for a region and date range and reduces the
    qualifying images to a single seven-band composite.
    """

    def __init__(self, archive: ImageArchive,
                 cloud_ceiling_pct: float = DEFAULT_CLOUD_CEILING_PCT,
                 reflectance_scale: float = DEFAULT_REFLECTANCE_SCALE):
        """
        Initialize the builder.

        Args:
            archive: Imagery archive to query
            cloud_ceiling_pct: Scenes must have cloud cover strictly below this value
            reflectance_scale: Digital-number divisor
        """
        self.archive = archive
        self.cloud_ceiling_pct = cloud_ceiling_pct
        self.reflectance_scale = reflectance_scale
        self.logger = get_logger('composite')

    def query_images(self, region: BaseGeometry, start: date, end: date) -> List[RasterImage]:
        """
        Query the archive and keep images inside the range and below the ceiling.

        Raises:
            ArchiveQueryFailure: If the archive query fails
        """
        try:
            images = self.archive.query(region, start, end, self.cloud_ceiling_pct)
        except ArchiveQueryFailure:
            raise
        except Exception as e:
            raise ArchiveQueryFailure(f"Archive query {start}/{end} failed: {e}") from e

        qualifying = [
            img for img in images
            if img.cloud_cover < self.cloud_ceiling_pct
            and start <= _as_date(img.timestamp) <= end
        ]

        if len(qualifying) != len(images):
            self.logger.debug(f"Discarded {len(images) - len(qualifying)} images outside "
                              f"{start}/{end} or with cloud cover >= {self.cloud_ceiling_pct}%")
        return qualifying

    def build(self, region: BaseGeometry, start: date, end: date) -> CompositeResult:
        """
        Build the composite for an inclusive date range.

        Args:
            region: Region geometry in the archive CRS
            start: First acquisition date (inclusive)
            end: Last acquisition date (inclusive)

        Returns:
            xr.Dataset or NO_COMPOSITE: Clipped median composite, or the sentinel
            when no image qualifies
        """
        images = self.query_images(region, start, end)

        if not images:
            self.logger.warning(f"No images with cloud cover < {self.cloud_ceiling_pct}% "
                                f"between {start} and {end}")
            return NO_COMPOSITE

        self.logger.info(f"Building median composite from {len(images)} images ({start} to {end})")

        prepared = [prepare_image(img, self.reflectance_scale) for img in images]
        crs = images[0].bands.rio.crs

        composite = median_composite(prepared)
        composite = clip_to_region(composite, region)
        composite = composite.transpose('y', 'x')

        if crs is not None:
            composite = composite.rio.write_crs(crs)

        composite.attrs['n_images'] = len(images)
        composite.attrs['start'] = start.isoformat()
        composite.attrs['end'] = end.isoformat()
        composite.attrs['cloud_ceiling_pct'] = self.cloud_ceiling_pct
        composite.attrs['valid_pixel_percentage'] = valid_pixel_percentage(composite)

        self.logger.info(f"Composite ready: {composite.sizes['y']}x{composite.sizes['x']} pixels, "
                         f"{composite.attrs['valid_pixel_percentage']:.1f}% valid")
        return composite

    def build_for_year(self, region: BaseGeometry, year: int) -> CompositeResult:
        """Build the composite for a calendar year (Jan 1 to Dec 31 inclusive)."""
        start, end = calendar_year_range(year)
        return self.build(region, start, end)


def _as_date(timestamp: Optional[Union[datetime, date]]) -> date:
    if isinstance(timestamp, datetime):
        return timestamp.date()
    return timestamp
