"""
Concrete collaborators for the biomass pipeline.

- BoundaryFileRegionSource: region polygons from a boundary vector file
- StacImageArchive: Sentinel-2 L2A scenes from a STAC catalog via odc-stac
- InMemoryImageArchive: list-backed archive
- LocalExportSink: GeoTIFF rasters and CSV/shapefile tables on local disk

Author: Rangeland Biomass Team
"""

from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import geopandas as gpd
import numpy as np
import pandas as pd
import rioxarray  # noqa: F401 - registers the rio accessor
import xarray as xr
from odc.stac import load
from pystac_client import Client
from shapely.geometry.base import BaseGeometry

from shared_utils import ensure_directory, get_logger

from .composite import raster_resolution
from .exceptions import ArchiveQueryFailure, ExportFailure, RegionNotFound
from .interfaces import RasterImage
from .sampling import resample_to_scale

# Earth Search asset names -> Sentinel-2 band names
EARTH_SEARCH_BANDS = {
    'blue': 'B2',
    'green': 'B3',
    'red': 'B4',
    'nir': 'B8',
    'swir16': 'B11',
    'swir22': 'B12',
}

S2_NODATA = 0


class BoundaryFileRegionSource:
    """Resolves region names against a boundary vector file (LSIB by default)."""

    def __init__(self, boundaries_file: Union[str, Path], name_column: str = 'country_na',
                 crs: Optional[str] = None):
        """
        Args:
            boundaries_file: Any vector file geopandas can read
            name_column: Attribute holding the region names
            crs: CRS to return geometries in (defaults to the file's CRS)
        """
        self.boundaries_file = Path(boundaries_file)
        self.name_column = name_column
        self.crs = crs
        self.logger = get_logger('adapters')
        self._boundaries = None

    @property
    def boundaries(self) -> gpd.GeoDataFrame:
        if self._boundaries is None:
            self._boundaries = gpd.read_file(self.boundaries_file)
        return self._boundaries

    def resolve(self, name: str) -> BaseGeometry:
        """
        Return the dissolved geometry of every feature named `name`.

        Raises:
            RegionNotFound: If no feature matches
        """
        if self.name_column not in self.boundaries.columns:
            raise KeyError(f"Boundary file has no '{self.name_column}' column")

        matches = self.boundaries[self.boundaries[self.name_column] == name]
        if matches.empty:
            raise RegionNotFound(name)

        if self.crs is not None:
            matches = matches.to_crs(self.crs)

        region = matches.geometry.unary_union
        self.logger.info(f"Resolved region '{name}' from {len(matches)} features "
                         f"(area {region.area:.0f} in {matches.crs} units)")
        return region


class InMemoryImageArchive:
    """Archive over a fixed list of images; filters like a catalog would."""

    def __init__(self, images: Iterable[RasterImage]):
        self.images = list(images)

    def query(self, region: BaseGeometry, start: date, end: date,
              max_cloud_pct: float) -> List[RasterImage]:
        selected = []
        for image in self.images:
            day = image.timestamp.date() if isinstance(image.timestamp, datetime) else image.timestamp
            if start <= day <= end and image.cloud_cover < max_cloud_pct:
                selected.append(image)
        return selected


class StacImageArchive:
    """
    Sentinel-2 L2A scenes from a STAC catalog.

    Each item is loaded separately onto the working grid so that every scene
    keeps its own cloud-cover value.
    """

    def __init__(self, stac_url: str, crs: str, resolution: float = 10.0,
                 collection: str = 'sentinel-2-l2a',
                 bands: Optional[Dict[str, str]] = None,
                 chunk_size: Optional[int] = None):
        """
        Args:
            stac_url: STAC API endpoint
            crs: Working CRS of the loaded rasters (metric)
            resolution: Pixel size in CRS units
            collection: STAC collection id
            bands: Asset name -> band name mapping
            chunk_size: Dask chunk size; None loads eagerly
        """
        self.stac_url = stac_url
        self.crs = crs
        self.resolution = resolution
        self.collection = collection
        self.bands = bands or dict(EARTH_SEARCH_BANDS)
        self.chunk_size = chunk_size
        self.logger = get_logger('adapters')
        self._catalog = None

    @property
    def catalog(self) -> Client:
        if self._catalog is None:
            self._catalog = Client.open(self.stac_url)
        return self._catalog

    def _bbox_lonlat(self, region: BaseGeometry) -> tuple:
        series = gpd.GeoSeries([region], crs=self.crs).to_crs('EPSG:4326')
        return tuple(series.total_bounds)

    def search(self, region: BaseGeometry, start: date, end: date, max_cloud_pct: float):
        """Return the STAC items intersecting the region with cloud cover below the ceiling."""
        search = self.catalog.search(
            collections=[self.collection],
            bbox=self._bbox_lonlat(region),
            datetime=f"{start.isoformat()}/{end.isoformat()}",
            query=[f'eo:cloud_cover<{max_cloud_pct}']
        )
        return search.item_collection()

    def load_item(self, item, region: BaseGeometry) -> xr.Dataset:
        """Load one item onto the working grid with band names and nodata masked."""
        kwargs = {}
        if self.chunk_size is not None:
            kwargs['chunks'] = {'x': self.chunk_size, 'y': self.chunk_size}

        dataset = load(
            [item],
            bands=list(self.bands),
            crs=self.crs,
            resolution=self.resolution,
            bbox=self._bbox_lonlat(region),
            resampling='bilinear',
            **kwargs
        )
        dataset = dataset.isel(time=0, drop=True).rename(self.bands)

        for band in dataset.data_vars:
            dataset[band] = dataset[band].where(dataset[band] != S2_NODATA)
        return dataset.rio.write_crs(self.crs)

    def query(self, region: BaseGeometry, start: date, end: date,
              max_cloud_pct: float) -> List[RasterImage]:
        """
        Raises:
            ArchiveQueryFailure: On catalog or loading errors
        """
        try:
            items = self.search(region, start, end, max_cloud_pct)
        except Exception as e:
            raise ArchiveQueryFailure(f"STAC search on {self.stac_url} failed: {e}") from e

        self.logger.info(f"Found {len(items)} {self.collection} items {start}/{end} "
                         f"with cloud cover < {max_cloud_pct}%")

        images = []
        for item in items:
            try:
                bands = self.load_item(item, region)
            except Exception as e:
                raise ArchiveQueryFailure(f"Loading item {item.id} failed: {e}") from e

            images.append(RasterImage(
                bands=bands,
                timestamp=item.datetime,
                cloud_cover=float(item.properties.get('eo:cloud_cover', 100.0)),
                image_id=item.id
            ))
        return images


class LocalExportSink:
    """
    Writes rasters and tables under an output directory.

    Raster destinations land in <output_dir>/biomass_maps/<name>.tif; table
    destinations land in <output_dir>/tables/<name> with the format chosen by
    the suffix (.csv, .shp, .gpkg; CSV when there is none).
    """

    def __init__(self, output_dir: Union[str, Path], compress: str = 'lzw'):
        self.output_dir = Path(output_dir)
        self.compress = compress
        self.logger = get_logger('adapters')

    def raster_path(self, destination: str) -> Path:
        path = Path(destination)
        if not path.suffix:
            path = path.with_suffix('.tif')
        return path if path.is_absolute() else self.output_dir / 'biomass_maps' / path

    def table_path(self, destination: str) -> Path:
        path = Path(destination)
        if not path.suffix:
            path = path.with_suffix('.csv')
        return path if path.is_absolute() else self.output_dir / 'tables' / path

    def write_raster(self, image: Union[xr.DataArray, xr.Dataset], destination: str,
                     scale_m: Optional[float] = None) -> Path:
        """
        Write a raster as a compressed GeoTIFF.

        Raises:
            ExportFailure: If resampling or writing fails
        """
        path = self.raster_path(destination)
        try:
            if scale_m is not None and abs(scale_m - raster_resolution(image)) > 1e-6:
                image = resample_to_scale(image, scale_m)
            ensure_directory(path.parent)
            _with_nan_nodata(image.astype('float32')).rio.to_raster(
                path, driver='GTiff', compress=self.compress
            )
        except Exception as e:
            raise ExportFailure(f"Writing raster {path} failed: {e}") from e

        self.logger.info(f"Saved {path}")
        return path

    def write_table(self, rows: pd.DataFrame, destination: str) -> Path:
        """
        Write a table as CSV, shapefile or GeoPackage.

        Raises:
            ExportFailure: If writing fails or a vector format is requested for
                a table without geometry
        """
        path = self.table_path(destination)
        try:
            ensure_directory(path.parent)
            if path.suffix.lower() in ('.shp', '.gpkg', '.geojson'):
                if not isinstance(rows, gpd.GeoDataFrame):
                    raise TypeError("Vector formats need a GeoDataFrame")
                rows.to_file(path)
            else:
                rows.to_csv(path, index=False)
        except Exception as e:
            raise ExportFailure(f"Writing table {path} failed: {e}") from e

        self.logger.info(f"Saved {path} ({len(rows)} rows)")
        return path


def _with_nan_nodata(image: Union[xr.DataArray, xr.Dataset]) -> Union[xr.DataArray, xr.Dataset]:
    if isinstance(image, xr.Dataset):
        for band in image.data_vars:
            image[band] = image[band].rio.write_nodata(np.nan, encoded=False)
        return image
    return image.rio.write_nodata(np.nan, encoded=False)
