"""Pytest configuration and shared fixtures."""
import sys
import threading
from collections import defaultdict
from datetime import datetime
from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
import rioxarray  # noqa: F401
import xarray as xr
from shapely.geometry import Point, box

# Add repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rangeland_biomass.core.adapters import InMemoryImageArchive
from rangeland_biomass.core.composite import PREDICTOR_BANDS, CompositeBuilder
from rangeland_biomass.core.dpm_biomass import BIOMASS_COLUMN, SAMPLE_ID_COLUMN
from rangeland_biomass.core.exceptions import ArchiveQueryFailure, ExportFailure, RegionNotFound
from rangeland_biomass.core.interfaces import RasterImage
from rangeland_biomass.core.run_config import RunConfig

CRS = "EPSG:32735"
RESOLUTION = 10.0
X0, Y0 = 500000.0, 7000000.0
NX = NY = 20

DPM_HEIGHTS = [10, 20, 26, 27, 40, 60, 15, 22, 35, 50]

BASE_DN = {'B2': 600.0, 'B3': 900.0, 'B4': 1100.0, 'B8': 2800.0, 'B11': 2400.0, 'B12': 1700.0}


def grid_coords(nx=NX, ny=NY):
    """Pixel-centre coordinates of the synthetic 10 m grid (y descending)."""
    x = X0 + RESOLUTION * (np.arange(nx) + 0.5)
    y = Y0 - RESOLUTION * (np.arange(ny) + 0.5)
    return x, y


def make_dataset(arrays):
    """Dataset on the synthetic grid from a band -> 2-D array mapping."""
    x, y = grid_coords()
    return xr.Dataset(
        {band: (('y', 'x'), np.asarray(values, dtype=float)) for band, values in arrays.items()},
        coords={'x': x, 'y': y}
    ).rio.write_crs(CRS)


def make_raw_image(timestamp, cloud_cover, dn=None, seed=0, image_id=""):
    """
    Raw Sentinel-2-like image in digital numbers.

    With dn=None the bands follow a west-east vegetation gradient with a little
    noise; a scalar or band -> scalar mapping gives constant bands.
    """
    rng = np.random.default_rng(seed)
    gradient = np.tile(np.linspace(0.8, 1.2, NX), (NY, 1))
    arrays = {}
    for band, value in BASE_DN.items():
        if dn is None:
            factor = gradient if band == 'B8' else 1.0 / gradient if band == 'B4' else 1.0
            arrays[band] = value * factor * rng.uniform(0.95, 1.05, (NY, NX))
        else:
            level = dn[band] if isinstance(dn, dict) else dn
            arrays[band] = np.full((NY, NX), float(level))
    return RasterImage(bands=make_dataset(arrays), timestamp=timestamp,
                       cloud_cover=cloud_cover, image_id=image_id)


def series_images():
    """Images for 2020, 2021 and 2023; 2022 has nothing below the cloud ceiling."""
    return [
        make_raw_image(datetime(2020, 2, 10), 5.0, seed=1, image_id='2020a'),
        make_raw_image(datetime(2020, 6, 3), 10.0, seed=2, image_id='2020b'),
        make_raw_image(datetime(2020, 11, 21), 15.0, seed=3, image_id='2020c'),
        make_raw_image(datetime(2020, 8, 1), 35.0, dn=0.0, image_id='2020-cloudy'),
        make_raw_image(datetime(2021, 3, 14), 8.0, seed=4, image_id='2021a'),
        make_raw_image(datetime(2021, 9, 30), 12.0, seed=5, image_id='2021b'),
        make_raw_image(datetime(2022, 5, 5), 60.0, seed=6, image_id='2022-cloudy'),
        make_raw_image(datetime(2023, 1, 1), 2.0, seed=7, image_id='2023a'),
        make_raw_image(datetime(2023, 12, 31), 19.9, seed=8, image_id='2023b'),
    ]


class StaticRegionSource:
    """Region source over a fixed name -> geometry mapping."""

    def __init__(self, regions):
        self.regions = regions

    def resolve(self, name):
        if name not in self.regions:
            raise RegionNotFound(name)
        return self.regions[name]


class FlakyArchive:
    """Wraps an archive and fails the first N queries of selected years."""

    def __init__(self, inner, failures):
        self.inner = inner
        self.remaining = dict(failures)
        self.calls = defaultdict(int)
        self._lock = threading.Lock()

    def query(self, region, start, end, max_cloud_pct):
        with self._lock:
            self.calls[start.year] += 1
            if self.remaining.get(start.year, 0) > 0:
                self.remaining[start.year] -= 1
                raise ArchiveQueryFailure(f"archive unavailable for {start.year}")
        return self.inner.query(region, start, end, max_cloud_pct)


class RecordingExportSink:
    """Keeps exports in memory; destinations listed in fail_on always raise fail_with."""

    def __init__(self, fail_on=(), fail_with=ExportFailure):
        self.rasters = {}
        self.tables = {}
        self.scales = {}
        self.fail_on = set(fail_on)
        self.fail_with = fail_with
        self.attempts = defaultdict(int)
        self._lock = threading.Lock()

    def write_raster(self, image, destination, scale_m=None):
        with self._lock:
            self.attempts[destination] += 1
        if destination in self.fail_on:
            raise self.fail_with(f"disk full writing {destination}")
        with self._lock:
            self.rasters[destination] = image
            self.scales[destination] = scale_m
        return destination

    def write_table(self, rows, destination):
        with self._lock:
            self.attempts[destination] += 1
        if destination in self.fail_on:
            raise self.fail_with(f"disk full writing {destination}")
        with self._lock:
            self.tables[destination] = rows.copy()
        return destination


@pytest.fixture
def region():
    """Region covering the whole synthetic grid."""
    return box(X0, Y0 - NY * RESOLUTION, X0 + NX * RESOLUTION, Y0)


@pytest.fixture
def archive():
    return InMemoryImageArchive(series_images())


@pytest.fixture
def builder(archive):
    return CompositeBuilder(archive, cloud_ceiling_pct=20.0)


@pytest.fixture
def composite(builder, region):
    """Baseline 2020 composite from the three clear images."""
    return builder.build_for_year(region, 2020)


@pytest.fixture
def observations():
    """Ten DPM points on distinct pixel centres of the synthetic grid."""
    x, y = grid_coords()
    points = [Point(x[2 * k + 1], y[2 * k + 1]) for k in range(len(DPM_HEIGHTS))]
    return gpd.GeoDataFrame(
        {SAMPLE_ID_COLUMN: np.arange(len(DPM_HEIGHTS)), 'rl_dpm_hei': DPM_HEIGHTS},
        geometry=points,
        crs=CRS
    )


@pytest.fixture
def labeled_table():
    """200 labeled samples where biomass grows with NDVI and NIR."""
    rng = np.random.default_rng(42)
    n = 200
    table = pd.DataFrame({
        SAMPLE_ID_COLUMN: np.arange(n),
        'B2': rng.uniform(0.04, 0.10, n),
        'B3': rng.uniform(0.06, 0.12, n),
        'B4': rng.uniform(0.05, 0.15, n),
        'B8': rng.uniform(0.20, 0.40, n),
        'B11': rng.uniform(0.18, 0.30, n),
        'B12': rng.uniform(0.10, 0.22, n),
    })
    table['NDVI'] = (table['B8'] - table['B4']) / (table['B8'] + table['B4'])
    table[BIOMASS_COLUMN] = 4000 * table['NDVI'] + 2000 * table['B8'] + rng.normal(0, 50, n)
    return table[[SAMPLE_ID_COLUMN] + PREDICTOR_BANDS + [BIOMASS_COLUMN]]


@pytest.fixture
def fast_config():
    """Small forest, no retry waits, 2020-2023 series."""
    return RunConfig(
        tree_count=50,
        min_leaf_population=1,
        series_years=(2020, 2023),
        max_workers=2,
        retry_attempts=3,
        retry_min_wait=0.0,
        retry_max_wait=0.0,
    )
