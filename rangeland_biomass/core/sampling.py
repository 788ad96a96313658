"""
Composite sampling at field observation points.

Builds the labeled training table: for every DPM point the seven predictor
values of the pixel containing it are read from the composite. Points outside
the raster or on pixels with any missing band are dropped.

Author: Rangeland Biomass Team
"""

import math
import warnings
from typing import Union

import geopandas as gpd
import numpy as np
import pandas as pd
import xarray as xr
from rasterio.transform import rowcol

from shared_utils import get_logger

from .composite import PREDICTOR_BANDS, is_no_composite, raster_resolution
from .dpm_biomass import BIOMASS_COLUMN, SAMPLE_ID_COLUMN

DEFAULT_SAMPLE_SCALE_M = 10.0


def resample_to_scale(raster: Union[xr.Dataset, xr.DataArray], scale_m: float) -> Union[xr.Dataset, xr.DataArray]:
    """
    Aggregate a raster to a coarser pixel size by block mean.

    For datasets, a pixel contributes only if every band is defined there, so
    all bands of a coarse pixel share the same support. Coarse pixels with no
    contributing fine pixel stay missing. Grids that are not a multiple of the
    block size are padded with missing pixels on the far edges, so edge
    blocks average the pixels they do cover and the origin is unchanged.

    Args:
        raster: Dataset or DataArray on (y, x)
        scale_m: Target pixel size in CRS units

    Returns:
        Raster at the requested scale (the input itself if already at that scale)

    Raises:
        ValueError: If the scale is finer than the native resolution or not an
            integer multiple of it
    """
    native = raster_resolution(raster)
    ratio = scale_m / native

    if math.isclose(ratio, 1.0, rel_tol=1e-6):
        return raster

    factor = int(round(ratio))
    if ratio < 1 or not math.isclose(ratio, factor, rel_tol=1e-6):
        raise ValueError(f"Scale {scale_m} m is not an integer multiple of the "
                         f"native resolution {native} m")

    if isinstance(raster, xr.Dataset):
        defined = raster.to_array('band').notnull().all('band')
        raster = raster.where(defined)

    crs = raster.rio.crs
    raster = _pad_to_block_multiple(raster, factor)
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', category=RuntimeWarning)
        coarse = raster.coarsen(x=factor, y=factor, boundary='exact').mean()

    if crs is not None:
        coarse = coarse.rio.write_crs(crs)
    coarse = coarse.rio.write_transform(coarse.rio.transform(recalc=True))
    coarse.attrs = dict(raster.attrs)
    return coarse


def _pad_to_block_multiple(raster: Union[xr.Dataset, xr.DataArray], factor: int) -> Union[xr.Dataset, xr.DataArray]:
    x_step, y_step = raster.rio.resolution(recalc=True)
    extended = {}
    for dim, step in (('x', x_step), ('y', y_step)):
        extra = -raster.sizes[dim] % factor
        if extra:
            coords = raster[dim].values
            extended[dim] = np.concatenate([coords, coords[-1] + step * np.arange(1, extra + 1)])
    return raster.reindex(extended) if extended else raster


def extract_samples(composite: xr.Dataset, observations: gpd.GeoDataFrame,
                    scale_m: float = DEFAULT_SAMPLE_SCALE_M) -> gpd.GeoDataFrame:
    """
    Join field observations against a composite.

    Args:
        composite: Seven-band composite (must not be NO_COMPOSITE)
        observations: Points with sample_id and biomass_kg_ha columns
        scale_m: Extraction scale; must match the composite grid or be an
            integer multiple of it

    Returns:
        gpd.GeoDataFrame: One row per observation inside defined coverage with
        sample_id, the predictor bands, biomass_kg_ha and geometry (composite CRS)

    Raises:
        ValueError: If the composite is the NO_COMPOSITE sentinel
        KeyError: If observations lack the biomass or sample id columns
    """
    logger = get_logger('sampling')

    if is_no_composite(composite):
        raise ValueError("Cannot sample NO_COMPOSITE: no imagery for the baseline period")

    for column in (SAMPLE_ID_COLUMN, BIOMASS_COLUMN):
        if column not in observations.columns:
            raise KeyError(f"Observations lack required column '{column}'")

    columns = [SAMPLE_ID_COLUMN] + PREDICTOR_BANDS + [BIOMASS_COLUMN]
    crs = composite.rio.crs

    if observations.crs is not None and crs is not None and observations.crs != crs:
        observations = observations.to_crs(crs)

    if len(observations) == 0:
        logger.warning("No observations to sample")
        return gpd.GeoDataFrame(pd.DataFrame(columns=columns), geometry=[], crs=crs or observations.crs)

    raster = resample_to_scale(composite[PREDICTOR_BANDS], scale_m)

    xs = observations.geometry.x.to_numpy()
    ys = observations.geometry.y.to_numpy()
    rows, cols = rowcol(raster.rio.transform(recalc=True), xs, ys)
    rows = np.asarray(rows, dtype=int)
    cols = np.asarray(cols, dtype=int)

    inside = (rows >= 0) & (rows < raster.sizes['y']) & (cols >= 0) & (cols < raster.sizes['x'])
    values = np.full((len(observations), len(PREDICTOR_BANDS)), np.nan)

    if inside.any():
        picked = raster.isel(
            y=xr.DataArray(rows[inside], dims='point'),
            x=xr.DataArray(cols[inside], dims='point')
        )
        values[inside] = np.column_stack([picked[band].values for band in PREDICTOR_BANDS])

    covered = ~np.isnan(values).any(axis=1)

    samples = gpd.GeoDataFrame(
        {SAMPLE_ID_COLUMN: observations[SAMPLE_ID_COLUMN].to_numpy()[covered]},
        geometry=observations.geometry.to_numpy()[covered],
        crs=observations.crs
    )
    for j, band in enumerate(PREDICTOR_BANDS):
        samples[band] = values[covered, j]
    samples[BIOMASS_COLUMN] = observations[BIOMASS_COLUMN].to_numpy()[covered]
    samples = samples[columns + ['geometry']].reset_index(drop=True)

    n_dropped = len(observations) - len(samples)
    if n_dropped:
        dropped_ids = observations[SAMPLE_ID_COLUMN].to_numpy()[~covered].tolist()
        logger.warning(f"Dropped {n_dropped} observations outside composite coverage: {dropped_ids}")
    logger.info(f"Extracted {len(samples)} labeled samples at {scale_m} m")

    return samples
