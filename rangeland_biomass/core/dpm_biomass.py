"""
DPM height to biomass conversion.

Disc pasture meter (DPM) settling heights are converted to standing biomass
(kg/ha) with a two-branch empirical calibration. Short swards (<= 26 cm) use a
power law in the inverse of height; taller swards use a power law in height.

Author: Rangeland Biomass Team
"""

import math
from pathlib import Path
from typing import Union

import geopandas as gpd
import numpy as np

from shared_utils import get_logger, validate_file_exists

from .exceptions import InvalidMeasurement

# Calibration constants
HEIGHT_THRESHOLD_CM = 26.0

LOW_COEFFICIENT = 31.7176
LOW_REFERENCE_HEIGHT = 0.32181
LOW_EXPONENT = 0.2834

HIGH_COEFFICIENT = 17.3543
HIGH_HEIGHT_FACTOR = 0.9893
HIGH_EXPONENT = 0.5413

BIOMASS_COLUMN = 'biomass_kg_ha'
SAMPLE_ID_COLUMN = 'sample_id'


def dpm_height_to_biomass(height_cm: float) -> float:
    """
    Convert a DPM height measurement to biomass.

    Args:
        height_cm: Settling height in centimetres, must be > 0

    Returns:
        float: Biomass in kg/ha (always >= 0)

    Raises:
        InvalidMeasurement: If height is not a finite positive number

    Examples:
        >>> low = dpm_height_to_biomass(26)     # low branch, threshold inclusive
        >>> high = dpm_height_to_biomass(50)    # high branch
    """
    try:
        height = float(height_cm)
    except (TypeError, ValueError):
        raise InvalidMeasurement(height_cm)

    if not math.isfinite(height) or height <= 0:
        raise InvalidMeasurement(height_cm)

    if height <= HEIGHT_THRESHOLD_CM:
        return (LOW_COEFFICIENT * (LOW_REFERENCE_HEIGHT / height) ** LOW_EXPONENT) ** 2
    return (HIGH_COEFFICIENT * (height * HIGH_HEIGHT_FACTOR) ** HIGH_EXPONENT) ** 2


def add_biomass_column(observations: gpd.GeoDataFrame, height_column: str = 'rl_dpm_hei') -> gpd.GeoDataFrame:
    """
    Compute biomass for every field observation.

    Observations with invalid heights are dropped and logged with their
    location. The input frame is left untouched.

    Args:
        observations: Field observations with point geometry and a height column
        height_column: Name of the DPM height column (cm)

    Returns:
        gpd.GeoDataFrame: Copy of the valid observations with a biomass_kg_ha column

    Raises:
        KeyError: If the height column is missing
    """
    logger = get_logger('dpm_biomass')

    if height_column not in observations.columns:
        raise KeyError(f"Height column '{height_column}' not found in field data "
                       f"(columns: {list(observations.columns)})")

    biomass = np.full(len(observations), np.nan)
    valid = np.zeros(len(observations), dtype=bool)

    for i, (idx, row) in enumerate(observations.iterrows()):
        sample_id = row.get(SAMPLE_ID_COLUMN, idx)
        try:
            biomass[i] = dpm_height_to_biomass(row[height_column])
            valid[i] = True
        except InvalidMeasurement:
            location = None if row.geometry is None else (row.geometry.x, row.geometry.y)
            logger.warning(f"Dropping observation {sample_id} at {location}: "
                           f"invalid height {row[height_column]!r} cm")

    result = observations.loc[valid].copy()
    result[BIOMASS_COLUMN] = biomass[valid]

    n_dropped = len(observations) - len(result)
    logger.info(f"Biomass computed for {len(result)}/{len(observations)} observations "
                f"({n_dropped} dropped)")
    return result


def load_field_observations(path: Union[str, Path], height_column: str = 'rl_dpm_hei',
                            crs: str = None) -> gpd.GeoDataFrame:
    """
    Load DPM field observations from a vector file.

    Args:
        path: Shapefile, GeoPackage or GeoJSON with point features
        height_column: Name of the DPM height column (cm)
        crs: Optional target CRS for the points

    Returns:
        gpd.GeoDataFrame: Observations with a sample_id column
    """
    logger = get_logger('dpm_biomass')
    path = validate_file_exists(path, "DPM field data")

    observations = gpd.read_file(path)
    if height_column not in observations.columns:
        raise KeyError(f"Height column '{height_column}' not found in {path}")

    if SAMPLE_ID_COLUMN not in observations.columns:
        observations[SAMPLE_ID_COLUMN] = np.arange(len(observations))

    if crs is not None and observations.crs is not None and observations.crs != crs:
        observations = observations.to_crs(crs)

    logger.info(f"Loaded {len(observations)} DPM observations from {path}")
    return observations
