"""
Central Data Paths - Constants

Centralized path management for the rangeland biomass repository.
All components should import paths from this module instead of defining their own.

Usage:
    from shared_utils.central_data_paths_constants import FIELD_DATA_FILE, BIOMASS_MAPS_DIR

Author: Rangeland Biomass Team
"""

from pathlib import Path

# Root directories
DATA_ROOT = Path("data")

RAW_DIR = DATA_ROOT / "raw"
PROCESSED_DIR = DATA_ROOT / "processed"
RESULTS_DIR = DATA_ROOT / "results"

# DPM field survey
FIELD_DATA_DIR = RAW_DIR / "dpm_field_data"
FIELD_DATA_FILE = FIELD_DATA_DIR / "dpm_points.shp"

# Country boundaries (LSIB simplified)
BOUNDARIES_DIR = RAW_DIR / "country_boundaries"
BOUNDARIES_FILE = BOUNDARIES_DIR / "lsib_simple_2017.shp"

# Model artefacts
MODELS_DIR = PROCESSED_DIR / "models"
FITTED_MODEL_FILE = MODELS_DIR / "biomass_rf.pkl"

# Outputs
BIOMASS_MAPS_DIR = RESULTS_DIR / "biomass_maps"
TABLES_DIR = RESULTS_DIR / "tables"
FIGURES_DIR = RESULTS_DIR / "figures"
