"""
Shared utilities for the rangeland biomass pipeline.

This package provides common functionality used across all components:
- Standardized logging configuration
- Configuration file loading utilities
- Path handling utilities

Author: Rangeland Biomass Team
"""

from .logging_utils import (
    setup_logging, get_logger, log_pipeline_start, log_pipeline_end,
    log_section, log_memory_usage, timer
)
from .config_utils import load_config, get_config_value
from .path_utils import ensure_directory, validate_file_exists

__version__ = "1.0.0"

__all__ = [
    "setup_logging",
    "get_logger",
    "log_pipeline_start",
    "log_pipeline_end",
    "log_section",
    "log_memory_usage",
    "timer",
    "load_config",
    "get_config_value",
    "ensure_directory",
    "validate_file_exists"
]
