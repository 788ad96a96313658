"""
Configuration utilities for the rangeland biomass pipeline.

This module provides standardized configuration loading and validation
across all pipeline components.

Author: Rangeland Biomass Team
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

CONFIG_ENV_VAR = 'RANGELAND_BIOMASS_CONFIG'
REPO_ROOT = Path(__file__).resolve().parent.parent


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    component_name: Optional[str] = None,
    default_config_name: str = "config.yaml"
) -> Dict[str, Any]:
    """
    Load configuration from YAML file with standardized search patterns.

    Search order:
    1. Explicit config_path if provided
    2. Component directory + default_config_name
    3. Current directory + default_config_name
    4. Environment variable RANGELAND_BIOMASS_CONFIG

    Args:
        config_path: Explicit path to configuration file
        component_name: Name of component (for automatic config discovery)
        default_config_name: Default config filename to search for

    Returns:
        Dict[str, Any]: Configuration dictionary

    Raises:
        FileNotFoundError: If no configuration file is found
        yaml.YAMLError: If configuration file is invalid YAML

    Examples:
        >>> config = load_config(component_name="rangeland_biomass")
        >>> config = load_config("custom_config.yaml")
    """
    logger = logging.getLogger(__name__)

    search_paths = []

    if config_path:
        search_paths.append(Path(config_path))

    if component_name:
        search_paths.extend([
            REPO_ROOT / component_name / default_config_name,
            Path(component_name) / default_config_name,
        ])

    search_paths.append(Path(default_config_name))

    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        search_paths.append(Path(env_config))

    # Explicit paths never fall back to the search list
    if config_path and not Path(config_path).exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    config_file = None
    for path in search_paths:
        if path.exists():
            config_file = path
            logger.debug(f"Found configuration file: {config_file}")
            break

    if not config_file:
        searched_paths = [str(p) for p in search_paths]
        raise FileNotFoundError(
            f"Configuration file not found. Searched paths: {searched_paths}"
        )

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Invalid YAML in {config_file}: {e}")

    if not isinstance(config, dict):
        raise ValueError(f"Expected a YAML mapping in {config_file}")

    config['_meta'] = {
        'config_file': str(config_file.absolute()),
        'component_name': component_name,
    }

    logger.info(f"Loaded configuration from: {config_file}")
    return config


def get_config_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get nested configuration value using dot notation.

    Args:
        config: Configuration dictionary
        key_path: Dot-separated path to the value (e.g., 'model.tree_count')
        default: Default value if key is not found

    Returns:
        Any: Configuration value or default

    Examples:
        >>> trees = get_config_value(config, 'model.tree_count', 500)
    """
    value = config
    try:
        for key in key_path.split('.'):
            value = value[key]
        return value
    except (KeyError, TypeError):
        return default
