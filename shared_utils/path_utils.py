"""
Path utilities for the rangeland biomass pipeline.

Author: Rangeland Biomass Team
"""

from pathlib import Path
from typing import Union


def ensure_directory(path: Union[str, Path], parents: bool = True) -> Path:
    """
    Ensure directory exists, creating it if necessary.

    Args:
        path: Directory path to create
        parents: Whether to create parent directories

    Returns:
        Path: Created directory path

    Examples:
        >>> output_dir = ensure_directory("results/biomass/2024")
    """
    path = Path(path)
    path.mkdir(parents=parents, exist_ok=True)
    return path


def validate_file_exists(path: Union[str, Path], description: str = "") -> Path:
    """
    Validate that a file exists and return it as a Path.

    Args:
        path: File path to validate
        description: Optional description for error messages

    Returns:
        Path: Validated file path

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    path = Path(path)

    if not path.exists():
        desc = f" ({description})" if description else ""
        raise FileNotFoundError(f"Required file not found{desc}: {path}")

    if not path.is_file():
        desc = f" ({description})" if description else ""
        raise ValueError(f"Path is not a file{desc}: {path}")

    return path
