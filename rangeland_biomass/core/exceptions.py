"""
Error taxonomy for the rangeland biomass pipeline.

Row- and year-level problems (InvalidMeasurement, ArchiveQueryFailure,
ExportFailure) are recovered by the caller: the row is dropped or the unit of
work is recorded as failed. Structural problems (RegionNotFound,
InsufficientTrainingData, DegenerateValidationSet) abort the current step.

Author: Rangeland Biomass Team
"""

from typing import Any, Dict, Optional


class RangelandBiomassError(Exception):
    """Base class for all pipeline errors."""


class InvalidMeasurement(RangelandBiomassError, ValueError):
    """Field height is non-positive or not a finite number."""

    def __init__(self, height_cm: Any, sample_id: Any = None, location: Any = None):
        self.height_cm = height_cm
        self.sample_id = sample_id
        self.location = location
        where = ""
        if sample_id is not None:
            where += f" (sample {sample_id}"
            where += f" at {location})" if location is not None else ")"
        super().__init__(f"Invalid DPM height {height_cm!r} cm{where}: height must be > 0")


class RegionNotFound(RangelandBiomassError, LookupError):
    """No region geometry matches the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Region not found: {name!r}")


class InsufficientTrainingData(RangelandBiomassError):
    """Training table is empty."""

    def __init__(self, n_rows: int, message: Optional[str] = None):
        self.n_rows = n_rows
        super().__init__(message or f"Cannot fit model on {n_rows} training rows")


class DegenerateValidationSet(RangelandBiomassError):
    """Validation set has zero total variance, so R² is undefined."""

    def __init__(self, n_rows: int, stats: Optional[Dict[str, float]] = None):
        self.n_rows = n_rows
        self.stats = stats or {}
        super().__init__(
            f"Degenerate validation set ({n_rows} rows, stats={self.stats}): "
            "observed values have zero variance"
        )


class ArchiveQueryFailure(RangelandBiomassError):
    """The imagery archive could not answer a query."""


class ExportFailure(RangelandBiomassError):
    """An export sink could not persist a raster or table."""
