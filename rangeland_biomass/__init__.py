"""
Rangeland Biomass Component

This component maps standing rangeland biomass from disc pasture meter (DPM)
field measurements and Sentinel-2 imagery, including:

- DPM height to biomass conversion
- Cloud-filtered Sentinel-2 median composites with NDVI
- Random forest regression with held-out validation
- Baseline biomass maps and multi-year mean biomass series

Components:
    core/: Core processing modules
    scripts/: Executable entry points
    config.yaml: Component configuration

Author: Rangeland Biomass Team
"""

from .core.pipeline import BiomassRegressionPipeline, RunResult
from .core.composite import CompositeBuilder, NO_COMPOSITE
from .core.regression import RegressionEngine, FittedModel
from .core.timeseries import TimeSeriesRunner, YearlyResult
from .core.run_config import RunConfig

__version__ = "1.0.0"
__component__ = "rangeland_biomass"

__all__ = [
    "BiomassRegressionPipeline",
    "RunResult",
    "CompositeBuilder",
    "NO_COMPOSITE",
    "RegressionEngine",
    "FittedModel",
    "TimeSeriesRunner",
    "YearlyResult",
    "RunConfig"
]
