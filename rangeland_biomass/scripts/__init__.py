"""
Executable scripts for the rangeland biomass component.

Scripts:
    run_full_pipeline.py: Complete regression, mapping and time-series run

Author: Rangeland Biomass Team
"""

from .run_full_pipeline import main as run_full_pipeline

__all__ = [
    "run_full_pipeline"
]
