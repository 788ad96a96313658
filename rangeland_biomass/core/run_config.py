"""
Run-level configuration struct.

The YAML component configuration is flattened into a frozen RunConfig that is
passed explicitly into the splitter, the regression engine and the time-series
runner. No component reads hyperparameters from module or global state.

Author: Rangeland Biomass Team
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Tuple

from shared_utils import get_config_value


@dataclass(frozen=True)
class RunConfig:
    """Parameters of one pipeline run."""

    region_name: str = "Lesotho"
    baseline_year: int = 2020
    cloud_ceiling_pct: float = 20.0
    train_fraction: float = 0.7
    split_seed: int = 42
    tree_count: int = 500
    min_leaf_population: int = 5
    bag_fraction: float = 0.7
    model_seed: int = 42
    series_years: Tuple[int, int] = (2020, 2025)
    export_scale_m: float = 10.0
    timeseries_mean_scale_m: float = 50.0

    # Execution settings
    sample_scale_m: float = 10.0
    reflectance_scale: float = 10000.0
    predict_chunk_size: int = 1_000_000
    max_workers: int = 4
    retry_attempts: int = 3
    retry_min_wait: float = 1.0
    retry_max_wait: float = 30.0
    height_column: str = "rl_dpm_hei"

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RunConfig":
        """
        Build a RunConfig from a component configuration dictionary.

        Missing keys keep their defaults.

        Args:
            config: Dictionary as returned by shared_utils.load_config

        Returns:
            RunConfig: Validated run configuration
        """
        mapping = {
            'region_name': 'region.name',
            'baseline_year': 'processing.baseline_year',
            'cloud_ceiling_pct': 'processing.cloud_ceiling_pct',
            'reflectance_scale': 'processing.reflectance_scale',
            'sample_scale_m': 'processing.sample_scale_m',
            'train_fraction': 'model.train_fraction',
            'split_seed': 'model.split_seed',
            'tree_count': 'model.tree_count',
            'min_leaf_population': 'model.min_leaf_population',
            'bag_fraction': 'model.bag_fraction',
            'model_seed': 'model.model_seed',
            'predict_chunk_size': 'model.predict_chunk_size',
            'series_years': 'timeseries.series_years',
            'timeseries_mean_scale_m': 'timeseries.mean_scale_m',
            'export_scale_m': 'export.scale_m',
            'max_workers': 'compute.max_workers',
            'retry_attempts': 'compute.retry_attempts',
            'retry_min_wait': 'compute.retry_min_wait',
            'retry_max_wait': 'compute.retry_max_wait',
            'height_column': 'data.height_column',
        }

        kwargs = {}
        for name, key_path in mapping.items():
            value = get_config_value(config, key_path)
            if value is not None:
                kwargs[name] = value

        if 'series_years' in kwargs:
            kwargs['series_years'] = tuple(int(y) for y in kwargs['series_years'])

        run_config = cls(**kwargs)
        run_config.validate()
        return run_config

    def with_overrides(self, **overrides: Any) -> "RunConfig":
        """Return a validated copy with some fields replaced."""
        updated = replace(self, **{k: v for k, v in overrides.items() if v is not None})
        updated.validate()
        return updated

    def validate(self) -> None:
        """
        Check parameter ranges.

        Raises:
            ValueError: If any parameter is out of range
        """
        if not 0.0 < self.train_fraction < 1.0:
            raise ValueError(f"train_fraction must be in (0, 1), got {self.train_fraction}")
        if not 0.0 < self.bag_fraction <= 1.0:
            raise ValueError(f"bag_fraction must be in (0, 1], got {self.bag_fraction}")
        if self.tree_count < 1:
            raise ValueError(f"tree_count must be >= 1, got {self.tree_count}")
        if self.min_leaf_population < 1:
            raise ValueError(f"min_leaf_population must be >= 1, got {self.min_leaf_population}")
        if not 0.0 < self.cloud_ceiling_pct <= 100.0:
            raise ValueError(f"cloud_ceiling_pct must be in (0, 100], got {self.cloud_ceiling_pct}")
        if len(self.series_years) != 2 or self.series_years[0] > self.series_years[1]:
            raise ValueError(f"series_years must be [start, end] with start <= end, got {self.series_years}")
        for name in ('export_scale_m', 'timeseries_mean_scale_m', 'sample_scale_m', 'reflectance_scale'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.max_workers < 1 or self.retry_attempts < 1 or self.predict_chunk_size < 1:
            raise ValueError("max_workers, retry_attempts and predict_chunk_size must be >= 1")

    @property
    def years(self) -> range:
        """Inclusive range of time-series years."""
        return range(self.series_years[0], self.series_years[1] + 1)

    def summary(self) -> Dict[str, Any]:
        """Flat dictionary of the run parameters for logging."""
        return {f.name: getattr(self, f.name) for f in fields(self)}
