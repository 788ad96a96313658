"""Tests for configuration loading and the run configuration."""

import pytest
import yaml

from rangeland_biomass.core.run_config import RunConfig
from shared_utils import get_config_value, load_config


@pytest.fixture
def packaged_config():
    return load_config(component_name='rangeland_biomass')


def test_packaged_config_builds_run_config(packaged_config):
    run_config = RunConfig.from_config(packaged_config)

    assert run_config.region_name == 'Lesotho'
    assert run_config.baseline_year == 2020
    assert run_config.cloud_ceiling_pct == 20
    assert run_config.tree_count == 500
    assert run_config.min_leaf_population == 5
    assert run_config.bag_fraction == 0.7
    assert run_config.split_seed == 42
    assert run_config.series_years == (2020, 2025)
    assert list(run_config.years) == [2020, 2021, 2022, 2023, 2024, 2025]
    assert run_config.export_scale_m == 10
    assert run_config.timeseries_mean_scale_m == 50
    assert packaged_config['_meta']['component_name'] == 'rangeland_biomass'


def test_missing_sections_keep_defaults():
    run_config = RunConfig.from_config({'model': {'tree_count': 10}})

    assert run_config.tree_count == 10
    assert run_config == RunConfig(tree_count=10)


@pytest.mark.parametrize("overrides", [
    {'train_fraction': 1.0},
    {'bag_fraction': 0.0},
    {'tree_count': 0},
    {'min_leaf_population': 0},
    {'cloud_ceiling_pct': 0.0},
    {'series_years': (2025, 2020)},
    {'export_scale_m': -10.0},
    {'max_workers': 0},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        RunConfig().with_overrides(**overrides)


def test_with_overrides_ignores_none():
    base = RunConfig()
    updated = base.with_overrides(region_name='Botswana', baseline_year=None)

    assert updated.region_name == 'Botswana'
    assert updated.baseline_year == base.baseline_year
    assert base.region_name == 'Lesotho'


def test_summary_lists_every_field():
    summary = RunConfig().summary()
    assert summary['tree_count'] == 500
    assert summary['series_years'] == (2020, 2025)


def test_explicit_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_explicit_path(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text(yaml.safe_dump({'model': {'tree_count': 7}}))

    config = load_config(path)

    assert get_config_value(config, 'model.tree_count') == 7
    assert config['_meta']['config_file'] == str(path.absolute())


def test_non_mapping_yaml_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError):
        load_config(path)


def test_get_config_value():
    config = {'a': {'b': {'c': 3}}, 'flat': None}

    assert get_config_value(config, 'a.b.c') == 3
    assert get_config_value(config, 'a.x', 'default') == 'default'
    assert get_config_value(config, 'a.b.c.d', 0) == 0
    assert get_config_value(config, 'flat') is None
