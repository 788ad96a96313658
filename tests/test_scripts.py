"""Tests for the command line entry point."""

import importlib
from types import SimpleNamespace

import pytest

from rangeland_biomass.core.exceptions import RegionNotFound
from rangeland_biomass.core.timeseries import YearlyResult

script = importlib.import_module("rangeland_biomass.scripts.run_full_pipeline")


class FakePipeline:
    """Stands in for BiomassRegressionPipeline and records what it was given."""

    instances = []
    export_failures = []
    error = None

    def __init__(self, config, run_config):
        self.config = config
        self.run_config = run_config
        self.logger = SimpleNamespace(info=lambda msg: None, warning=lambda msg: None,
                                      error=lambda msg: None)
        FakePipeline.instances.append(self)

    def run_full_pipeline(self):
        if FakePipeline.error is not None:
            raise FakePipeline.error
        return SimpleNamespace(
            validation=SimpleNamespace(rmse=500.0, mae=400.0, r2=0.6),
            yearly_results=[YearlyResult(year=2020, mean_biomass=1500.0, status='computed')],
            export_failures=list(FakePipeline.export_failures),
        )


@pytest.fixture
def fake_pipeline(monkeypatch):
    FakePipeline.instances = []
    FakePipeline.export_failures = []
    FakePipeline.error = None
    monkeypatch.setattr(script, 'BiomassRegressionPipeline', FakePipeline)
    return FakePipeline


def test_parse_arguments():
    args = script.parse_arguments(['--region', 'Botswana', '--years', '2021', '2023', '--no-export'])

    assert args.region == 'Botswana'
    assert args.years == [2021, 2023]
    assert args.no_export
    assert args.config is None


def test_missing_config_file(tmp_path, fake_pipeline):
    assert script.main(['--config', str(tmp_path / 'missing.yaml')]) == 1
    assert fake_pipeline.instances == []


def test_invalid_year_range(fake_pipeline):
    assert script.main(['--years', '2025', '2020']) == 1


def test_overrides_reach_the_pipeline(fake_pipeline):
    assert script.main(['--region', 'Botswana', '--baseline-year', '2021',
                        '--years', '2021', '2022', '--no-export', '--log-level', 'DEBUG']) == 0

    pipeline = fake_pipeline.instances[0]
    assert pipeline.run_config.region_name == 'Botswana'
    assert pipeline.run_config.baseline_year == 2021
    assert pipeline.run_config.series_years == (2021, 2022)
    assert pipeline.config['export']['enabled'] is False
    assert pipeline.config['logging']['level'] == 'DEBUG'


def test_export_failures_exit_code(fake_pipeline):
    fake_pipeline.export_failures = ['Writing table failed']
    assert script.main([]) == 2


def test_aborted_run_exit_code(fake_pipeline):
    fake_pipeline.error = RegionNotFound('Atlantis')
    assert script.main([]) == 1
