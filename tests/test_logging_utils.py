"""Tests for the shared logging helpers."""

import logging

import pytest

from shared_utils.logging_utils import format_duration, log_pipeline_end, log_pipeline_start, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_log_file_receives_component_records(tmp_path, restore_root_logger):
    log_file = tmp_path / 'logs' / 'run.log'
    logger = setup_logging('INFO', 'test_component', log_file)

    log_pipeline_start(logger, 'Biomass run', {'region': 'Lesotho', '_meta': 'hidden'})
    logger.debug("not written")
    log_pipeline_end(logger, 'Biomass run', success=False, elapsed_time=61)
    for handler in restore_root_logger.handlers:
        handler.flush()

    text = log_file.read_text()
    assert logger.name == 'rangeland_biomass.test_component'
    assert 'rangeland_biomass.test_component - INFO - Biomass run: started' in text
    assert 'region = Lesotho' in text
    assert '_meta' not in text
    assert 'not written' not in text
    assert 'ERROR - Biomass run: FAILED after 00:01:01' in text


def test_repeated_setup_replaces_handlers(restore_root_logger):
    setup_logging('DEBUG')
    setup_logging('WARNING')

    assert len(restore_root_logger.handlers) == 1
    assert restore_root_logger.level == logging.WARNING
    assert setup_logging(logging.INFO).name == 'rangeland_biomass'


def test_unknown_level_rejected(restore_root_logger):
    with pytest.raises(ValueError, match='NOPE'):
        setup_logging('NOPE')


@pytest.mark.parametrize("seconds, expected", [
    (0, '00:00:00'),
    (59.6, '00:01:00'),
    (3725, '01:02:05'),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
