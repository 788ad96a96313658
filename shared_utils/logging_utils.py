"""
Logging utilities for the rangeland biomass pipeline.

All components log through children of the 'rangeland_biomass' logger. The
root handlers are configured once per run by setup_logging; the remaining
helpers write run banners, phase timings and process memory.

Author: Rangeland Biomass Team
"""

import logging
import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional, Union

import psutil

ROOT_LOGGER_NAME = 'rangeland_biomass'
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
BANNER = '=' * 80


def setup_logging(
    level: Union[str, int] = 'INFO',
    component_name: Optional[str] = None,
    log_file: Optional[Union[str, Path]] = None
) -> logging.Logger:
    """
    Route all pipeline logging to stdout and, optionally, a log file.

    Existing root handlers are replaced, so a second pipeline in the same
    process does not print every record twice.

    Args:
        level: Level name or number
        component_name: Component whose logger is returned
        log_file: Optional log file; parent directories are created

    Returns:
        logging.Logger: Component logger, or the package logger without a component
    """
    if isinstance(level, str):
        name = level
        level = logging.getLevelName(name.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown logging level: {name}")

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(level)

    return get_logger(component_name) if component_name else logging.getLogger(ROOT_LOGGER_NAME)


def get_logger(component_name: str) -> logging.Logger:
    """Return the 'rangeland_biomass.<component_name>' logger."""
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{component_name}')


def format_duration(seconds: float) -> str:
    """Format a duration in seconds as HH:MM:SS."""
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def log_pipeline_start(logger: logging.Logger, pipeline_name: str,
                       parameters: Optional[Dict[str, Any]] = None) -> None:
    """
    Write the run banner followed by the run parameters.

    Args:
        logger: Logger instance
        pipeline_name: Name shown in the banner
        parameters: Flat mapping of run parameters; keys starting with '_' are skipped
    """
    logger.info(BANNER)
    logger.info(f"{pipeline_name}: started")
    logger.info(BANNER)
    for key, value in (parameters or {}).items():
        if not key.startswith('_'):
            logger.info(f"  {key} = {value}")


def log_pipeline_end(logger: logging.Logger, pipeline_name: str, success: bool = True,
                     elapsed_time: Optional[float] = None) -> None:
    """Write the closing banner with the outcome and, if known, the wall time."""
    outcome = "finished" if success else "FAILED"
    duration = f" after {format_duration(elapsed_time)}" if elapsed_time is not None else ""
    logger.info(BANNER)
    logger.log(logging.INFO if success else logging.ERROR, f"{pipeline_name}: {outcome}{duration}")
    logger.info(BANNER)


def log_section(logger: logging.Logger, section_name: str) -> None:
    logger.info(f"--- {section_name} ---")


def log_memory_usage(logger: logging.Logger, context: str = "Current") -> None:
    """
    Log current RSS memory usage of this process.

    Args:
        logger: Logger instance
        context: Description of where in the pipeline this is being called
    """
    try:
        process = psutil.Process(os.getpid())
        memory_mb = process.memory_info().rss / (1024 * 1024)
        logger.info(f"{context} memory usage: {memory_mb:.2f} MB")
    except psutil.Error as e:
        logger.warning(f"Could not get memory usage for {context}: {e}")


@contextmanager
def timer(logger: logging.Logger, task_name: str):
    """
    Context manager for timing operations with automatic logging.

    Args:
        logger: Logger receiving the elapsed-time message
        task_name: Descriptive name of the task being timed

    Example:
        >>> with timer(logger, "Random forest fit"):
        ...     engine.fit(train_table)
        Random forest fit completed in 4.21 seconds
    """
    start_time = time.time()
    try:
        yield
    finally:
        elapsed = time.time() - start_time
        logger.info(f"{task_name} completed in {elapsed:.2f} seconds")
