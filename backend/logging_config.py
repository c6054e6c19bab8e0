"""Logging configuration for Sensor Insight."""
import logging
import sys
from pathlib import Path
from typing import Optional


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Set up application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file

    Returns:
        Configured logger instance
    """
    formatter = logging.Formatter(
        fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logger = logging.getLogger("sensor_insight")
    logger.setLevel(getattr(logging, log_level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a child of the ``sensor_insight`` logger for one component.

    Components are named ``<package>.<module role>``, e.g.
    ``ingestion.thingspeak``, ``llm.orchestrator`` or ``services.analysis``,
    so ``get_logger("ingestion.openaq")`` logs as
    ``sensor_insight.ingestion.openaq`` and inherits the handlers set up by
    ``setup_logging``.

    Args:
        name: Dotted component name, without the ``sensor_insight`` prefix

    Returns:
        Logger instance
    """
    return logging.getLogger(f"sensor_insight.{name}")
