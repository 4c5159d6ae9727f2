"""Logging configuration using Loguru."""

import logging
import sys
from pathlib import Path

from loguru import logger

# stdlib loggers of the HTTP and SQLite drivers; they log every request at DEBUG
NOISY_LIBRARIES = ("httpx", "httpcore", "aiosqlite", "openai")


def setup_logging(
    level: str = "INFO",
    log_to_file: bool = False,
    log_dir: str = "logs",
    file_rotation: str = "10 MB",
    file_retention: str = "7 days",
    compression: str = "zip",
    serialize: bool = True,
) -> None:
    """
    Configure Loguru sinks.

    Console output is colourised; the optional file sink rotates, compresses
    and (by default) writes one JSON object per record so `extra` context
    such as node and edge ids stays machine-readable.
    """
    level = level.upper()
    logger.remove()

    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        colorize=True,
        serialize=False,
    )

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / "linkgraph_{time:YYYY-MM-DD}.log",
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            rotation=file_rotation,
            retention=file_retention,
            compression=compression,
            serialize=serialize,
            enqueue=True,
        )

    library_level = logging.DEBUG if level in ("TRACE", "DEBUG") else logging.WARNING
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(library_level)


def get_logger(name: str):
    """Get a logger instance for a module."""
    return logger.bind(module=name)
