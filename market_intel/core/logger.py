"""Logging infrastructure setup."""

import logging
import os
from pathlib import Path


def setup_logger(name: str = "market_intel", log_file: str | None = None) -> logging.Logger:
    """
    Configure and return a standard logger that writes to a specified file and the console.

    Args:
        name (str): The name of the logger.
        log_file (str): The path to the log file. Defaults to ``MARKET_INTEL_LOG_FILE``
            or ``output/pipeline.log``.

    Returns:
        logging.Logger: The configured logger instance.
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers if setup is called multiple times
    if logger.hasHandlers():
        return logger

    logger.setLevel(logging.INFO)

    # Formatter includes timestamp, level, module, and message
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(module)s.%(funcName)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    # File handler; read-only deployments fall back to console only
    log_path = Path(log_file or os.getenv("MARKET_INTEL_LOG_FILE", "output/pipeline.log"))
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        file_handler = None
    if file_handler is not None:
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if file_handler is None:
        logger.warning(f"Log file {log_path} is not writable; logging to console only")

    return logger

# Create a default logger instance
logger = setup_logger()
