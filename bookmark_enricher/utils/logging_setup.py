"""
Logging configuration for the Bookmark Enricher.

This module sets up logging for command-line runs.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


def setup_logging(
    verbose: bool = False,
    log_file: Optional[str] = None,
    log_dir: Optional[Path] = None,
    console_output: bool = True,
) -> Path:
    """
    Set up logging configuration.

    Args:
        verbose: Log at DEBUG instead of INFO
        log_file: Optional log file name override
        log_dir: Directory for log files (defaults to ./logs)
        console_output: Also log to stderr

    Returns:
        Path of the log file in use
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    if log_file is None:
        log_file = "bookmark_enricher.log"

    if log_dir is None:
        log_dir = Path.cwd() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    # Create timestamped log file
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_path = log_dir / f"{Path(log_file).stem}_{timestamp}.log"

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    handlers = []

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(log_format, date_format))
    handlers.append(file_handler)

    # Console output goes to stderr so that stdout stays clean for exports
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(log_format, date_format))
        console_handler.setLevel(log_level if verbose else logging.WARNING)
        handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logger = logging.getLogger(__name__)
    logger.info(f"Bookmark Enricher starting - Log file: {log_path}")
    logger.info(f"Log level: {logging.getLevelName(log_level)}")

    # Reduce noise from HTTP libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return log_path
