"""
Checks applied to command-line arguments before any command runs.
"""

import os
from pathlib import Path
from typing import Optional, Union

CONFIG_SUFFIXES = (".toml", ".json")
MAX_BATCH_SIZE = 50


class ValidationError(Exception):
    """A command-line argument was rejected."""

    pass


def _readable_file(file_path: Union[str, Path], label: str) -> Path:
    path = Path(file_path)
    if not path.exists():
        raise ValidationError(f"{label} file does not exist: {file_path}")
    if not path.is_file():
        raise ValidationError(f"{label} path is not a file: {file_path}")
    if not os.access(path, os.R_OK):
        raise ValidationError(f"{label} file is not readable: {file_path}")
    return path.absolute()


def validate_input_file(file_path: Union[str, Path]) -> Path:
    """
    Check that a URL list or bookmarks HTML file can be read.

    Raises:
        ValidationError: If the file is missing, a directory or unreadable
    """
    return _readable_file(file_path, "Input")


def validate_output_path(file_path: Union[str, Path]) -> Path:
    """
    Check that an export target can be written, creating its parent.

    A directory is accepted; the exporter then picks the file name.
    """
    path = Path(file_path)
    directory = path if path.is_dir() else path.parent

    if not directory.exists():
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ValidationError(f"Cannot create output directory: {directory}: {e}")

    if not os.access(directory, os.W_OK):
        raise ValidationError(f"Output directory is not writable: {directory}")

    if path.is_file() and not os.access(path, os.W_OK):
        raise ValidationError(f"Output file exists and is not writable: {file_path}")

    return path.absolute()


def validate_config_file(file_path: Union[str, Path, None]) -> Optional[Path]:
    """Check an explicit ``--config`` argument; ``None`` passes through."""
    if file_path is None:
        return None

    path = _readable_file(file_path, "Configuration")
    if path.suffix.lower() not in CONFIG_SUFFIXES:
        raise ValidationError(
            f"Configuration file must be .toml or .json, got: {path.suffix or 'no extension'}"
        )
    return path


def validate_batch_size(batch_size: int) -> int:
    if batch_size < 1:
        raise ValidationError("Batch size must be at least 1")
    if batch_size > MAX_BATCH_SIZE:
        raise ValidationError(f"Batch size cannot exceed {MAX_BATCH_SIZE}")
    return batch_size
