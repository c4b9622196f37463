"""
Utility functions for the Mentari Notifier pipeline.

This module provides:
- Central logging configuration
- Safe JSON read/write helpers for the on-disk state file
- Environment variable access
- Loose value coercion shared by the extractor and config loader
"""

import json
import logging
import os
import sys
import tempfile
import shutil
from pathlib import Path
from typing import Any, Optional


LOGGER_NAMESPACE = "mentari_notifier"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure and return the root logger for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to INFO.

    Returns:
        Configured logger instance.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(log_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Name for the logger, typically the module name.

    Returns:
        Logger instance configured as a child of the main application logger.
    """
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def safe_read_json(filepath: str, default: Optional[Any] = None) -> Any:
    """
    Read a JSON document written by another process (state file, snapshot).

    A missing, unreadable or half-written file yields the default so a
    single bad write never stops the notifier.

    Args:
        filepath: Path to the JSON file.
        default: Value to return on any failure.

    Returns:
        Parsed JSON data or the default value.
    """
    logger = get_logger("utils")
    path = Path(filepath)

    if not path.exists():
        logger.debug(f"No file at {filepath}, using default")
        return default

    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read JSON from {filepath}: {e}")
        return default


def safe_write_json(filepath: str, data: Any, indent: int = 2) -> bool:
    """
    Safely write JSON data to a file using atomic write operation.

    Uses a temporary file and atomic rename to prevent data corruption
    if the write operation is interrupted.

    Args:
        filepath: Path to the JSON file.
        data: Data to serialize as JSON.
        indent: JSON indentation level. Defaults to 2.

    Returns:
        True if write was successful, False otherwise.
    """
    logger = get_logger("utils")

    try:
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(
            suffix=".json",
            prefix="notifier_",
            dir=path.parent
        )

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=indent, ensure_ascii=False)

            # Atomic rename (on POSIX) or copy+delete (on Windows)
            shutil.move(temp_path, filepath)
            logger.debug(f"Successfully wrote JSON to {filepath}")
            return True

        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Could not write JSON to {filepath}: {e}")
        return False


def get_env_var(name: str, required: bool = True, default: Optional[str] = None) -> Optional[str]:
    """
    Get an environment variable with optional requirement enforcement.

    Args:
        name: Name of the environment variable.
        required: If True, raises ValueError when variable is not set.
                  Defaults to True.
        default: Default value if variable is not set and not required.

    Returns:
        Value of the environment variable or default.

    Raises:
        ValueError: If required=True and the variable is not set.
    """
    value = os.environ.get(name)

    if value is None or value.strip() == "":
        if required:
            raise ValueError(f"Required environment variable '{name}' is not set")
        return default

    return value.strip()


def is_present(value: Any) -> bool:
    """
    Check whether a loosely-typed record field counts as set.

    None, empty strings, False and numeric zero are absent, the same
    values the portal script skips in its fallback chains. Empty lists
    and objects are present.
    """
    if value is None or value is False or value == "":
        return False
    if isinstance(value, (int, float)) and value == 0:
        return False
    return True


def to_text(value: Any) -> str:
    """
    Coerce a loosely-typed scalar to display text.

    Args:
        value: Any JSON scalar (or None).

    Returns:
        The value as a string, "" for None.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
