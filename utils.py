"""
Utility helpers for filesystem paths and logging setup.

The engine itself never touches the filesystem; these helpers serve host
applications that configure logging from the engine's YAML config.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_project_root() -> Path:
    """Return the repository root directory."""
    return _PROJECT_ROOT


def _coerce_path(path_value: str | Path, *, allow_relative: bool = True) -> Path:
    """
    Convert a string/Path into an absolute project-root based Path.

    Args:
        path_value: Candidate filesystem path.
        allow_relative: If False, value must already be absolute.

    Returns:
        Absolute Path instance.
    """
    path = Path(path_value)
    if path.is_absolute() or not allow_relative:
        return path
    return get_project_root() / path


def resolve_log_path(log_path: str | Path) -> Path:
    """
    Convert a log file path to an absolute path under the project root when needed.

    Args:
        log_path: Configured log file path (relative or absolute).

    Returns:
        Absolute Path for logging output.
    """
    resolved = _coerce_path(log_path)
    if resolved.parent != resolved:
        resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Configure root logging based on config settings.

    An unknown level falls back to INFO; a format without a timestamp gets
    one prepended. Failure to open the log file is reported and logging
    continues on stdout only.

    Args:
        config: Configuration dictionary with a ``logging`` section
    """
    log_config = (config or {}).get("logging", {}) or {}

    level_name = str(log_config.get("level", "INFO")).upper()
    log_level = getattr(logging, level_name, None)
    invalid_level = not isinstance(log_level, int)
    if invalid_level:
        log_level = logging.INFO

    log_format = log_config.get("format") or DEFAULT_LOG_FORMAT
    if "%(asctime)s" not in log_format:
        log_format = "%(asctime)s - " + log_format

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    file_error: Optional[OSError] = None
    log_file = log_config.get("file")
    if log_file:
        try:
            handlers.append(logging.FileHandler(resolve_log_path(log_file)))
        except OSError as exc:
            file_error = exc

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True,
    )

    if invalid_level:
        logger.warning("Invalid log level '%s'; defaulting to INFO", level_name)
    if file_error is not None:
        logger.warning("Unable to open log file '%s': %s; logging to stdout only", log_file, file_error)
