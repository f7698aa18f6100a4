# shellcue/utils/logging.py
"""
Logging configuration for shellcue.

Library use stays silent (the package disables its loguru namespace on
import); the CLI, or a host that wants diagnostics, calls setup_logging().
"""
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from shellcue.constants import LOG_DIR, LOG_FORMAT, LOG_ROTATION, LOG_RETENTION
from shellcue.utils.enhanced_logging import EnhancedLogger

# Dictionary to store enhanced logger instances
_enhanced_loggers = {}


def setup_logging(debug: bool = False, log_dir: Optional[Path] = LOG_DIR) -> None:
    """
    Configure the application logging.

    Args:
        debug: Whether to enable debug logging.
        log_dir: Directory for the rotating text and JSON logs; None logs to stderr only.
    """
    logger.remove()
    logger.configure(extra={"component": "shellcue"})
    logger.enable("shellcue")

    # Suggestion lookups only log at debug level
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level="DEBUG" if debug else "WARNING",
        diagnose=debug,
    )

    if log_dir is None:
        return
    log_dir = Path(log_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Cannot create log directory {log_dir}: {e}")
        return

    # Several shell sessions may append to the same files
    log_file = log_dir / "shellcue.log"
    logger.add(
        log_file,
        format=LOG_FORMAT,
        level="DEBUG" if debug else "INFO",
        rotation=LOG_ROTATION,
        retention=LOG_RETENTION,
        compression="zip",
        enqueue=True,
    )

    json_log_file = log_dir / "shellcue_structured.log"
    logger.add(
        json_log_file,
        serialize=True,
        level="INFO",
        rotation=LOG_ROTATION,
        retention=LOG_RETENTION,
        compression="zip",
        enqueue=True,
    )

    logger.debug(f"Logging initialized. Log files: {log_file}, {json_log_file}")


def get_logger(name: str = "shellcue") -> EnhancedLogger:
    """
    Get the cached component logger for a module.

    Args:
        name: Component name, usually the module's __name__.

    Returns:
        An EnhancedLogger bound to that component.
    """
    enhanced_logger = _enhanced_loggers.get(name)
    if enhanced_logger is None:
        enhanced_logger = EnhancedLogger(name)
        _enhanced_loggers[name] = enhanced_logger
    return enhanced_logger
