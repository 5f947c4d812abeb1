"""
Logging configuration module for contact_vault.

Provides centralized logging configuration with support for:
- Console and file logging
- Configurable log levels via environment variables
- Verbose mode for detailed output
- Colored output for better readability (when supported)
- A dedicated audit log for recovery decisions
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from contact_vault.utils.paths import resolve_config_dir

# Simplified format for console (less verbose)
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

# Verbose format (includes more details)
VERBOSE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
)

# Date format for log timestamps
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Environment variable names
ENV_LOG_LEVEL = "CONTACT_VAULT_LOG_LEVEL"
ENV_DEBUG = "CONTACT_VAULT_DEBUG"
ENV_LOG_FILE = "CONTACT_VAULT_LOG_FILE"

# Root logger name for the package
ROOT_LOGGER_NAME = "contact_vault"

# Logger receiving one line per scored recovery candidate
RECOVERY_AUDIT_LOGGER_NAME = "contact_vault.recovery.audit"

# Recovery audit format - millisecond timestamps for ordering decisions
AUDIT_LOG_FORMAT = "%(asctime)s.%(msecs)03d - %(levelname)s - %(message)s"


def default_log_dir() -> Path:
    """Get the default logs directory inside the configuration directory."""
    return resolve_config_dir() / "logs"


class ColoredFormatter(logging.Formatter):
    """
    A logging formatter that adds ANSI color codes to log messages.

    Colors are only applied when output is to a terminal that supports them.
    """

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
        use_colors: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors and self._supports_color()

    def _supports_color(self) -> bool:
        """Check if the terminal supports colors."""
        if not hasattr(sys.stderr, "isatty") or not sys.stderr.isatty():
            return False

        # https://no-color.org/
        if os.environ.get("NO_COLOR"):
            return False

        term = os.environ.get("TERM", "")
        return term != "dumb"

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record with optional colors."""
        # Copy so other handlers see the uncolored record
        record = logging.makeLogRecord(record.__dict__)

        if self.use_colors and record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]
            record.levelname = f"{color}{record.levelname}{self.RESET}"
            record.msg = f"{color}{record.msg}{self.RESET}"

        return super().format(record)


def get_log_level_from_env() -> int:
    """
    Get the logging level from environment variables.

    Checks CONTACT_VAULT_DEBUG and CONTACT_VAULT_LOG_LEVEL.

    Returns:
        Logging level constant (e.g., logging.DEBUG, logging.INFO)
    """
    if os.environ.get(ENV_DEBUG, "").lower() in ("1", "true", "yes"):
        return logging.DEBUG

    level_name = os.environ.get(ENV_LOG_LEVEL, "INFO").strip().upper()
    if level_name == "WARN":
        level_name = "WARNING"

    # getLevelName maps known names to ints and anything else to a string
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) and level > logging.NOTSET else logging.INFO


def _dated_log_name() -> str:
    return f"contact_vault_{datetime.now().strftime('%Y%m%d')}.log"


def get_log_file_path() -> Optional[Path]:
    """
    Get the log file path from environment or default location.

    Returns:
        Path to log file, or None if file logging is disabled
    """
    log_file = os.environ.get(ENV_LOG_FILE)
    if log_file is not None:
        if log_file.lower() in ("none", "disabled", ""):
            return None
        return Path(log_file)

    return default_log_dir() / _dated_log_name()


def setup_logging(
    level: Optional[int] = None,
    verbose: bool = False,
    log_dir: Optional[Path] = None,
    log_file: Optional[Path] = None,
    enable_file_logging: bool = True,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure logging for the contact_vault application.

    Sets up both console and file logging handlers with appropriate
    formatters and levels.

    Args:
        level: Logging level. If None, determined from environment variables.
        verbose: If True, use verbose format and DEBUG level.
        log_dir: Directory for log files. If provided, overrides default.
        log_file: Path to log file. If None, uses log_dir or default.
        enable_file_logging: If False, disable file logging entirely.
        use_colors: If True, use colored output for console (when supported).

    Returns:
        The root logger for contact_vault

    Example:
        setup_logging(verbose=True)
        setup_logging(log_dir=Path('/path/to/logs'))
        setup_logging(enable_file_logging=False)
    """
    if level is None:
        level = get_log_level_from_env()
    if verbose:
        level = logging.DEBUG

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    console_format = VERBOSE_FORMAT if verbose else CONSOLE_FORMAT

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)

    console_formatter: logging.Formatter
    if use_colors:
        console_formatter = ColoredFormatter(console_format, DATE_FORMAT)
    else:
        console_formatter = logging.Formatter(console_format, DATE_FORMAT)

    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if not enable_file_logging:
        return logger

    file_path: Optional[Path]
    if log_file:
        file_path = log_file
    elif log_dir:
        file_path = log_dir / _dated_log_name()
    else:
        file_path = get_log_file_path()

    if file_path:
        try:
            # The file always gets debug detail
            logger.addHandler(_file_handler(file_path, logging.DEBUG, VERBOSE_FORMAT))
            logger.debug(f"Log file: {file_path}")
        except OSError as e:
            logger.warning(f"Could not create log file {file_path}: {e}")

    return logger


def _file_handler(path: Path, level: int, fmt: str) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, DATE_FORMAT))
    return handler


def cleanup_old_logs(log_dir: Optional[Path] = None, keep_count: int = 10) -> int:
    """
    Clean up old log files, keeping only the most recent ones.

    Args:
        log_dir: Directory containing log files. Defaults to the config logs dir.
        keep_count: Number of log files to keep. Set to 0 to disable cleanup.

    Returns:
        Number of files deleted.
    """
    if keep_count <= 0:
        return 0

    logs_dir = log_dir or default_log_dir()
    if not logs_dir.exists():
        return 0

    deleted_count = 0
    for pattern in ("contact_vault_*.log", "recovery_*.log"):
        logs = sorted(
            logs_dir.glob(pattern), key=lambda p: p.stat().st_mtime, reverse=True
        )
        for old_log in logs[keep_count:]:
            try:
                old_log.unlink()
                deleted_count += 1
            except OSError:
                pass  # Ignore errors deleting old logs

    return deleted_count


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Returns a child logger of the contact_vault logger hierarchy.

    Args:
        name: Name of the module (typically __name__)

    Returns:
        Logger instance for the module
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    return logging.getLogger(name)


def setup_recovery_audit_log(
    log_dir: Optional[Path] = None, level: int = logging.DEBUG
) -> logging.Logger:
    """
    Set up the dedicated audit logger for recovery decisions.

    Every gathered candidate, its score breakdown and the selected winner
    are written to a timestamped recovery_<ts>.log file.

    Args:
        log_dir: Directory for the audit file. Defaults to the config logs dir.
        level: Logging level (default: DEBUG)

    Returns:
        The recovery audit logger
    """
    logger = logging.getLogger(RECOVERY_AUDIT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    logs_dir = log_dir or default_log_dir()
    file_path = logs_dir / f"recovery_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    try:
        logger.addHandler(_file_handler(file_path, level, AUDIT_LOG_FORMAT))
    except OSError as e:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(AUDIT_LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(console_handler)
        logger.warning(f"Could not create recovery audit log {file_path}: {e}")

    return logger


def get_recovery_audit_logger() -> logging.Logger:
    """Get the recovery audit logger (propagates to the package logger until set up)."""
    return logging.getLogger(RECOVERY_AUDIT_LOGGER_NAME)


__all__ = [
    "setup_logging",
    "get_logger",
    "cleanup_old_logs",
    "ColoredFormatter",
    "get_log_level_from_env",
    "get_log_file_path",
    "default_log_dir",
    "setup_recovery_audit_log",
    "get_recovery_audit_logger",
    "CONSOLE_FORMAT",
    "VERBOSE_FORMAT",
    "DATE_FORMAT",
    "AUDIT_LOG_FORMAT",
]
