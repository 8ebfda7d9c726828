"""Logging configuration and setup."""

import logging
import logging.handlers
import sys

from attributionnav.core.config import LogFormat, Settings
from attributionnav.logging.formatters import ContextTextFormatter, JSONFormatter


def _build_formatter(log_format: LogFormat) -> logging.Formatter:
    if log_format == LogFormat.JSON:
        return JSONFormatter()
    return ContextTextFormatter()


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Installs a console handler and, when ``settings.logging.log_file`` is
    set, a size-rotated file handler. Existing root handlers are replaced.

    Args:
        settings: Application settings
    """
    config = settings.logging
    formatter = _build_formatter(config.format)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(config.level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_log_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Set third-party log levels to reduce noise
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.storage.echo else logging.WARNING
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
