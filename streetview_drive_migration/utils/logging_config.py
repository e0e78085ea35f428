"""
Logging setup for the migration shells.

Console output always; a rotating log file plus an errors-only companion
file when ``LoggingConfig.file`` is set. JSON output keeps the photo and
file a record is about, so one photo's history can be pulled out of a run.
"""
import json
import logging
import logging.handlers
from pathlib import Path
from typing import Any, Dict, Optional

from streetview_drive_migration.config import LoggingConfig

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Attributes passed through ``extra=`` that JSON output carries over.
CONTEXT_FIELDS = ('photo_id', 'file_name', 'file_id')

# Library loggers held at a floor level whatever the configured level is.
QUIET_LOGGERS = {
    'googleapiclient.discovery_cache': logging.ERROR,
    'urllib3': logging.WARNING,
    'engineio.server': logging.WARNING,
    'socketio.server': logging.WARNING,
}


def configure_logging(config: LoggingConfig, level: Optional[str] = None) -> None:
    """
    Apply the ``logging`` section of the configuration.

    Args:
        config: Logging section of the loaded configuration
        level: Level given on the command line; overrides ``config.level``
    """
    setup_logging(
        log_file=config.file,
        level=level or config.level,
        enable_json=config.enable_json,
        max_bytes=config.max_file_mb * 1024 * 1024,
        backup_count=config.backup_count,
        separate_error_log=config.error_log,
    )


def setup_logging(
    log_file: Optional[str] = None,
    level: str = "INFO",
    enable_json: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    separate_error_log: bool = True
) -> None:
    """
    Replace the root logger's handlers.

    Args:
        log_file: Path to the log file, or None for console only
        level: Logging level name, case-insensitive
        enable_json: Write one JSON object per record instead of text
        max_bytes: Size at which a log file is rotated
        backup_count: Rotated files kept per log
        separate_error_log: Also write ERROR records to ``<name>_error<ext>``
    """
    root_logger = logging.getLogger()
    root_logger.handlers = []

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    formatter = JsonFormatter() if enable_json else logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for name, floor in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(floor, log_level))

    if not log_file:
        return

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    root_logger.addHandler(_rotating_handler(log_path, log_level, formatter, max_bytes, backup_count))

    if separate_error_log:
        error_path = log_path.with_name(f"{log_path.stem}_error{log_path.suffix}")
        root_logger.addHandler(
            _rotating_handler(error_path, logging.ERROR, formatter, max_bytes, backup_count)
        )


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter,
                      max_bytes: int, backup_count: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


class JsonFormatter(logging.Formatter):
    """JSON formatter; adds the photo context attached to a record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': self.formatTime(record, DATE_FORMAT),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)
