"""
Logging setup for the Document Compiler.

Everything comes from the `logging` config section: level, format, console
output, the rotating log file and the third-party loggers to quiet.
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Iterable, Optional

DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 3
#: Provider SDK loggers that are noisy at INFO while streaming.
DEFAULT_QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "google.generativeai")


def _file_handler(log_config: Dict[str, Any], formatter: logging.Formatter) -> Optional[logging.Handler]:
    log_file_path = log_config.get('log_file')
    if not log_file_path:
        return None
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        log_file_path,
        maxBytes=int(log_config.get('max_bytes', DEFAULT_MAX_BYTES)),
        backupCount=int(log_config.get('backup_count', DEFAULT_BACKUP_COUNT)),
        encoding='utf-8'
    )
    handler.setFormatter(formatter)
    return handler


def _quiet(logger_names: Iterable[str]) -> None:
    for name in logger_names:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging(config: Dict[str, Any]) -> None:
    """
    Configures the root logger from the `logging` config section.

    Existing root handlers are replaced, so calling this twice does not
    duplicate output. A log file that cannot be opened is reported and
    skipped; console logging still works.

    Args:
        config: The loaded configuration dictionary.
    """
    log_config = config.get('logging', {})
    level_name = str(log_config.get('level', 'INFO')).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = logging.Formatter(log_config.get('format') or DEFAULT_LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_config.get('log_to_console', True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    try:
        file_handler = _file_handler(log_config, formatter)
    except OSError as e:
        file_handler = None
        logging.error(f"Failed to configure file logging to {log_config.get('log_file')}: {e}")
    if file_handler is not None:
        root_logger.addHandler(file_handler)

    _quiet(log_config.get('quiet_loggers', DEFAULT_QUIET_LOGGERS))

    destinations = [name for name, on in (("console", log_config.get('log_to_console', True)),
                                          ("file", file_handler is not None)) if on]
    logging.info(f"Logging at {level_name} to {', '.join(destinations) or 'nowhere'}")
