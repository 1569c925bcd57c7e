import logging
from logging.handlers import RotatingFileHandler

import pytest

from document_compiler.logger_setup import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

def test_setup_logging_console_and_file(restore_root_logger, tmp_path):
    log_file = tmp_path / "logs" / "app.log"
    setup_logging({'logging': {'level': 'debug', 'log_file': str(log_file), 'log_to_console': True}})

    root = restore_root_logger
    assert root.level == logging.DEBUG
    assert any(isinstance(h, RotatingFileHandler) for h in root.handlers)
    assert log_file.parent.exists()

def test_setup_logging_file_disabled(restore_root_logger):
    setup_logging({'logging': {'level': 'WARNING', 'log_file': None, 'log_to_console': True}})

    root = restore_root_logger
    assert root.level == logging.WARNING
    assert not any(isinstance(h, RotatingFileHandler) for h in root.handlers)
    assert len(root.handlers) == 1

def test_setup_logging_unknown_level_defaults_to_info(restore_root_logger):
    setup_logging({'logging': {'level': 'LOUD', 'log_to_console': False}})
    assert restore_root_logger.level == logging.INFO

def test_format_and_rotation_come_from_config(restore_root_logger, tmp_path):
    log_file = tmp_path / "app.log"
    setup_logging({'logging': {
        'log_file': str(log_file),
        'log_to_console': False,
        'format': '%(levelname)s|%(message)s',
        'max_bytes': 1024,
        'backup_count': 7,
    }})

    handlers = restore_root_logger.handlers
    assert len(handlers) == 1
    handler = handlers[0]
    assert isinstance(handler, RotatingFileHandler)
    assert handler.maxBytes == 1024
    assert handler.backupCount == 7
    assert handler.formatter._fmt == '%(levelname)s|%(message)s'

def test_quiet_loggers_are_raised_to_warning(restore_root_logger):
    noisy = logging.getLogger("document_compiler.tests.noisy")
    noisy.setLevel(logging.NOTSET)
    setup_logging({'logging': {'log_to_console': False, 'quiet_loggers': ["document_compiler.tests.noisy"]}})
    assert noisy.level == logging.WARNING

def test_unwritable_log_file_keeps_console_logging(restore_root_logger, tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    setup_logging({'logging': {'log_file': str(blocker / "app.log"), 'log_to_console': True}})

    handlers = restore_root_logger.handlers
    assert len(handlers) == 1
    assert not isinstance(handlers[0], RotatingFileHandler)
