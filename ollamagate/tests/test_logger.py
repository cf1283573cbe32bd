import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ollamagate.config.settings import Settings
from ollamagate.util.logger import build_logger, log_file_path


def _close(configured: logging.Logger) -> None:
    for handler in list(configured.handlers):
        handler.close()
        configured.removeHandler(handler)


def test_log_file_follows_request_log_dir(tmp_path):
    app_settings = Settings(request_log_dir=str(tmp_path / "gw-logs"), log_level="debug")
    configured = build_logger(app_settings, name="ollamagate-test-dir")
    try:
        file_handlers = [h for h in configured.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert Path(file_handlers[0].baseFilename) == (tmp_path / "gw-logs" / "ollamagate.log").resolve()
        assert configured.level == logging.DEBUG
    finally:
        _close(configured)


def test_log_file_disabled_with_request_log_file():
    app_settings = Settings(enable_request_log_file=False)
    assert log_file_path(app_settings) is None

    configured = build_logger(app_settings, name="ollamagate-test-nofile")
    try:
        assert not any(isinstance(h, RotatingFileHandler) for h in configured.handlers)
    finally:
        _close(configured)
