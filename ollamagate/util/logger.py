"""Unified logger for the whole project."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ollamagate.config.settings import Settings, settings

LOGGER_NAME = "ollamagate"
LOG_FILE_NAME = "ollamagate.log"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 10
_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _normalize_level(raw: str) -> int:
    candidate = str(raw or "INFO").strip().upper()
    return {
        "CRITICAL": logging.CRITICAL,
        "ERROR": logging.ERROR,
        "WARNING": logging.WARNING,
        "INFO": logging.INFO,
        "DEBUG": logging.DEBUG,
    }.get(candidate, logging.INFO)


def log_file_path(app_settings: Settings) -> Path | None:
    """应用日志与请求日志同目录；关闭文件日志时返回 None。"""
    if not app_settings.enable_request_log_file or not app_settings.request_log_dir:
        return None
    return Path(app_settings.request_log_dir) / LOG_FILE_NAME


def build_logger(app_settings: Settings, name: str = LOGGER_NAME) -> logging.Logger:
    configured_logger = logging.getLogger(name)
    if configured_logger.handlers:
        return configured_logger

    resolved_level = _normalize_level(app_settings.log_level)
    configured_logger.setLevel(resolved_level)
    formatter = logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    configured_logger.addHandler(stream_handler)

    path = log_file_path(app_settings)
    if path is not None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            rotating_handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
            rotating_handler.setFormatter(formatter)
            configured_logger.addHandler(rotating_handler)
        except OSError as exc:
            configured_logger.warning("log file disabled path=%s error=%s", path, exc)

    configured_logger.propagate = False
    return configured_logger


logger = build_logger(settings)


def get_logger(name: str) -> logging.Logger:
    return logger.getChild(name)
