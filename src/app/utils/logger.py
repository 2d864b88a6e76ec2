import logging
import sys
from typing import Any, Optional, Union

from logging.handlers import TimedRotatingFileHandler

from src.app.core.config import get_settings

settings = get_settings()


def _resolve_log_level(log_level: Optional[Union[int, str]]) -> int:
    """Translate env/config log levels to logging ints."""

    value = log_level if log_level is not None else settings.LOG_LEVEL
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        candidate = getattr(logging, value.upper(), None)
        if isinstance(candidate, int):
            return candidate
        if value.isdigit():
            return int(value)
    raise ValueError(f"Invalid log level: {value}")


def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    text = str(value)
    if not text or any(ch.isspace() for ch in text):
        return repr(text)
    return text


def kv(**fields: Any) -> str:
    """
    Render `key=value` pairs in call order, the shape every gateway log line uses.
    None values are left out; blank or spaced values are quoted.
    """
    return " ".join(f"{key}={_format_value(value)}" for key, value in fields.items() if value is not None)


def get_logger(name: str, log_level: Optional[Union[int, str]] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Gateway logger: stdout always, plus a rotating file when `log_file`
    (or LOG_FILE) is set. Handlers are attached once per logger name.
    """

    logger = logging.getLogger(name)
    logger.setLevel(_resolve_log_level(log_level))
    logger.propagate = False

    if logger.handlers:
        return logger

    formatter = logging.Formatter(settings.LOG_FORMAT)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    target = settings.LOG_FILE if log_file is None else log_file
    if target:
        file_handler = TimedRotatingFileHandler(target, when='D', interval=2, backupCount=5, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
