"""
Logging setup for the BookMate sync coordinator.

Components log through ``get_logger(__name__)`` and attach structured fields
with ``extra={"extra_data": {...}}``. Every record is stamped with the name of
the asyncio task that produced it (``ConnectivityProbe``, ``Sync-3`` ...), and
credential-like fields are masked before they reach a handler.
"""

import asyncio
import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any

import pytz

SENSITIVE_KEYS = {"password", "id_token", "idToken", "refresh_token", "refreshToken", "api_key"}
REDACTED = "***"


def redact(data: Any) -> Any:
    """Copy of ``data`` with credential-like values masked, recursing into dicts and lists"""
    if isinstance(data, dict):
        return {
            key: REDACTED if key in SENSITIVE_KEYS and value else redact(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact(item) for item in data]
    return data


class TaskContextFilter(logging.Filter):
    """Adds ``task_name`` (the current asyncio task, or ``main``) to each record"""

    def filter(self, record: logging.LogRecord) -> bool:
        task_name = "main"
        try:
            task = asyncio.current_task()
        except RuntimeError:
            task = None
        if task is not None:
            task_name = task.get_name()
        record.task_name = task_name

        if hasattr(record, "extra_data"):
            record.extra_data = redact(record.extra_data)
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line for production log shipping"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(pytz.UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "task": getattr(record, "task_name", "main"),
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = getattr(record, "extra_data", None)
        if extra:
            log_entry["context"] = extra

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Compact colored console output for development"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[92m',
        'WARNING': '\033[93m',
        'ERROR': '\033[91m',
        'CRITICAL': '\033[95m',
    }
    RESET = '\033[0m'

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        if self.use_color:
            level = f"{self.COLORS.get(level, '')}{level}{self.RESET}"

        task = getattr(record, "task_name", "main")
        line = f"{datetime.now().strftime('%H:%M:%S')} {level:<8} {record.name} [{task}] {record.getMessage()}"

        extra = getattr(record, "extra_data", None)
        if extra:
            line += " " + " ".join(f"{key}={value}" for key, value in extra.items())

        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"

        return line


class LoggingConfig:
    """Builds the handler set for the root logger from ``LOGGING_CONFIG``"""

    QUIET_LOGGERS = ("aiohttp", "aiohttp.access", "aiohttp.client", "asyncio", "urllib3")

    def __init__(self,
                 log_level: str = "INFO",
                 log_dir: Optional[str] = None,
                 enable_file_logging: bool = True,
                 enable_console_logging: bool = True,
                 structured_logging: bool = False,
                 max_log_size_mb: int = 10,
                 backup_count: int = 5):
        """
        Args:
            log_level: Root level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for ``bookmate.log`` and ``errors.log``
            enable_file_logging: Write rotating log files
            enable_console_logging: Write to stdout
            structured_logging: JSON lines everywhere instead of plain text
            max_log_size_mb: Rotation size per file
            backup_count: Rotated files kept per log
        """
        self.log_level = logging.getLevelName(log_level.upper())
        if not isinstance(self.log_level, int):
            raise ValueError(f"Unknown log level: {log_level}")

        self.log_dir = Path(log_dir or "./logs")
        self.enable_file_logging = enable_file_logging
        self.enable_console_logging = enable_console_logging
        self.structured_logging = structured_logging
        self.max_bytes = max_log_size_mb * 1024 * 1024
        self.backup_count = backup_count

    def configure(self) -> None:
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
            handler.close()
        root_logger.setLevel(self.log_level)

        context_filter = TaskContextFilter()
        for handler in self._build_handlers():
            handler.addFilter(context_filter)
            root_logger.addHandler(handler)

        for name in self.QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

        logging.getLogger(__name__).info("Logging configured", extra={"extra_data": {
            "level": logging.getLevelName(self.log_level),
            "structured": self.structured_logging,
            "log_dir": str(self.log_dir) if self.enable_file_logging else None,
        }})

    def _build_handlers(self):
        handlers = []

        if self.enable_console_logging:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(StructuredFormatter() if self.structured_logging
                                 else ConsoleFormatter(use_color=sys.stdout.isatty()))
            handlers.append(console)

        if self.enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            file_formatter = StructuredFormatter() if self.structured_logging else logging.Formatter(
                '%(asctime)s %(levelname)-8s %(name)s [%(task_name)s] %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )

            for filename, level in (("bookmate.log", self.log_level), ("errors.log", logging.ERROR)):
                handler = logging.handlers.RotatingFileHandler(
                    self.log_dir / filename,
                    maxBytes=self.max_bytes,
                    backupCount=self.backup_count,
                    encoding='utf-8'
                )
                handler.setLevel(level)
                handler.setFormatter(file_formatter)
                handlers.append(handler)

        return handlers


def setup_logging(config_dict: Optional[Dict[str, Any]] = None) -> LoggingConfig:
    """
    Configure the root logger.

    Args:
        config_dict: ``LOGGING_CONFIG``-shaped overrides; missing keys come
            from the environment

    Returns:
        The applied configuration
    """
    is_production = os.getenv("ENVIRONMENT", "development").lower() == "production"
    settings = {
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_dir": os.getenv("LOG_DIR", "./logs"),
        "enable_file_logging": os.getenv("ENABLE_FILE_LOGGING", "true").lower() == "true",
        "enable_console_logging": os.getenv("ENABLE_CONSOLE_LOGGING", "true").lower() == "true",
        "structured_logging": is_production,
    }
    settings.update(config_dict or {})

    config = LoggingConfig(**settings)
    config.configure()
    return config


def get_logger(name: str) -> logging.Logger:
    """Module logger; nothing is configured until ``setup_logging`` runs"""
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, message: str, **context) -> None:
    """Log a message with structured context fields"""
    logger.log(level, message, extra={"extra_data": context})


def log_error_with_context(logger: logging.Logger, error: Exception,
                           operation: str, **context) -> None:
    """Log a failed operation with its error type and message"""
    log_with_context(logger, logging.ERROR, f"{operation} failed: {error}",
                     operation=operation, error_type=type(error).__name__,
                     error_message=str(error), **context)
