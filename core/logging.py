"""
Centralized logging system with rotating file handlers, compression, and singleton pattern.
"""
import sys
import os
import re
import gzip
import shutil
import atexit
import logging
import logging.handlers
import threading
from pathlib import Path
from typing import Any, Dict
from pythonjsonlogger import jsonlogger
from core.config import settings


class ComponentFilter(logging.Filter):
    """Filter to ensure all log records have a component field."""

    def __init__(self, default_component: str = "app"):
        super().__init__()
        self.default_component = default_component

    def filter(self, record):
        if not hasattr(record, "component"):
            logger_name = record.name
            if logger_name.startswith(("uvicorn", "httpx")):
                record.component = "http"
            elif logger_name.startswith(("sqlalchemy", "alembic")):
                record.component = "database"
            elif logger_name.startswith("openai"):
                record.component = "llm"
            else:
                record.component = self.default_component
        return True


class SecurityFilter(logging.Filter):
    """Filter to remove sensitive information from logs."""

    SENSITIVE_KEYS = {
        "password", "token", "secret", "api_key", "authorization",
        "credential", "jwt", "bearer", "session_token", "admin_secret",
    }
    _LONG_KEY = re.compile(r"\b(?:sk-)?[A-Za-z0-9]{32,}\b")
    _BEARER = re.compile(r"Bearer\s+[A-Za-z0-9\-_=]+\.[A-Za-z0-9\-_=]+\.[A-Za-z0-9\-_=]+")
    _URL_PASSWORD = re.compile(r"://[^:/@]+:[^@]+@")

    def filter(self, record):
        if isinstance(record.msg, str):
            record.msg = self.sanitize(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = self._sanitize_value(record.args)
            else:
                record.args = tuple(self._sanitize_value(arg) for arg in record.args)
        return True

    @classmethod
    def sanitize(cls, message: str) -> str:
        message = cls._BEARER.sub("Bearer [REDACTED]", message)
        message = cls._LONG_KEY.sub("[REDACTED]", message)
        return cls._URL_PASSWORD.sub("://[REDACTED]:[REDACTED]@", message)

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.sanitize(value)
        if isinstance(value, dict):
            return {
                k: "[REDACTED]" if str(k).lower() in self.SENSITIVE_KEYS else v
                for k, v in value.items()
            }
        return value


class CompressedRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """Rotating file handler that gzips the most recent backup."""

    def __init__(self, *args, **kwargs):
        self.compress_logs = kwargs.pop("compress_logs", settings.log_compression)
        super().__init__(*args, **kwargs)

    def doRollover(self):
        super().doRollover()
        if not self.compress_logs or self.backupCount <= 0:
            return

        for i in range(self.backupCount - 1, 0, -1):
            older = f"{self.baseFilename}.{i}.gz"
            newer = f"{self.baseFilename}.{i + 1}.gz"
            if os.path.exists(older):
                if os.path.exists(newer):
                    os.remove(newer)
                os.rename(older, newer)

        backup_file = f"{self.baseFilename}.1"
        if os.path.exists(backup_file):
            try:
                with open(backup_file, "rb") as f_in, gzip.open(f"{backup_file}.gz", "wb") as f_out:
                    shutil.copyfileobj(f_in, f_out)
                os.remove(backup_file)
            except OSError as e:
                sys.stderr.write(f"Failed to compress log file {backup_file}: {e}\n")


# LogRecord attributes that extra= may not overwrite
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class StructuredLogger:
    """A logger wrapper that accepts keyword fields alongside the message."""

    def __init__(self, name: str, logger: logging.Logger):
        self.name = name
        self._logger = logger

    def _log(self, level: int, msg: str, /, *args, **kwargs):
        exc_info = kwargs.pop("exc_info", False)
        extra = dict(kwargs.pop("extra", {}) or {})
        extra.setdefault("component", self.name)

        if settings.log_format == "json":
            # JsonFormatter serialises everything in extra
            for key, value in kwargs.items():
                if key in _RESERVED_ATTRS:
                    key = f"{key}_"
                extra[key] = "[REDACTED]" if key.lower() in SecurityFilter.SENSITIVE_KEYS else value
        elif kwargs:
            fields = ", ".join(f"{key}={value}" for key, value in kwargs.items())
            msg = f"{msg} [{fields}]"

        self._logger.log(level, msg, *args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, /, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, /, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, /, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, /, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)


# Component -> logger names routed to that component's file
COMPONENT_LOGGERS = {
    "security": ["security", "auth"],
    "llm": ["llm", "ai_manager", "openai"],
    "database": ["database", "sqlalchemy.engine", "alembic"],
    "access": ["access", "uvicorn.access"],
}


class CentralizedLogManager:
    """Singleton log manager with rotating handlers and compression."""

    _instance = None
    _lock = threading.Lock()
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return
            self._loggers: Dict[str, StructuredLogger] = {}
            self._handlers: Dict[str, logging.Handler] = {}
            self._log_directory = Path(settings.log_directory)
            self._setup_root_logger()
            self._setup_component_loggers()
            self._initialized = True

    def _create_formatter(self, include_component: bool) -> logging.Formatter:
        if settings.log_format == "json":
            fmt = "%(asctime)s %(name)s %(levelname)s %(message)s"
            if include_component:
                fmt = "%(asctime)s %(name)s %(levelname)s %(component)s %(message)s"
            return jsonlogger.JsonFormatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%S")

        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        if include_component:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - [%(component)s] - %(message)s"
        return logging.Formatter(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def _create_rotating_handler(self, log_file: str, level: int = logging.INFO) -> logging.Handler:
        self._log_directory.mkdir(parents=True, exist_ok=True)
        handler = CompressedRotatingFileHandler(
            filename=str(self._log_directory / log_file),
            maxBytes=settings.log_file_max_size_mb * 1024 * 1024,
            backupCount=settings.log_file_backup_count,
            compress_logs=settings.log_compression,
            encoding="utf-8",
        )
        handler.setLevel(level)
        handler.addFilter(ComponentFilter())
        handler.addFilter(SecurityFilter())
        handler.setFormatter(self._create_formatter(include_component=True))
        return handler

    def _create_console_handler(self) -> logging.Handler:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
        handler.addFilter(ComponentFilter())
        handler.addFilter(SecurityFilter())
        handler.setFormatter(self._create_formatter(include_component=False))
        return handler

    def _setup_root_logger(self):
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

        console_handler = self._create_console_handler()
        root_logger.addHandler(console_handler)
        self._handlers["console"] = console_handler

        if settings.enable_file_logging:
            self._handlers["app"] = self._create_rotating_handler(settings.app_log_file)
            self._handlers["error"] = self._create_rotating_handler(settings.error_log_file, logging.ERROR)
            root_logger.addHandler(self._handlers["app"])
            root_logger.addHandler(self._handlers["error"])

    def _setup_component_loggers(self):
        if not settings.enable_file_logging:
            return

        files = {
            "security": settings.security_log_file,
            "llm": settings.llm_log_file,
            "database": settings.database_log_file,
            "access": settings.access_log_file,
        }
        for component, logger_names in COMPONENT_LOGGERS.items():
            level = logging.INFO
            if component == "database" and not settings.enable_sql_logging:
                level = logging.WARNING
            handler = self._create_rotating_handler(files[component], level)
            self._handlers[component] = handler
            for logger_name in logger_names:
                # Component loggers still propagate to the console via root
                logging.getLogger(logger_name).addHandler(handler)

    def get_logger(self, name: str) -> StructuredLogger:
        """Get a structured logger instance for a component."""
        if name not in self._loggers:
            self._loggers[name] = StructuredLogger(name, logging.getLogger(name))
        return self._loggers[name]

    def shutdown(self):
        """Close every handler this manager attached."""
        for handler_name, handler in list(self._handlers.items()):
            try:
                handler.close()
            except OSError as e:
                sys.stderr.write(f"Error closing handler {handler_name}: {e}\n")
        self._handlers.clear()
        self._loggers.clear()
        logging.shutdown()
        self._initialized = False
        type(self)._instance = None


_log_manager = None


def setup_logging() -> CentralizedLogManager:
    """Setup centralized logging system."""
    global _log_manager
    if _log_manager is None:
        _log_manager = CentralizedLogManager()
    return _log_manager


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return setup_logging().get_logger(name)


def shutdown_logging():
    """Shutdown logging system gracefully."""
    global _log_manager
    if _log_manager is not None:
        _log_manager.shutdown()
        _log_manager = None


# Pre-configured logger instances for common components
app_logger = get_logger("app")
security_logger = get_logger("security")
llm_logger = get_logger("llm")
database_logger = get_logger("database")

atexit.register(shutdown_logging)
