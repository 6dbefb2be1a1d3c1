"""Logging setup: a business logger (file and console) and a filtered engine logger."""

import json
import logging
import os
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

LOGGER_NAME = "tcpgate"
CONSOLE_LOGGER_NAME = "tcpgate.console"

TRACE = 5
PANIC = logging.CRITICAL + 5
DISABLED = logging.CRITICAL + 10

_LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": PANIC,
    "disabled": DISABLED,
}

_NAMES = {
    TRACE: ("trace", "TRC"),
    logging.DEBUG: ("debug", "DBG"),
    logging.INFO: ("info", "INF"),
    logging.WARNING: ("warn", "WRN"),
    logging.ERROR: ("error", "ERR"),
    logging.CRITICAL: ("fatal", "FTL"),
    PANIC: ("panic", "PNC"),
}


@dataclass
class LoggerConfig:
    level: str = "info"
    path: str = "./logs"
    stdout: bool = True
    filename: str = "server.log"
    max_size: int = 100
    max_backups: int = 3
    max_age: int = 30
    engine_level: str = "warn"


def default_logger_config() -> LoggerConfig:
    """Return the default logging configuration."""
    return LoggerConfig()


def parse_level(name: str, fallback: int) -> int:
    """Map a level name such as ``"warn"`` to a logging level, else ``fallback``."""
    return _LEVELS.get(str(name).strip().lower(), fallback)


def _timestamp(record: logging.LogRecord) -> str:
    moment = datetime.fromtimestamp(record.created)
    return f"{moment.strftime('%Y-%m-%d %H:%M:%S')}.{int(record.msecs):03d}"


def _fields(record: logging.LogRecord) -> dict:
    fields = getattr(record, "fields", None)
    return dict(fields) if isinstance(fields, dict) else {}


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "level": _NAMES.get(record.levelno, (record.levelname.lower(), ""))[0],
            "time": _timestamp(record),
            "caller": f"{record.filename}:{record.lineno}",
        }
        entry.update(_fields(record))
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        entry["message"] = record.getMessage()
        return json.dumps(entry, ensure_ascii=False, default=str)


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        short = _NAMES.get(record.levelno, ("", record.levelname[:3].upper()))[1]
        parts = [
            _timestamp(record),
            short,
            f"{record.filename}:{record.lineno}",
            ">",
            record.getMessage(),
        ]
        parts.extend(f"{key}={value}" for key, value in _fields(record).items())
        text = " ".join(parts)
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return text


class _State:
    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.initialized = False
        self.engine_level = logging.WARNING


_state = _State()


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_ConsoleFormatter())
    return handler


def _reset(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False


def _install(logger: logging.Logger, handlers: List[logging.Handler], level: int) -> None:
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)


def init_logging(cfg: Optional[LoggerConfig] = None) -> None:
    """(Re)configure the business and console loggers."""
    cfg = cfg or default_logger_config()
    with _state.lock:
        _state.engine_level = parse_level(cfg.engine_level, logging.WARNING)
        level = parse_level(cfg.level, logging.INFO)

        main_logger = logging.getLogger(LOGGER_NAME)
        console_logger = logging.getLogger(CONSOLE_LOGGER_NAME)
        _reset(main_logger)
        _reset(console_logger)

        console_handlers: List[logging.Handler] = []
        if cfg.stdout:
            console_handlers.append(_console_handler())

        file_handlers: List[logging.Handler] = []
        if cfg.path:
            try:
                os.makedirs(cfg.path, exist_ok=True)
            except OSError:
                fallback = [_console_handler()]
                _install(main_logger, fallback, level)
                _install(console_logger, fallback, level)
                _state.initialized = True
                return
            try:
                file_handler = logging.FileHandler(
                    os.path.join(cfg.path, cfg.filename), mode="a", encoding="utf-8"
                )
            except OSError:
                pass
            else:
                file_handler.setFormatter(_JsonFormatter())
                file_handlers.append(file_handler)

        combined = file_handlers + console_handlers
        if not combined:
            level = DISABLED
            stderr_handler = logging.StreamHandler(sys.stderr)
            stderr_handler.setFormatter(_JsonFormatter())
            combined = [stderr_handler]
        _install(main_logger, combined, level)
        _install(console_logger, console_handlers or combined, level)
        _state.initialized = True


def _ensure_initialized() -> None:
    with _state.lock:
        if not _state.initialized:
            init_logging(None)


def get_logger() -> logging.Logger:
    """Return the business logger, initialising logging with defaults if needed."""
    _ensure_initialized()
    return logging.getLogger(LOGGER_NAME)


def get_console_logger() -> logging.Logger:
    """Return the console logger, initialising logging with defaults if needed."""
    _ensure_initialized()
    return logging.getLogger(CONSOLE_LOGGER_NAME)


class EngineLogAdapter:
    """Logger for the network engine, filtered by its own level."""

    def _emit(self, level: int, msg: str, args: tuple) -> None:
        if _state.engine_level <= level:
            get_console_logger().log(level, msg, *args, stacklevel=3)

    def debug(self, msg, *args):
        self._emit(logging.DEBUG, msg, args)

    def info(self, msg, *args):
        self._emit(logging.INFO, msg, args)

    def warning(self, msg, *args):
        self._emit(logging.WARNING, msg, args)

    def error(self, msg, *args):
        self._emit(logging.ERROR, msg, args)

    def fatal(self, msg, *args):
        """Log at fatal level and exit the process with status 1."""
        get_console_logger().critical(msg, *args, stacklevel=2)
        raise SystemExit(1)