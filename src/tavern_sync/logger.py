import json
import logging
import os
import sys

DEFAULT_LOG_FILE = "/tmp/tavern-sync.log"
QUIET_LOGGERS = ("urllib3", "watchdog", "httpx", "httpcore")

_DATEFMT = "%Y-%m-%d %H:%M:%S"
_SHORT_PATTERN = "[%(asctime)s] [%(levelname)s] %(message)s"
_NAMED_PATTERN = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ``ts``, ``level``, ``logger``, ``msg``.

    A traceback, when the record carries one, goes into ``exc``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _handler(
    handler: logging.Handler, pattern: str, debug_format: str
) -> logging.Handler:
    if debug_format == "json":
        handler.setFormatter(JsonFormatter(datefmt=_DATEFMT))
    else:
        handler.setFormatter(logging.Formatter(pattern, datefmt=_DATEFMT))
    return handler


def _resolve_level(mode: str, debug: bool, level: str | None = None) -> int:
    if debug:
        return logging.DEBUG
    fallback = level or ("WARNING" if mode == "mcp" else "INFO")
    name = os.getenv("LOG_LEVEL", fallback).upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
    default_level: str | None = None,
) -> None:
    """
    Configure root logging for a CLI run or a tool server.

    Args:
        mode: "cli" logs to stderr (plus *log_file* when given); "mcp" logs
            to a file only, since stdout carries the protocol.
        debug: Force DEBUG regardless of LOG_LEVEL.
        log_file: Log file path; in "mcp" mode it overrides LOG_FILE.
        debug_format: "text" or "json".
        default_level: Level name used when LOG_LEVEL is unset.

    Environment variables:
        LOG_LEVEL: DEBUG, INFO, WARNING or ERROR.  Defaults to WARNING in
                   "mcp" mode and INFO otherwise.
        LOG_FILE: Log file for "mcp" mode.  Default: /tmp/tavern-sync.log
    """
    level = _resolve_level(mode, debug, default_level)

    handlers: list[logging.Handler]
    if mode == "mcp":
        path = log_file or os.getenv("LOG_FILE", DEFAULT_LOG_FILE)
        handlers = [
            _handler(logging.FileHandler(path, mode="a"), _SHORT_PATTERN, debug_format)
        ]
    else:
        handlers = [
            _handler(logging.StreamHandler(sys.stderr), _SHORT_PATTERN, debug_format)
        ]
        if log_file:
            handlers.append(
                _handler(
                    logging.FileHandler(log_file, mode="a"),
                    _NAMED_PATTERN,
                    debug_format,
                )
            )

    logging.basicConfig(level=level, handlers=handlers)

    if level != logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
