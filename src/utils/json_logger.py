"""
Structured JSON Logger for TrackSync.

Engine loggers (``subtitle``, ``regions``, ``tracker``, ``reconciler``, ...)
are children of one ``tracksync`` logger. Handlers live only on that parent,
so ``configure_logging`` applies the level and log file from the engine
settings to every component at once.
"""

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

ROOT_LOGGER = "tracksync"

_configured: Optional[Tuple[str, str, bool]] = None


def _service_name(name: str) -> str:
    prefix = ROOT_LOGGER + "."
    return name[len(prefix):] if name.startswith(prefix) else name


def _payload(formatter: logging.Formatter, record: logging.LogRecord) -> Dict[str, Any]:
    return {
        "timestamp": formatter.formatTime(record, formatter.datefmt),
        "level": record.levelname,
        "service": _service_name(record.name),
        "request_id": getattr(record, "request_id", "N/A"),
        "message": record.getMessage(),
    }


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line, used for log files.

        {"timestamp": "...", "level": "INFO", "service": "reconciler",
         "request_id": "req_1a2b3c4d", "message": "Segment added",
         "data": {"segment_id": "region-..."}}

    ``data`` is only present when the call passed ``extra={"data": ...}``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = _payload(self, record)
        if hasattr(record, "data"):
            payload["data"] = record.data
        return json.dumps(payload, ensure_ascii=False, default=str)


class JsonColoredFormatter(logging.Formatter):
    """Console variant: same fields, colored by level."""

    COLORS = {
        "DEBUG": "\033[0;35m",
        "INFO": "\033[0;36m",
        "WARNING": "\033[0;33m",
        "ERROR": "\033[0;31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        payload = _payload(self, record)
        payload["data"] = getattr(record, "data", None)
        color = self.COLORS.get(record.levelname, self.RESET)
        return f"{color}{json.dumps(payload, ensure_ascii=False, default=str)}{self.RESET}"


def generate_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:8]}"


def configure_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    colored: bool = True,
) -> logging.Logger:
    """
    Install the console (and optional file) handler on the engine logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Falls back to $LOG_LEVEL, then INFO.
        log_file: Path of a JSON-lines log file. Parent directories are created.
        colored: Color console output by level.

    Calling again with the same arguments keeps the existing handlers; other
    arguments replace them.
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER)
    log_level = (log_level or os.getenv("LOG_LEVEL") or "INFO").upper()
    config = (log_level, log_file or "", colored)
    if root.handlers and config == _configured:
        return root

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    level = getattr(logging, log_level, logging.INFO)
    root.setLevel(level)
    root.propagate = False

    console = logging.StreamHandler()
    console.setFormatter(JsonColoredFormatter() if colored else JsonFormatter())
    console.setLevel(level)
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(JsonFormatter())
        file_handler.setLevel(level)
        root.addHandler(file_handler)

    _configured = config
    return root


def get_logger(name: str) -> logging.Logger:
    """Logger for one engine component, e.g. ``get_logger("regions")``."""
    root = logging.getLogger(ROOT_LOGGER)
    if not root.handlers:
        configure_logging()
    return root.getChild(name)


def log_with_request_id(
    logger: logging.Logger,
    message: str,
    level: int = logging.INFO,
    request_id: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
) -> str:
    """Log ``message`` tagged with ``request_id`` (generated if None) and return the id."""
    if request_id is None:
        request_id = generate_request_id()

    extra: Dict[str, Any] = {"request_id": request_id}
    if data is not None:
        extra["data"] = data

    logger.log(level, message, extra=extra)
    return request_id


class RequestContext:
    """
    Tags every record logged inside the block with one request id.

        with RequestContext(logger) as ctx:
            ctx.info("Decoding audio", data={"name": "take1.wav"})

    An exception leaving the block is logged as "Request failed" and re-raised.
    """

    def __init__(self, logger: logging.Logger, request_id: Optional[str] = None):
        self.logger = logger
        self.request_id = request_id or generate_request_id()

    def log(self, level: int, message: str, data: Optional[Dict[str, Any]] = None):
        log_with_request_id(self.logger, message, level, self.request_id, data)

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.log(logging.DEBUG, message, data)

    def info(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.log(logging.INFO, message, data)

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.log(logging.WARNING, message, data)

    def error(self, message: str, data: Optional[Dict[str, Any]] = None):
        self.log(logging.ERROR, message, data)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.error(
                "Request failed",
                data={"error": str(exc_val), "type": exc_type.__name__},
            )
        return False
