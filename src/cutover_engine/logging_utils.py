"""Logging helpers for the cutover engine.

Records logged on behalf of a plan carry its id in a ``plan_id`` attribute;
everything else is stamped with ``-`` so one format fits both.
"""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

from cutover_engine.config import LoggingSettings, load_settings

_logging_configured = False
_logging_lock = threading.Lock()

_logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | plan=%(plan_id)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class PlanContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "plan_id"):
            record.plan_id = "-"
        return True


class PlanLoggerAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("plan_id", self.extra["plan_id"])
        kwargs["extra"] = extra
        return msg, kwargs


def plan_logger(logger: logging.Logger, plan_id: str) -> PlanLoggerAdapter:
    return PlanLoggerAdapter(logger, {"plan_id": plan_id})


def _build_handlers(settings: LoggingSettings) -> list[logging.Handler]:
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)
    context = PlanContextFilter()

    stream_handler = logging.StreamHandler(sys.stderr)
    handlers: list[logging.Handler] = [stream_handler]

    if settings.file:
        try:
            Path(settings.file).parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(settings.file))
        except OSError as exc:
            _logger.warning("Failed to open log file %s: %s", settings.file, exc)

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context)
    return handlers


def configure_logging(level: str | None = None) -> None:
    """Install stderr (and optional file) handlers; ``level`` overrides settings."""
    global _logging_configured

    settings = load_settings().logging
    level_name = (level or settings.level).upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(level=numeric_level, handlers=_build_handlers(settings), force=True)

    _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    if not _logging_configured:
        with _logging_lock:
            if not _logging_configured:
                configure_logging()
    return logging.getLogger(name)
