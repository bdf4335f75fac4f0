from __future__ import annotations

import json
import logging
import sys
from logging import LogRecord
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


_STDLIB_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "apscheduler.executors.default")


class InterceptHandler(logging.Handler):
    """Route stdlib logging (uvicorn, SQLAlchemy, APScheduler) through Loguru."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(record.msg)

        extra = {key: value for key, value in record.__dict__.items() if key not in _STDLIB_RECORD_ATTRS}
        bound = logger.bind(logger_name=record.name, **extra)
        bound.opt(depth=6, exception=record.exc_info).log(level, message.replace("{", "{{").replace("}", "}}"))


def _render(message: "logger.Message", context: Dict[str, Any]) -> None:
    record = message.record
    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["extra"].get("logger_name", record["name"]),
        **context,
    }

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    for key, value in record["extra"].items():
        if key != "logger_name":
            payload[key] = value

    if record["exception"] is not None:
        exc_type, exc_value, _ = record["exception"]
        payload["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": str(exc_value) if exc_value else None,
        }

    sys.stdout.write(json.dumps(payload, default=str) + "\n")
    sys.stdout.flush()


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Install the JSON Loguru sink and bridge stdlib logging into it."""

    logger.remove()
    context = {"service": service_name, "environment": environment, "version": version}
    logger.add(lambda message: _render(message, context), level=level, backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
