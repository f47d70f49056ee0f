"""
Logging Configuration for the Scope of Appointment service.

Provides structured logging with:
- JSON output for log aggregation (APP_LOG_JSON=true)
- Colored single-line output for development
- request_id / agent_id correlation through context variables, set by
  RequestIDMiddleware and the agent auth dependency
- Timing of document rendering

Signing tokens are credentials: log token_hint(token), never the token.
"""

import asyncio
import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Dict, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
agent_id_var: ContextVar[Optional[str]] = ContextVar("agent_id", default=None)

NOISY_LOGGERS = ("urllib3", "httpx", "botocore", "boto3", "aiosqlite", "python_http_client")


def _correlation() -> Dict[str, str]:
    context = {}
    request_id = request_id_var.get()
    if request_id:
        context["request_id"] = request_id
    agent_id = agent_id_var.get()
    if agent_id:
        context["agent_id"] = agent_id
    return context


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_correlation())
        entry.update(getattr(record, "extra_data", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored output for a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        line = f"{stamp} {color}{record.levelname:8s}{self.RESET} [{record.name}] {record.getMessage()}"

        fields = {**_correlation(), **(getattr(record, "extra_data", None) or {})}
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """Adapter that merges its bound fields into extra_data."""

    def process(self, msg: str, kwargs: Dict) -> tuple:
        extra = dict(kwargs.get("extra") or {})
        extra["extra_data"] = {**self.extra, **(extra.get("extra_data") or {})}
        kwargs["extra"] = extra
        return msg, kwargs


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        level: Root log level name
        json_output: JSON lines instead of colored text
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if json_output else ReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, **fields) -> ContextLogger:
    """Logger that adds `fields` to every record it emits."""
    return ContextLogger(logging.getLogger(name), fields)


def log_performance(name: Optional[str] = None) -> Callable:
    """Log the duration of a sync or async call under the "performance" logger."""

    def decorator(func: Callable) -> Callable:
        label = name or func.__name__
        logger = get_logger("performance")

        def report(start: float, error: Optional[BaseException] = None) -> None:
            data = {"duration_ms": int((time.perf_counter() - start) * 1000)}
            if error is None:
                logger.info(f"{label} completed", extra={"extra_data": data})
            else:
                data["error"] = str(error)
                logger.error(f"{label} failed", extra={"extra_data": data})

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    report(start, e)
                    raise
                report(start)
                return result
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                report(start, e)
                raise
            report(start)
            return result
        return sync_wrapper

    return decorator
