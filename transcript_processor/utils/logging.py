"""
Logging for transcript runs.

Records go to the terminal through Rich (stderr, so command output stays
clean) and, when LOG_FILE_PATH is set, to a file as JSON lines. Every record
emitted during a run carries the run context: which transcript source is
being processed, which spreadsheet it feeds and the current pipeline step.
"""

import contextlib
import contextvars
import functools
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from rich.console import Console
from rich.logging import RichHandler

from transcript_processor.config import get_settings

RUN_CONTEXT_KEYS = ("source", "spreadsheet", "step")

THIRD_PARTY_LOGGERS = ("httpx", "httpcore", "openai", "aiohttp")

_run_context: contextvars.ContextVar[Dict[str, str]] = contextvars.ContextVar("run_context", default={})

# Fields a caller may add through `extra=` that belong in the JSON line.
_EXTRA_FIELDS = (
    "duration_seconds",
    "error",
    "requested_fields",
    "current_headers",
    "log_level",
    "log_file",
)


@contextlib.contextmanager
def run_context(**values: str) -> Iterator[None]:
    """
    Attach run context to every record logged inside the block.

    Nested blocks override keys for their duration only.

    Raises:
        ValueError: For keys other than source, spreadsheet and step
    """
    unknown = set(values) - set(RUN_CONTEXT_KEYS)
    if unknown:
        raise ValueError(f"Unknown run context keys: {sorted(unknown)}")

    token = _run_context.set({**_run_context.get(), **values})
    try:
        yield
    finally:
        _run_context.reset(token)


class RunContextFilter(logging.Filter):
    """Copy the active run context onto each record (None when unset)."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _run_context.get()
        for key in RUN_CONTEXT_KEYS:
            setattr(record, key, context.get(key))
        return True


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record for the run log file."""

    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in RUN_CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                line[key] = value
        for key in _EXTRA_FIELDS:
            if hasattr(record, key):
                line[key] = getattr(record, key)
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)

        return json.dumps(line, default=str, ensure_ascii=False)


def setup_logging(log_level: Optional[str] = None, log_file_path: Optional[Path] = None) -> None:
    """
    Configure the root logger for one CLI invocation.

    Args:
        log_level: Logging level (defaults to settings)
        log_file_path: JSON-lines log file (defaults to settings; none if unset)
    """
    settings = get_settings()
    log_level = (log_level or settings.log_level).upper()
    log_file_path = log_file_path or settings.get_log_file_path()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        if any(isinstance(f, RunContextFilter) for f in handler.filters):
            handler.close()

    context_filter = RunContextFilter()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=settings.dev_mode,
    )
    console_handler.addFilter(context_filter)
    root_logger.addHandler(console_handler)

    if log_file_path:
        file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
        file_handler.addFilter(context_filter)
        file_handler.setFormatter(JsonLineFormatter())
        root_logger.addHandler(file_handler)

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging configured",
        extra={"log_level": log_level, "log_file": str(log_file_path) if log_file_path else None},
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_step(step: str):
    """
    Run an async pipeline step under `run_context(step=...)` and log its duration.

    Usage:
        @log_step("extract")
        async def extract(self, markdown, headers) -> Extraction:
            ...
    """

    def decorator(func):
        logger = get_logger(func.__module__)

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with run_context(step=step):
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    logger.debug(
                        f"Step '{step}' failed",
                        extra={"duration_seconds": time.perf_counter() - start, "error": str(e)},
                    )
                    raise
                logger.debug(
                    f"Step '{step}' finished",
                    extra={"duration_seconds": time.perf_counter() - start},
                )
                return result

        return wrapper

    return decorator
