from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(project_id)s | %(user_id)s | %(operation)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

LOG_PROJECT_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_project_id", default=None)
LOG_USER_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_user_id", default=None)
LOG_OPERATION: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("log_operation", default=None)


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.project_id = LOG_PROJECT_ID.get() or "-"
        record.user_id = LOG_USER_ID.get() or "-"
        record.operation = LOG_OPERATION.get() or "-"
        return True


@contextmanager
def log_context(
    project_id: Optional[str] = None,
    user_id: Optional[str] = None,
    operation: Optional[str] = None,
) -> Iterator[None]:
    tokens = []
    if project_id is not None:
        tokens.append((LOG_PROJECT_ID, LOG_PROJECT_ID.set(project_id)))
    if user_id is not None:
        tokens.append((LOG_USER_ID, LOG_USER_ID.set(user_id)))
    if operation is not None:
        tokens.append((LOG_OPERATION, LOG_OPERATION.set(operation)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def _level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    log_file: str = "logs/stripboard.log",
    level: Union[int, str] = logging.INFO,
    enable_console: bool = False,
    force: bool = False,
) -> logging.Logger:
    root = logging.getLogger()
    if getattr(root, "_stripboard_logging_configured", False) and not force:
        return root

    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for log_filter in list(root.filters):
            root.removeFilter(log_filter)

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    context_filter = ContextFilter()

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    # Handler-level filter so records from child loggers also get the fields.
    file_handler.addFilter(context_filter)

    root.addHandler(file_handler)
    if enable_console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler.addFilter(context_filter)
        root.addHandler(stream_handler)

    root.setLevel(_level(level))
    logging.captureWarnings(True)
    root._stripboard_logging_configured = True
    return root
