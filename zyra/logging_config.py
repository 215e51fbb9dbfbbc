"""Centralised logging configuration for the server, CLI and stream clients.

Usage:
    from logging_config import setup_logging, user_id_var, loop_id_var

    # At process startup:
    setup_logging("Server")        # or "Watch"

    # Around per-user work:
    user_id_var.set("42")
    loop_id_var.set("loop-7f3a")

All existing ``logging.getLogger(__name__).info(...)`` calls work unchanged;
the ContextFilter injects user/loop context automatically.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from contextvars import ContextVar
from pathlib import Path

STREAM_HANDLER_NAME = "_zyra_stream"
FILE_HANDLER_NAME = "_zyra_file"
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "redis", "multipart")
UVICORN_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")

user_id_var: ContextVar[str] = ContextVar("user_id_var", default="")
loop_id_var: ContextVar[str] = ContextVar("loop_id_var", default="")


class ContextFilter(logging.Filter):
    """Copies the process role and the current user/loop ids onto each record."""

    def __init__(self, role: str) -> None:
        super().__init__()
        self.role = role

    def filter(self, record: logging.LogRecord) -> bool:
        record.role = self.role  # type: ignore[attr-defined]
        record.user_id = user_id_var.get()  # type: ignore[attr-defined]
        record.loop_id = loop_id_var.get()  # type: ignore[attr-defined]
        return True


def _context_prefix(record: logging.LogRecord) -> str:
    role = getattr(record, "role", "")
    user_id = getattr(record, "user_id", "")
    loop_id = getattr(record, "loop_id", "")

    tags = []
    if role:
        tags.append(role)
    if user_id:
        tags.append(f"User {user_id}")
    if loop_id:
        # loop ids are long; the first 8 chars are enough to tell loops apart
        tags.append(f"Loop {loop_id[:8]}")
    tags.append(record.levelname)
    return "".join(f"[{tag}]" for tag in tags)


class ContextFormatter(logging.Formatter):
    """Produces lines like:

    2026-10-19 14:30:00 [Server][INFO] api.activity:61 - Stream opened
    2026-10-19 14:30:01 [Server][User 42][Loop loop-7f3][INFO] services.activity_emitter:88 - Emitted DETECT_STARTED
    """

    def format(self, record: logging.LogRecord) -> str:
        line = "{ts} {prefix} {name}:{lineno} - {msg}".format(
            ts=self.formatTime(record, self.datefmt),
            prefix=_context_prefix(record),
            name=record.name,
            lineno=record.lineno,
            msg=record.getMessage(),
        )
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        extra = [text for text in (record.exc_text, record.stack_info) if text]
        return "\n".join([line, *extra])


def _attach(root: logging.Logger, handler: logging.Handler, name: str, role: str) -> None:
    handler.name = name
    handler.addFilter(ContextFilter(role))
    handler.setFormatter(ContextFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)


def setup_logging(role: str) -> None:
    """Configure the root logger for *role* (``"Server"``, ``"Watch"``, ...).

    Always logs to stderr; also to a rotating file when ``LOG_FILE`` is set.
    Calling it again in the same process does nothing.
    """
    from config import settings

    root = logging.getLogger()
    if any(h.name == STREAM_HANDLER_NAME for h in root.handlers):
        return

    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    _attach(root, logging.StreamHandler(sys.stderr), STREAM_HANDLER_NAME, role)

    if settings.LOG_FILE:
        log_path = Path(settings.LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _attach(
            root,
            logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=settings.LOG_MAX_BYTES,
                backupCount=settings.LOG_BACKUP_COUNT,
                encoding="utf-8",
            ),
            FILE_HANDLER_NAME,
            role,
        )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # uvicorn installs its own handlers; route its records through ours instead
    if "server" in role.lower():
        for name in UVICORN_LOGGERS:
            uvicorn_logger = logging.getLogger(name)
            uvicorn_logger.handlers.clear()
            uvicorn_logger.propagate = True
