"""
Structured logging.

Every line carries the correlation id plus whatever ``LogContext`` fields
are active, rendered as ``[cid] [request:workflow:operation]``.

Usage:
    from alfred_api.core.logging import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(request_id="abc"):
        with LogContext.operation("orchestrator run"):
            with LogContext(workflow="Email Digest"):
                logger.info("Running")  # [R12...::abc] [abc:Email Digest:orchestrator run] Running
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from alfred_api.core.correlation import correlator

# Rendered in this order
CONTEXT_FIELDS = ("request_id", "workflow", "operation")

QUIET_LOGGERS = ("httpx", "httpcore", "pymongo", "openai", "claude_agent_sdk")

_fields: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("log_fields", default={})


class LogContext:
    """Adds fields to every log line emitted inside the block."""

    def __init__(self, **fields: Any):
        self._fields = fields
        self._token: contextvars.Token | None = None

    def __enter__(self) -> LogContext:
        self._token = _fields.set({**_fields.get(), **self._fields})
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._token is not None:
            _fields.reset(self._token)

    @staticmethod
    def get(key: str, default: Any = None) -> Any:
        return _fields.get().get(key, default)

    @classmethod
    @contextmanager
    def operation(cls, name: str, level: int = logging.INFO) -> Iterator[None]:
        """Time a block under ``operation=name``. Failures are logged and re-raised."""
        logger = get_logger("alfred.operation")
        t_start = time.time()

        with cls(operation=name):
            try:
                yield
            except asyncio.CancelledError:
                logger.warning(f"{name} cancelled after {time.time() - t_start:.3f}s")
                raise
            except Exception as e:
                logger.error(f"{name} failed after {time.time() - t_start:.3f}s: {type(e).__name__}: {e}")
                raise
            logger.log(level, f"{name} completed in {time.time() - t_start:.3f}s")


class ContextFormatter(logging.Formatter):
    """Sets ``record.ctx`` from the correlation id and the active fields."""

    def format(self, record: logging.LogRecord) -> str:
        cid = correlator.correlation_id
        fields = _fields.get()
        parts = [str(fields[name])[:32] for name in CONTEXT_FIELDS if fields.get(name) is not None]
        record.ctx = f"[{cid}] [{':'.join(parts)}]" if parts else f"[{cid}]"
        return super().format(record)


_configured = False


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> str | None:
    """
    Configure the root logger once per process.

    ``LOG_LEVEL`` overrides ``log_level``. With ``log_dir`` (or ``LOG_DIR``)
    set, lines also go to ``{log_dir}/{date}/{time}.log``, whose path is
    returned.
    """
    global _configured
    if _configured:
        return None

    level = getattr(logging, os.getenv("LOG_LEVEL", log_level).upper(), logging.INFO)
    formatter = ContextFormatter("%(asctime)s [%(levelname)-8s] %(ctx)s %(name)s: %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = None
    if log_dir := log_dir or os.getenv("LOG_DIR"):
        now = datetime.now()
        folder = Path(log_dir) / now.strftime("%Y-%m-%d")
        folder.mkdir(parents=True, exist_ok=True)
        log_file = str(folder / f"{now.strftime('%H-%M-%S')}.log")
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _configured = True
    return log_file


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
