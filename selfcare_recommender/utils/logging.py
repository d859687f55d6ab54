"""
Logging setup for the self-care recommender.

``configure_logging(config)`` is called once per CLI command (``serve`` included, so
the HTTP app logs the same way); library modules only ever do
``logging.getLogger(__name__)``.

Run context
-----------
``log_context(user_id=..., run_slug=...)`` binds fields for the duration of a
block. Every record emitted inside it (including from tasks started with
``asyncio.gather``, which copy the current context) carries those fields:

    2026-03-01T12:00:00Z [INFO] selfcare_recommender.recommendations.store: Persisted 2 ... [user=u-1 run=3f2c...]

With ``json_format = true`` the same fields become top-level keys::

    {"ts": "...", "level": "INFO", "logger": "...", "msg": "...", "user": "u-1", "run": "3f2c..."}
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from selfcare_recommender.config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s%(context)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Short keys keep text lines readable.
_CONTEXT_KEYS = {"user_id": "user", "run_slug": "run", "analysis_id": "analysis"}

_context: ContextVar[dict[str, object]] = ContextVar("selfcare_log_context", default={})


@contextmanager
def log_context(**fields: object) -> Iterator[None]:
    """Attach ``fields`` to every log record emitted inside the block.

    Nested blocks extend the outer context; ``None`` values are dropped.
    """
    merged = {**_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _context.set(merged)
    try:
        yield
    finally:
        _context.reset(token)


def current_context() -> dict[str, object]:
    return dict(_context.get())


class _ContextFilter(logging.Filter):
    """Copy the bound run context onto each record (``record.context_fields``)."""

    def filter(self, record: logging.LogRecord) -> bool:
        fields = {_CONTEXT_KEYS.get(k, k): v for k, v in _context.get().items()}
        record.context_fields = fields
        record.context = (
            " [" + " ".join(f"{k}={v}" for k, v in fields.items()) + "]" if fields else ""
        )
        return True


class _JsonFormatter(logging.Formatter):
    """One JSON object per line: ``ts``, ``level``, ``logger``, ``msg`` plus context."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                LOG_DATE_FORMAT
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(getattr(record, "context_fields", {}))
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def build_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return _JsonFormatter()
    return logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)


def configure_logging(config: "LoggingConfig") -> None:
    """Configure the root logger from ``AppConfig.logging``.

    Installs a stdout handler and, when ``log_file`` is set, a UTF-8 file
    handler (parent directories are created). Both share one formatter and
    the run-context filter. Existing root handlers are replaced.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = build_formatter(config.json_format)
    context_filter = _ContextFilter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)

    logging.basicConfig(level=level, handlers=handlers, force=True)

    # Request lines and client chatter stay at WARNING regardless of level.
    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
