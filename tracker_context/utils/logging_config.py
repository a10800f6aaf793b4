"""
JSON logging for the tracker context package.

Every record under the ``tracker`` logger is written as one JSON object per
line: WARNING and above to stderr, everything at ``Settings.log_level`` to
``Settings.log_file`` when a path is configured.

Structured fields travel through ``extra=``; the keys in ``RECORD_FIELDS``
are lifted into the JSON entry::

    logger = get_logger("tracker.parser")
    logger.warning("tracker_parse_failed", extra={"category": "infoBox", "payload_kind": "unknown"})

Prompt builders that know which chat they serve wrap their logger in a
``ChatAdapter`` so each line carries ``chat_id``::

    log = ChatAdapter(get_logger("tracker.pipelines"), chat_id="chat-42")
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional

ROOT_LOGGER = "tracker"

# Keys copied from ``extra=`` into the JSON entry.
RECORD_FIELDS = ("chat_id", "category", "payload_kind", "turn_index", "event_type", "metadata")


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({
            key: getattr(record, key)
            for key in RECORD_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class ChatAdapter(logging.LoggerAdapter):
    """Adds ``chat_id`` to the ``extra`` of every call, keeping the caller's own fields."""

    def __init__(self, logger: logging.Logger, chat_id: str):
        super().__init__(logger, {"chat_id": chat_id})

    def process(
        self,
        msg: str,
        kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs.setdefault("extra", {}).update(self.extra)
        return msg, kwargs


def chat_logger(logger: logging.Logger, chat_id: Optional[str]) -> logging.Logger | ChatAdapter:
    """*logger* scoped to *chat_id*, or *logger* itself when no chat is known."""
    return ChatAdapter(logger, chat_id) if chat_id else logger


_CONFIGURED = False


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(log_file: Optional[str] = None, level: Optional[int] = None) -> None:
    """Attach the JSON handlers to the ``tracker`` logger once per process.

    Arguments left as ``None`` come from :func:`tracker_context.config.get_settings`.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    from tracker_context.config import get_settings

    settings = get_settings()
    log_file = log_file if log_file is not None else settings.log_file
    level = level if level is not None else _resolve_level(settings.log_level)

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.propagate = False

    formatter = JSONFormatter()
    handlers: list[logging.Handler] = []
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    stderr = logging.StreamHandler(sys.stderr)
    stderr.setLevel(logging.WARNING)
    handlers.append(stderr)

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger under the ``tracker`` namespace; sets up handlers on first use."""
    setup_logging()
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
