"""JSON log records correlated with the request that produced them."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
import sys
from typing import Any

import orjson

from caselaw_search.observability.context import get_request_context


# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def _to_json(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return repr(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Request correlation fields (trace id, span id, route) come first, then
    any ``extra=`` fields such as ``plan`` or ``generation``. Long messages
    and long string fields are clipped so a pasted judgment cannot flood the
    log.
    """

    MAX_MESSAGE_LEN = 2000
    MAX_FIELD_LEN = 500

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _clip(record.getMessage(), self.MAX_MESSAGE_LEN),
        }
        entry.update(get_request_context())
        if record.name.startswith("caselaw_search."):
            entry["component"] = record.name.rsplit(".", 1)[-1]
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            entry[key] = _clip(value, self.MAX_FIELD_LEN) if isinstance(value, str) else value

        return orjson.dumps(entry, default=_to_json).decode("utf-8")


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    *,
    logger_levels: dict[str, str] | None = None,
    access_log: bool = False,
) -> None:
    """Route every logger through one stdout handler.

    Args:
        level: Root log level name
        json_output: Use ``JsonFormatter``; otherwise a plain one-line format
        logger_levels: Per-logger overrides, e.g. ``{"caselaw_search.search": "DEBUG"}``
        access_log: Keep uvicorn's per-request access lines
    """
    formatter: logging.Formatter = (
        JsonFormatter() if json_output else logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not access_log:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    for name, name_level in (logger_levels or {}).items():
        logging.getLogger(name).setLevel(name_level.upper())
