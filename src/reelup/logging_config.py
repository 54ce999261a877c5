"""Log formatting for reelup uploads and the authorization service.

Upload code attaches context through ``extra=`` (``upload_id``,
``part_number``, ...). The JSON formatter emits those as top-level keys;
the text formatter appends them as a compact ``[key=value ...]`` suffix so
interleaved part logs stay attributable.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO

CONTEXT_FIELDS = (
    "upload_id",
    "key",
    "part_number",
    "status",
    "duration_ms",
    "method",
    "path",
    "request_id",
)

# Chatty at INFO/DEBUG; only their warnings are interesting unless debugging.
_NOISY_LOGGERS = ("botocore", "aiobotocore", "httpx", "httpcore", "urllib3")


def _context(record: logging.LogRecord) -> dict:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, context."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Human-readable lines with upload context appended."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if not context:
            return line
        suffix = " ".join(f"{k}={v}" for k, v in context.items())
        head, sep, rest = line.partition("\n")
        return f"{head} [{suffix}]{sep}{rest}"


def configure_logging(level: str = "INFO", fmt: str = "text", stream: IO[str] | None = None) -> None:
    """Install a single root handler for reelup processes.

    Args:
        level: Log level name; unknown names fall back to INFO.
        fmt: 'text' or 'json'.
        stream: Destination stream, stderr by default.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ContextTextFormatter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
