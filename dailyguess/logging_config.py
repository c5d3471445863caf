"""Logging setup for the challenge service.

Production emits one JSON object per line; everywhere else gets a coloured,
human-readable line. Both carry the challenge context passed through
``extra`` (user, day, round, week), so a single player's day can be followed
across requests.
"""
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional
from dailyguess.config import settings

CONTEXT_FIELDS = ("user_id", "day_key", "round_index", "week_key")

# Marks the handler installed here so repeated setup replaces it
_HANDLER_NAME = "dailyguess"


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    return {field: getattr(record, field) for field in CONTEXT_FIELDS if hasattr(record, field)}


class JSONFormatter(logging.Formatter):
    """Structured formatter for log aggregation in production."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_context(record))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    """Console formatter for development; appends context as key=value pairs."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        )

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so other handlers see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelname, "")
        record.levelname = f"{color}{record.levelname:<7}{self.RESET}"

        line = super().format(record)
        context = _context(record)
        if context:
            line += " [" + " ".join(f"{key}={value}" for key, value in context.items()) + "]"
        return line


def setup_logging(log_level: Optional[str] = None) -> None:
    """Configure the root logger once per process.

    Calling it again swaps the handler instead of stacking a second one.

    Args:
        log_level: Level name such as "DEBUG" or "WARNING". Defaults to
            INFO in production and DEBUG elsewhere.
    """
    if not log_level:
        log_level = "INFO" if settings.is_production else "DEBUG"
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JSONFormatter() if settings.is_production else ColoredFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # Per-request access lines and SQL echo drown out game events
    for noisy in ("uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={logging.getLevelName(level)}, environment={settings.ENVIRONMENT}"
    )


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, e.g. ``get_logger(__name__)``."""
    return logging.getLogger(name)
