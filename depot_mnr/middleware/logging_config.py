"""
Structured logging configuration.

- Development: human-readable colored format
- Production: JSON format (log aggregator compatible)
- Log level: controlled via LOG_LEVEL env variable

Stage transitions log with ``extra=`` context (container, job) that the
JSON formatter nests under ``container`` and ``job`` so one gate
transaction can be followed across stages:

    {"service": "depot-mnr", "message": "Survey complete ...",
     "container": {"id": "...", "number": "MSCU1234567", "status": "DM"},
     "job": {"stage": "survey", "id": "...", "transaction_id": "...",
             "action": "complete", "from": "DRAFT", "to": "COMPLETED"}}
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

SERVICE_NAME = "depot-mnr"

# Request attributes copied flat into JSON output when present
_REQUEST_KEYS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "actor",
)

# record attribute -> key inside the nested "container" / "job" objects
_CONTAINER_KEYS = {
    "container_id": "id",
    "container_number": "number",
    "container_status": "status",
}
_JOB_KEYS = {
    "stage": "stage",
    "job_id": "id",
    "transaction_id": "transaction_id",
    "action": "action",
    "from_status": "from",
    "to_status": "to",
}


def _collect(record: logging.LogRecord, keys: dict) -> dict:
    found = {}
    for attr, key in keys.items():
        val = getattr(record, attr, None)
        if val is not None:
            found[key] = val
    return found


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def __init__(self, service: str = SERVICE_NAME):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in _REQUEST_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        container = _collect(record, _CONTAINER_KEYS)
        if container:
            log_entry["container"] = container
        job = _collect(record, _JOB_KEYS)
        if job:
            log_entry["job"] = job
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        request_id = getattr(record, "request_id", None)
        rid_str = f" ({request_id})" if request_id else ""
        number = getattr(record, "container_number", None)
        unit_str = f" <{number}>" if number else ""
        msg = record.getMessage()
        base = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}{rid_str}{unit_str}: {msg}{dur_str}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(app):
    """
    Set up structured logging for the Flask app.

    Reads LOG_LEVEL from env (default: DEBUG in dev, INFO in prod) and the
    JSON ``service`` label from LOG_SERVICE_NAME.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    if is_prod:
        formatter = JSONFormatter(os.getenv("LOG_SERVICE_NAME", SERVICE_NAME))
    else:
        formatter = ReadableFormatter()

    root = logging.getLogger()
    # Replace handlers so repeated create_app() calls in tests do not stack them
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
