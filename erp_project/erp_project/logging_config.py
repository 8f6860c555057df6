"""
Logging configuration for the ERP backend.

- Development: human-readable console output
- Everything else: JSON lines on stdout, one object per record

Environment variables:
- LOG_FORMAT: "json" or "console" (default: console when DEBUG, else json)
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO, DEBUG when DEBUG)
"""
import json
import logging
import os
from datetime import datetime, timezone

# LogRecord attributes that are not `extra` fields
STANDARD_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "taskName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
    "message",
}


def get_logging_config(debug: bool = False) -> dict:
    """Build Django's LOGGING dict."""
    log_level = os.environ.get("LOG_LEVEL", "DEBUG" if debug else "INFO")
    log_format = os.environ.get("LOG_FORMAT", "console" if debug else "json")

    config = {
        "version": 1,
        "disable_existing_loggers": False,
    }

    if log_format == "json":
        config["formatters"] = {
            "json": {"()": "erp_project.logging_config.JsonFormatter"},
        }
        handler_formatter = "json"
    else:
        config["formatters"] = {
            "verbose": {
                "format": "[{asctime}] {levelname} {name} {message}",
                "style": "{",
            },
        }
        handler_formatter = "verbose"

    config["handlers"] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": handler_formatter,
            "stream": "ext://sys.stdout",
        },
        "null": {
            "class": "logging.NullHandler",
        },
    }

    config["loggers"] = {
        "": {
            "handlers": ["console"],
            "level": log_level,
        },
        "django": {
            "handlers": ["console"],
            "level": log_level,
            "propagate": False,
        },
        "django.request": {
            "handlers": ["console"],
            "level": log_level if debug else "ERROR",
            "propagate": False,
        },
        "django.db.backends": {
            "handlers": ["null"],
            "level": "INFO",
            "propagate": False,
        },
        # Application loggers
        "ledger_core": {
            "handlers": ["console"],
            "level": log_level,
            "propagate": False,
        },
        "celery": {
            "handlers": ["console"],
            "level": log_level,
            "propagate": False,
        },
    }

    return config


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record: timestamp, level, logger, message,
    plus whatever was passed through `extra=`.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extras = {}
        for key, value in record.__dict__.items():
            if key in STANDARD_ATTRS:
                continue
            try:
                # Ensure value is JSON serializable
                json.dumps(value)
                extras[key] = value
            except (TypeError, ValueError):
                extras[key] = str(value)

        if extras:
            log_entry["extra"] = extras

        return json.dumps(log_entry, default=str)
