import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Optional

from app.core.context import current_context
from app.core.settings import settings

AUDIT_LOGGER_NAME = "app.audit"

_TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [%(request_id)s] %(message)s"


class RequestContextFilter(logging.Filter):
    """Copy the bound request context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = current_context()
        record.request_id = ctx.request_id
        record.client_ip = ctx.client_ip
        record.actor_id = ctx.actor_id
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; audit records carry their event fields."""

    def __init__(self, stream_label: str = "service") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - concise
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stream": self.stream_label,
            "service": "loan-service",
            "request_id": getattr(record, "request_id", "-"),
            "client_ip": getattr(record, "client_ip", "-"),
            "actor_id": getattr(record, "actor_id", "-"),
        }
        event = getattr(record, "event", None)
        if event:
            payload["event"] = event
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _formatter(stream_label: str, log_format: str) -> dict[str, Any]:
    if log_format == "text":
        return {"format": _TEXT_FORMAT}
    return {"()": JsonFormatter, "stream_label": stream_label}


def _handler(formatter: str, level: str) -> dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": formatter,
        "filters": ["request_context"],
        "stream": "ext://sys.stdout",
    }


def build_logging_config(level: str, log_format: str) -> dict[str, Any]:
    service = {"handlers": ["service"], "level": level, "propagate": False}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_context": {"()": RequestContextFilter}},
        "formatters": {
            "service": _formatter("service", log_format),
            "audit": _formatter("audit", log_format),
        },
        "handlers": {
            "service": _handler("service", level),
            "audit": _handler("audit", level),
        },
        "loggers": {
            "": service,
            AUDIT_LOGGER_NAME: {"handlers": ["audit"], "level": level, "propagate": False},
            "uvicorn.error": service,
            # RequestContextMiddleware writes the access line instead.
            "uvicorn.access": {"handlers": [], "level": "WARNING", "propagate": False},
            "sqlalchemy.engine": {**service, "level": "WARNING"},
        },
    }


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    logging.config.dictConfig(build_logging_config(log_level, settings.log_format))
    logging.getLogger(__name__).info(
        "Logging configured for environment=%s level=%s format=%s",
        settings.environment,
        log_level,
        settings.log_format,
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)


def audit_event(action: str, **fields: Any) -> None:
    """Record a loan state change on the audit stream.

    The acting operator comes from the request context so callers only pass
    loan fields.
    """
    event = {"action": action, "actor_id": current_context().actor_id, **fields}
    details = " ".join(f"{key}={value}" for key, value in fields.items())
    get_audit_logger().info("%s %s", action, details, extra={"event": event})
