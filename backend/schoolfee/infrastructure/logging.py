import logging
from typing import Any

import structlog

from schoolfee.config import settings

REDACTED_KEYS = frozenset({"password", "passkey", "consumer_secret", "access_token", "authorization"})
MASKED_KEYS = frozenset({"phone", "phone_number", "parent_contact"})
NOISY_LOGGERS = ("httpx", "httpcore")


def _mask(value: Any) -> str:
    text = str(value)
    return "*" * max(len(text) - 3, 0) + text[-3:]


def redact_sensitive_fields(_logger: Any, _method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Drop credentials and mask phone numbers before rendering."""
    for key in event_dict.keys() & REDACTED_KEYS:
        event_dict[key] = "[redacted]"
    for key in event_dict.keys() & MASKED_KEYS:
        if event_dict[key] is not None:
            event_dict[key] = _mask(event_dict[key])
    return event_dict


def _add_service_name(_logger: Any, _method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", settings.app_name)
    return event_dict


def configure_logging() -> None:
    log_level_name = settings.log_level.upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    logging.basicConfig(format="%(message)s", level=log_level)
    # Provider calls are logged by the payment client itself.
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _add_service_name,
        redact_sensitive_fields,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer = structlog.processors.JSONRenderer() if settings.log_json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[structlog.stdlib.filter_by_level, *shared_processors, renderer],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def bind_request_context(**values: Any) -> None:
    """Attach principal and tenant ids to every event of the current request."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str):
    return structlog.get_logger(name)
