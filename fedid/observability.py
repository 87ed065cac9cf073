from __future__ import annotations

import logging
from typing import Any
from urllib.parse import parse_qsl, urlencode

from .config import settings

SERVICE_NAME = "fedid"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(service)s %(environment)s %(message)s"

# Authorization codes, signed state and tokens must never reach error reports.
SENSITIVE_KEYS = frozenset(
    {
        "code",
        "state",
        "access_token",
        "refresh_token",
        "confirmation_token",
        "client_secret",
        "authorization",
    }
)
REDACTED = "[redacted]"


class ServiceContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.service = SERVICE_NAME
        record.environment = settings.environment
        return True


def configure_structured_logging() -> bool:
    root = logging.getLogger()
    if getattr(root, "_json_logging_configured", False):
        return False

    handler = logging.StreamHandler()
    handler.addFilter(ServiceContextFilter())
    try:
        from pythonjsonlogger.json import JsonFormatter

        handler.setFormatter(JsonFormatter(LOG_FORMAT))
    except ImportError:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root.handlers = [handler]
    root.setLevel(settings.log_level)
    setattr(root, "_json_logging_configured", True)
    return True


def _redact_query(query: str) -> str:
    pairs = parse_qsl(query, keep_blank_values=True)
    return urlencode(
        [(key, REDACTED if key.lower() in SENSITIVE_KEYS else value) for key, value in pairs]
    )


def _redact_mapping(values: dict[str, Any]) -> dict[str, Any]:
    return {
        key: REDACTED if str(key).lower() in SENSITIVE_KEYS else value
        for key, value in values.items()
    }


def redact_event(event: dict[str, Any], hint: dict[str, Any] | None = None) -> dict[str, Any]:
    """Sentry ``before_send`` hook that strips OAuth secrets from request data."""
    request = event.get("request")
    if not isinstance(request, dict):
        return event

    query = request.get("query_string")
    if isinstance(query, str) and query:
        request["query_string"] = _redact_query(query)
    for section in ("data", "headers", "cookies"):
        if isinstance(request.get(section), dict):
            request[section] = _redact_mapping(request[section])
    return event


def configure_sentry() -> bool:
    if not settings.sentry_dsn:
        return False

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    except ImportError:
        return False

    if sentry_sdk.get_client().is_active():
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[FastApiIntegration(), SqlalchemyIntegration()],
        send_default_pii=False,
        before_send=redact_event,
    )
    sentry_sdk.set_tag("service", SERVICE_NAME)
    return True


def configure_observability() -> dict[str, Any]:
    return {
        "logging": configure_structured_logging(),
        "sentry": configure_sentry(),
    }
