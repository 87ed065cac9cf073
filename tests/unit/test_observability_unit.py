import builtins
import logging

import pytest
from fedid import observability

pytestmark = pytest.mark.unit


def _patch_import_error(monkeypatch, module_prefix: str):
    real_import = builtins.__import__

    def _fake_import(name, globals=None, locals=None, fromlist=(), level=0):
        if name.startswith(module_prefix):
            raise ImportError(f"blocked import for {name}")
        return real_import(name, globals, locals, fromlist, level)

    monkeypatch.setattr(builtins, "__import__", _fake_import)


@pytest.fixture
def fresh_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    if hasattr(root, "_json_logging_configured"):
        delattr(root, "_json_logging_configured")
    yield root
    root.handlers = handlers
    root.setLevel(level)
    setattr(root, "_json_logging_configured", True)


def test_configure_structured_logging_is_idempotent(monkeypatch, fresh_root_logger):
    monkeypatch.setattr(observability.settings, "log_level", "WARNING")

    assert observability.configure_structured_logging() is True
    assert fresh_root_logger.level == logging.WARNING
    assert observability.configure_structured_logging() is False


def test_configure_structured_logging_without_json_formatter(monkeypatch, fresh_root_logger):
    _patch_import_error(monkeypatch, "pythonjsonlogger")
    assert observability.configure_structured_logging() is True
    assert type(fresh_root_logger.handlers[0].formatter) is logging.Formatter


def test_configure_sentry_skipped_without_dsn(monkeypatch):
    monkeypatch.setattr(observability.settings, "sentry_dsn", None)
    assert observability.configure_sentry() is False


def test_configure_sentry_handles_missing_sdk(monkeypatch):
    monkeypatch.setattr(observability.settings, "sentry_dsn", "https://key@sentry.example/1")
    _patch_import_error(monkeypatch, "sentry_sdk")
    assert observability.configure_sentry() is False


def test_configure_sentry_initializes_once(monkeypatch):
    import sentry_sdk

    calls = []

    class _InactiveClient:
        def is_active(self):
            return False

    monkeypatch.setattr(observability.settings, "sentry_dsn", "https://key@sentry.example/1")
    monkeypatch.setattr(sentry_sdk, "get_client", lambda: _InactiveClient())
    monkeypatch.setattr(sentry_sdk, "init", lambda **kwargs: calls.append(kwargs))
    monkeypatch.setattr(sentry_sdk, "set_tag", lambda *_args: None)

    assert observability.configure_sentry() is True
    assert calls[0]["dsn"] == "https://key@sentry.example/1"
    assert calls[0]["send_default_pii"] is False
    assert calls[0]["before_send"] is observability.redact_event


def test_configure_observability_reports_each_step(monkeypatch):
    monkeypatch.setattr(observability, "configure_structured_logging", lambda: False)
    monkeypatch.setattr(observability, "configure_sentry", lambda: False)
    assert observability.configure_observability() == {"logging": False, "sentry": False}


def test_redact_event_scrubs_oauth_secrets():
    event = {
        "request": {
            "url": "https://shop.example.com/api/v1/auth/identity/callback",
            "query_string": "code=abc&state=signed&referrer_url=%2Fdashboard",
            "data": {"confirmation_token": "tok", "note": "keep"},
            "headers": {"Authorization": "Bearer x", "Accept": "application/json"},
        }
    }

    redacted = observability.redact_event(event, {})["request"]

    assert redacted["query_string"] == (
        "code=%5Bredacted%5D&state=%5Bredacted%5D&referrer_url=%2Fdashboard"
    )
    assert redacted["data"] == {"confirmation_token": "[redacted]", "note": "keep"}
    assert redacted["headers"]["Authorization"] == "[redacted]"
    assert redacted["headers"]["Accept"] == "application/json"


def test_redact_event_ignores_events_without_request():
    event = {"message": "boom"}
    assert observability.redact_event(event) is event


def test_service_context_filter_stamps_records(monkeypatch):
    monkeypatch.setattr(observability.settings, "environment", "staging")
    record = logging.LogRecord("fedid.flow", logging.INFO, __file__, 1, "msg", None, None)

    assert observability.ServiceContextFilter().filter(record) is True
    assert record.service == "fedid"
    assert record.environment == "staging"
