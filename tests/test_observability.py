"""Tests for logging and Sentry setup."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

import structlog

from lpgen_preview.config import Settings
from lpgen_preview.observability import (
    _drop_probe_transactions,
    _tag_sentry_scope,
    configure_logging,
    init_sentry,
)


def test_init_sentry_without_dsn_is_noop():
    """Test init sentry without dsn is noop."""
    with patch("lpgen_preview.observability.sentry_sdk.init") as sentry_init:
        assert init_sentry(Settings(), "lpgen-preview", "lpgen-preview@0.1.0") is False
    sentry_init.assert_not_called()


def test_init_sentry_with_dsn(monkeypatch):
    """Test init sentry with dsn."""
    monkeypatch.setenv("SENTRY_DSN", "https://key@sentry.example.com/1")
    monkeypatch.setenv("PREVIEW_REDIS_URL", "redis://localhost:6379")

    with (
        patch("lpgen_preview.observability.sentry_sdk.init") as sentry_init,
        patch("lpgen_preview.observability.sentry_sdk.set_tag") as set_tag,
    ):
        assert init_sentry(Settings(), "lpgen-preview", "lpgen-preview@0.1.0") is True

    kwargs = sentry_init.call_args.kwargs
    assert kwargs["dsn"] == "https://key@sentry.example.com/1"
    assert kwargs["release"] == "lpgen-preview@0.1.0"
    assert kwargs["send_default_pii"] is False
    integration_names = {type(i).__name__ for i in kwargs["integrations"]}
    assert "RedisIntegration" in integration_names
    assert "FastApiIntegration" in integration_names
    set_tag.assert_called_once_with("service", "lpgen-preview")


def test_probe_transactions_dropped():
    """Test probe transactions dropped."""
    assert _drop_probe_transactions({"transaction": "/health"}, {}) is None
    assert _drop_probe_transactions({"transaction": "/metrics"}, {}) is None

    event = {"transaction": "/preview/{project_id}"}
    assert _drop_probe_transactions(event, {}) is event


def test_scope_tagged_for_warnings():
    """Test scope tagged for warnings."""
    scope = MagicMock()
    with patch("lpgen_preview.observability.sentry_sdk.get_current_scope", return_value=scope):
        event = {"event": "Preview failed", "project_id": "landing", "port": 3002}
        assert _tag_sentry_scope(None, "warning", event) is event

    scope.set_tag.assert_any_call("project_id", "landing")
    scope.set_tag.assert_any_call("port", "3002")


def test_scope_untouched_for_info():
    """Test scope untouched for info."""
    with patch("lpgen_preview.observability.sentry_sdk.get_current_scope") as get_scope:
        _tag_sentry_scope(None, "info", {"event": "Preview ready", "project_id": "landing"})
    get_scope.assert_not_called()


def test_configure_logging_installs_single_handler():
    """Test configure logging installs single handler."""
    configure_logging("lpgen-preview", json_format=True)
    logger = configure_logging("lpgen-preview", log_level=logging.DEBUG, json_format=False)

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.level == logging.DEBUG
    assert logger is not None
    structlog.reset_defaults()
