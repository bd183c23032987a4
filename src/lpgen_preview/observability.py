"""Logging and error reporting for the preview service.

Logs are structured with structlog and rendered through the stdlib root
logger, so Sentry's logging integration sees every record: INFO and above
become breadcrumbs and ERROR and above become events.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import sentry_sdk
import structlog
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

if TYPE_CHECKING:
    from sentry_sdk.types import Event

    from lpgen_preview.config import Settings

# Polled by orchestrators and Prometheus
PROBE_PATHS = frozenset({"/health", "/ready", "/metrics"})

# Log fields promoted to Sentry tags so failures can be grouped per preview
TAGGED_FIELDS = ("project_id", "session_id", "port")


def _drop_probe_transactions(event: Event, _hint: dict[str, Any]) -> Event | None:
    if event.get("transaction") in PROBE_PATHS:
        return None
    return event


def init_sentry(config: Settings, service_name: str, release: str) -> bool:
    """Initialize the Sentry SDK from settings.

    Returns:
        True if Sentry was initialized, False if no DSN is configured
    """
    if not config.sentry_dsn:
        return False

    integrations: list[Any] = [
        StarletteIntegration(transaction_style="endpoint"),
        FastApiIntegration(transaction_style="endpoint"),
        HttpxIntegration(),
        AsyncioIntegration(),
        LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
    ]
    if config.redis_url:
        integrations.append(RedisIntegration())

    sentry_sdk.init(
        dsn=config.sentry_dsn,
        environment=config.environment,
        release=release,
        server_name=service_name,
        traces_sample_rate=config.sentry_traces_sample_rate,
        profiles_sample_rate=config.sentry_profiles_sample_rate,
        integrations=integrations,
        before_send_transaction=_drop_probe_transactions,
        send_default_pii=False,
        attach_stacktrace=True,
        ignore_errors=[ConnectionResetError, KeyboardInterrupt, SystemExit],
    )
    sentry_sdk.set_tag("service", service_name)
    return True


def _tag_sentry_scope(
    _logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Copy preview identifiers onto the Sentry scope before errors are logged."""
    if method_name in ("warning", "error", "exception", "critical"):
        scope = sentry_sdk.get_current_scope()
        for field in TAGGED_FIELDS:
            if field in event_dict:
                scope.set_tag(field, str(event_dict[field]))
    return event_dict


def configure_logging(
    service_name: str,
    log_level: int = logging.INFO,
    json_format: bool = True,
) -> structlog.stdlib.BoundLogger:
    """Route structlog through a single stdout handler on the root logger.

    Call once at startup, after :func:`init_sentry`.

    Args:
        service_name: Logger name for the returned logger
        log_level: Minimum level for both structlog and stdlib loggers
        json_format: JSON lines (True) or coloured console output (False)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    # Replace handlers so uvicorn --reload does not stack them
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _tag_sentry_scope,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger: structlog.stdlib.BoundLogger = structlog.get_logger(service_name)
    return logger
