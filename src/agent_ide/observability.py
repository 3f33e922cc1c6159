"""Logging and error reporting setup."""

from __future__ import annotations

import logging
import re
import sys
from typing import TYPE_CHECKING, Any, cast

import sentry_sdk
import structlog
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration

if TYPE_CHECKING:
    from collections.abc import MutableMapping

    from agent_ide.config import Settings

SERVICE_NAME = "agent-ide-orchestrator"


def init_sentry(settings: Settings) -> bool:
    """Initialize Sentry when a DSN is configured. Call before configure_logging()."""
    if not settings.sentry_dsn:
        return False

    from agent_ide import __version__

    development = settings.environment == "development"
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"{SERVICE_NAME}@{__version__}",
        traces_sample_rate=1.0 if development else settings.sentry_traces_sample_rate,
        integrations=[
            AsyncioIntegration(),
            RedisIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
        server_name=SERVICE_NAME,
        ignore_errors=[
            "ConnectionRefusedError",
            "ConnectionResetError",
            "asyncio.CancelledError",
            "KeyboardInterrupt",
            "SystemExit",
        ],
    )
    sentry_sdk.set_tag("service", SERVICE_NAME)
    return True


# Event keys whose values are never written out
SENSITIVE_KEYS = frozenset({"password", "secret", "token", "dsn", "authorization", "variables"})

# user:password@ in redis://, tcp:// and similar URLs
_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@", re.IGNORECASE)

REDACTED = "***REDACTED***"


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return _URL_CREDENTIALS.sub(r"\g<scheme>***@", value)
    if isinstance(value, dict):
        return {k: REDACTED if _is_sensitive(k) else _redact(v) for k, v in value.items()}
    return value


def _is_sensitive(key: Any) -> bool:
    key_lower = str(key).lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)


def redact_sensitive_data(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask secrets, environment variable values and URL credentials."""
    for key in list(event_dict):
        if key == "event":
            continue
        event_dict[key] = REDACTED if _is_sensitive(key) else _redact(event_dict[key])
    return event_dict


def _resolve_level(log_level: int | str) -> int:
    if isinstance(log_level, int):
        return log_level
    return logging.getLevelNamesMapping().get(log_level.upper(), logging.INFO)


def configure_logging(
    service_name: str = SERVICE_NAME,
    log_level: int | str = logging.INFO,
    json_format: bool = False,
) -> structlog.stdlib.BoundLogger:
    """Route structlog through the standard library root logger.

    Records reach stdlib logging, so Sentry's LoggingIntegration sees them
    as breadcrumbs and reports ERROR records. Safe to call again: the
    root handler is replaced, not duplicated.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=_resolve_level(log_level),
        force=True,
    )

    renderer: Any = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            redact_sensitive_data,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return cast("structlog.stdlib.BoundLogger", structlog.get_logger(service_name))
