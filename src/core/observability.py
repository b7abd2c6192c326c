"""Observability configuration for Azure Monitor and OpenTelemetry.

Call configure_observability() at the very start of application
initialization (before importing FastAPI) so HTTP requests and database calls
are instrumented.

Span hygiene:
- Never put prompt text, outlines, source documents or generated slide content
  in span attributes. Use indices, counts and outcomes instead.
- Correlation ids link a trace to the structured logs written through
  ``core.error_handler.StructuredLogger``.

For production (Azure):
- Install the ``observability`` extra.
- Set ENABLE_OBSERVABILITY=true and APPLICATIONINSIGHTS_CONNECTION_STRING.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from opentelemetry import trace


logger = logging.getLogger(__name__)

_ENV_ENABLE_OBSERVABILITY = "ENABLE_OBSERVABILITY"
_ENV_APP_INSIGHTS_CONN_STRING = "APPLICATIONINSIGHTS_CONNECTION_STRING"
_ENV_OTEL_SERVICE_NAME = "OTEL_SERVICE_NAME"

_DEFAULT_SERVICE_NAME = "deckstream-backend"

# Paths to exclude from automatic tracing (health checks and long-lived streams)
EXCLUDED_URLS = "health,health/,favicon.ico"


def _is_observability_enabled() -> bool:
    """Check if observability is enabled via environment variable."""
    value = os.getenv(_ENV_ENABLE_OBSERVABILITY, "false").lower()
    return value in {"true", "1", "yes", "on"}


def _get_connection_string() -> str | None:
    return os.getenv(_ENV_APP_INSIGHTS_CONN_STRING)


@lru_cache
def configure_observability() -> bool:
    """Configure OpenTelemetry with Azure Monitor.

    Returns:
        True if observability was configured successfully, False otherwise.

    Environment Variables:
        ENABLE_OBSERVABILITY: Set to "true" to enable (default: "false")
        APPLICATIONINSIGHTS_CONNECTION_STRING: Azure Monitor connection string
        OTEL_SERVICE_NAME: Service name for traces (default: "deckstream-backend")
    """
    if not _is_observability_enabled():
        logger.info(
            "Observability disabled. Set %s=true to enable Azure Monitor.",
            _ENV_ENABLE_OBSERVABILITY,
        )
        return False

    connection_string = _get_connection_string()
    if not connection_string:
        logger.warning(
            "Observability enabled but %s not set. Skipping Azure Monitor setup.",
            _ENV_APP_INSIGHTS_CONN_STRING,
        )
        return False

    try:
        from azure.monitor.opentelemetry import configure_azure_monitor
    except ImportError:
        logger.warning(
            "azure-monitor-opentelemetry package not installed. "
            "Install the 'observability' extra to export telemetry."
        )
        return False

    os.environ.setdefault(_ENV_OTEL_SERVICE_NAME, _DEFAULT_SERVICE_NAME)
    os.environ.setdefault("OTEL_PYTHON_FASTAPI_EXCLUDED_URLS", EXCLUDED_URLS)
    try:
        configure_azure_monitor(connection_string=connection_string)
    except Exception as e:
        logger.exception("Failed to configure Azure Monitor observability: %s", e)
        return False

    logger.info(
        "Azure Monitor observability configured for service '%s'",
        os.environ[_ENV_OTEL_SERVICE_NAME],
    )
    return True


def get_tracer(name: str) -> trace.Tracer:
    """Get an OpenTelemetry tracer for custom spans.

    Without a configured SDK the OpenTelemetry API hands back a no-op tracer,
    so callers never need to check whether telemetry is enabled.

    Example:
        tracer = get_tracer(__name__)
        with tracer.start_as_current_span("slide_job") as span:
            span.set_attribute("slide.index", 3)
    """
    return trace.get_tracer(name)
