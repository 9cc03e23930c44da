"""Logging and tracing setup for the Karyalay portal.

Application modules log under the ``karyalay`` hierarchy (``karyalay.tickets``,
``karyalay.subscriptions`` and so on); chatty third-party loggers are capped at
WARNING unless the configured level is stricter.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from karyalay.core.config import Settings

APP_LOGGER = "karyalay"
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "asyncpg")

_tracer_provider: TracerProvider | None = None


def parse_otlp_headers(raw: str | None) -> dict[str, str]:
    """Turn ``"k1=v1,k2=v2"`` into a header mapping, skipping blank and malformed items."""

    headers: dict[str, str] = {}
    for item in (raw or "").split(","):
        item = item.strip()
        if not item or "=" not in item:
            continue
        key, value = item.split("=", 1)
        if key.strip():
            headers[key.strip()] = value.strip()
    return headers


def build_logging_config(settings: Settings) -> dict[str, Any]:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    quiet_level = max(level, logging.WARNING)

    loggers: dict[str, dict[str, Any]] = {
        APP_LOGGER: {"level": level},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": quiet_level}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "portal": {
                "format": settings.log_format,
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "portal",
            }
        },
        "loggers": loggers,
        "root": {"handlers": ["console"], "level": quiet_level},
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Apply the portal logging configuration and return the application logger."""

    dictConfig(build_logging_config(settings))
    return logging.getLogger(APP_LOGGER)


def build_resource(settings: Settings) -> Resource:
    return Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": settings.app_version,
            "deployment.environment": settings.environment,
        }
    )


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install an OTLP-exporting tracer provider when tracing is enabled.

    Returns ``None`` when tracing is disabled or a provider is already installed.
    """

    global _tracer_provider

    if _tracer_provider is not None or not settings.otel_enabled:
        return None

    exporter_kwargs: dict[str, Any] = {}
    if settings.otel_exporter_otlp_endpoint:
        exporter_kwargs["endpoint"] = settings.otel_exporter_otlp_endpoint
    headers = parse_otlp_headers(settings.otel_exporter_otlp_headers)
    if headers:
        exporter_kwargs["headers"] = headers

    provider = TracerProvider(resource=build_resource(settings))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**exporter_kwargs)))
    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    logging.getLogger(APP_LOGGER).info("Tracing enabled for %s (%s)", settings.otel_service_name, settings.environment)
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    global _tracer_provider

    if provider is None:
        return
    provider.shutdown()
    if provider is _tracer_provider:
        _tracer_provider = None
