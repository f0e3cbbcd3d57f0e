# -*- coding: utf-8 -*-
"""Location: ./saasgateway/observability.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Mihai Criveti

OpenTelemetry tracing for the SaaS MCP Gateway.
Traces go to any OTLP/HTTP collector. When no endpoint is configured but
MCP_SERVER_BUGSNAG_API_KEY is set, they go to BugSnag's OTLP endpoint for that
key. Without either, tracing stays off and ``create_span`` is a no-op.

Each tool invocation runs in a ``tool.invoke`` span; failures are recorded on
the span with an ERROR status.

Examples:
    >>> parse_key_values("team=qa, region = eu,broken")
    {'team': 'qa', 'region': 'eu'}
    >>> with create_span("noop") as span:
    ...     span is None
    True
"""

# Standard
from contextlib import contextmanager
import platform
from typing import Any, Dict, Iterator, Optional

# Third-Party
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.trace import Status, StatusCode, Tracer

# First-Party
from saasgateway import __version__
from saasgateway.config import settings, Settings
from saasgateway.services.logging_service import logging_service

logger = logging_service.get_logger(__name__)

TRACER_NAME = "saasgateway"
BUGSNAG_OTLP_URL = "https://{api_key}.otlp.bugsnag.com/v1/traces"

# pylint: disable=invalid-name
_PROVIDER: Optional[TracerProvider] = None
_TRACER: Optional[Tracer] = None


def parse_key_values(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``k=v,k2=v2`` as used by OTEL_RESOURCE_ATTRIBUTES and OTEL_EXPORTER_OTLP_HEADERS.

    Args:
        raw: Comma-separated pairs; items without ``=`` are skipped

    Returns:
        Dict[str, str]: Parsed pairs
    """
    pairs: Dict[str, str] = {}
    for item in (raw or "").split(","):
        if "=" in item:
            key, value = item.split("=", 1)
            pairs[key.strip()] = value.strip()
    return pairs


def traces_endpoint(cfg: Settings) -> Optional[str]:
    """Return the OTLP traces URL, or None when tracing has nowhere to go.

    Args:
        cfg: Settings

    Returns:
        Optional[str]: Explicit endpoint first, then the BugSnag endpoint for the API key

    Examples:
        >>> traces_endpoint(Settings(mcp_server_bugsnag_api_key="abc123"))
        'https://abc123.otlp.bugsnag.com/v1/traces'
        >>> traces_endpoint(Settings(otel_exporter_otlp_endpoint="http://collector:4318/v1/traces", mcp_server_bugsnag_api_key="abc123"))
        'http://collector:4318/v1/traces'
        >>> traces_endpoint(Settings()) is None
        True
    """
    if cfg.otel_exporter_otlp_endpoint:
        return cfg.otel_exporter_otlp_endpoint
    if cfg.mcp_server_bugsnag_api_key:
        return BUGSNAG_OTLP_URL.format(api_key=cfg.mcp_server_bugsnag_api_key)
    return None


def build_resource(transport: str, cfg: Settings) -> Resource:
    """Describe this process to the tracing backend.

    Args:
        transport: Transport mode ("http" or "stdio")
        cfg: Settings

    Returns:
        Resource: Service, transport, environment and OS attributes
    """
    attributes: Dict[str, Any] = {
        "service.name": cfg.otel_service_name,
        "service.version": __version__,
        "mcp.transport": transport,
        "deployment.environment": cfg.deployment_env,
        "os.name": platform.system().lower(),
        "os.version": platform.release(),
    }
    attributes.update(parse_key_values(cfg.otel_resource_attributes))
    return Resource.create(attributes)


def init_telemetry(transport: str, cfg: Optional[Settings] = None) -> Optional[Tracer]:
    """Set up tracing for this process.

    Args:
        transport: Transport mode recorded on every span ("http" or "stdio")
        cfg: Settings; the global settings by default

    Returns:
        The tracer, or None when tracing is disabled or has no endpoint
    """
    # pylint: disable=global-statement
    global _PROVIDER, _TRACER
    cfg = cfg or settings

    if not cfg.otel_enable_observability:
        logger.info("Observability disabled via OTEL_ENABLE_OBSERVABILITY=false")
        return None

    exporter_type = cfg.otel_traces_exporter.lower()
    if exporter_type == "none":
        logger.info("Tracing disabled via OTEL_TRACES_EXPORTER=none")
        return None

    if exporter_type == "console":
        processor = SimpleSpanProcessor(ConsoleSpanExporter())
    elif exporter_type == "otlp":
        endpoint = traces_endpoint(cfg)
        if not endpoint:
            logger.info("No OTLP endpoint or BugSnag API key configured, skipping telemetry init")
            return None
        exporter = OTLPSpanExporter(endpoint=endpoint, headers=parse_key_values(cfg.otel_exporter_otlp_headers) or None)
        processor = BatchSpanProcessor(exporter)
    else:
        logger.warning(f"Unknown exporter type: {exporter_type}, tracing disabled")
        return None

    shutdown_telemetry()
    _PROVIDER = TracerProvider(resource=build_resource(transport, cfg))
    _PROVIDER.add_span_processor(processor)
    _TRACER = _PROVIDER.get_tracer(TRACER_NAME, __version__)
    logger.info(f"OpenTelemetry initialized with {exporter_type} exporter for {transport} transport")
    return _TRACER


def shutdown_telemetry() -> None:
    """Flush pending spans and stop tracing."""
    # pylint: disable=global-statement
    global _PROVIDER, _TRACER
    if _PROVIDER is not None:
        _PROVIDER.shutdown()
        logger.info("Telemetry terminated")
    _PROVIDER = None
    _TRACER = None


@contextmanager
def create_span(name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[Any]:
    """Run a block inside a span; yields None when tracing is off.

    Args:
        name: Span name, e.g. "tool.invoke"
        attributes: Span attributes; None values are skipped

    Yields:
        The active span, or None
    """
    if _TRACER is None:
        yield None
        return

    with _TRACER.start_as_current_span(name, record_exception=False, set_status_on_exception=False) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.set_attribute("error.type", type(e).__name__)
            raise
        span.set_status(Status(StatusCode.OK))
