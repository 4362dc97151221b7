"""OpenTelemetry tracing helpers for the bridge.

A thin wrapper around the OpenTelemetry API so the rest of the codebase can
call ``get_tracer()`` without caring whether the SDK is installed.  Without a
configured SDK the API hands out no-op tracers.

Usage::

    from siyuan_mcp.utils.telemetry import ATTR_TOOL_NAME, get_tracer

    _tracer = get_tracer(__name__)

    with _tracer.start_as_current_span("mcp.tools.call") as span:
        span.set_attribute(ATTR_TOOL_NAME, "siyuan_sql_query")

stdout carries the JSON-RPC stream, so spans are only ever exported over OTLP
(requires the ``otel`` extra: ``pip install siyuan-mcp[otel]``).
"""

from __future__ import annotations

from typing import Any

from opentelemetry import trace

# ---------------------------------------------------------------------------
# Semantic attribute keys used throughout the bridge
# ---------------------------------------------------------------------------

ATTR_TOOL_NAME = "siyuan_mcp.tool.name"
ATTR_TOOL_ERROR = "siyuan_mcp.tool.error"
ATTR_RPC_METHOD = "siyuan_mcp.rpc.method"
ATTR_URL = "siyuan_mcp.url"
ATTR_DRY_RUN = "siyuan_mcp.dry_run"
ATTR_ASSET_SIZE = "siyuan_mcp.asset.size"
ATTR_ASSET_MIME = "siyuan_mcp.asset.mime"
ATTR_CAPTURE_PROVIDER = "siyuan_mcp.capture.provider"
ATTR_CAPTURE_LOCAL = "siyuan_mcp.capture.local"
ATTR_INSERT_MODE = "siyuan_mcp.insert.mode"

_INSTRUMENTATION_NAME = "siyuan_mcp"


def get_tracer(name: str | None = None) -> trace.Tracer:
    """Return a :class:`~opentelemetry.trace.Tracer` for *name* (no-op without an SDK)."""
    return trace.get_tracer(name or _INSTRUMENTATION_NAME)


def configure_telemetry(
    *,
    service_name: str = "siyuan-mcp",
    otlp_endpoint: str | None = None,
) -> None:
    """Configure OpenTelemetry tracing (requires ``siyuan-mcp[otel]``).

    Parameters
    ----------
    service_name:
        The ``service.name`` resource attribute.
    otlp_endpoint:
        If set, export spans via OTLP/gRPC to this endpoint.  Without it the
        provider is installed but exports nothing.

    Raises
    ------
    ImportError
        If the ``opentelemetry-sdk`` package is not installed.
    """
    try:
        from opentelemetry.sdk.resources import Resource  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace import TracerProvider  # pyright: ignore[reportMissingImports]
        from opentelemetry.sdk.trace.export import BatchSpanProcessor  # pyright: ignore[reportMissingImports]
    except ImportError as exc:
        msg = (
            "opentelemetry-sdk is required for configure_telemetry(). "
            "Install it with: pip install siyuan-mcp[otel]"
        )
        raise ImportError(msg) from exc

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        _add_otlp_exporter(provider, BatchSpanProcessor, otlp_endpoint)

    trace.set_tracer_provider(provider)


def _add_otlp_exporter(provider: Any, processor_cls: Any, endpoint: str) -> None:
    """Attach the OTLP gRPC exporter."""
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter  # pyright: ignore[reportMissingImports]
    except ImportError as exc:
        msg = (
            "opentelemetry-exporter-otlp is required for OTLP export. "
            "Install it with: pip install siyuan-mcp[otel]"
        )
        raise ImportError(msg) from exc

    provider.add_span_processor(processor_cls(OTLPSpanExporter(endpoint=endpoint)))
