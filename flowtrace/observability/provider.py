"""Tracer provider, resource and span exporter setup for flowtrace."""

import logging
import os
from typing import Optional

from opentelemetry import trace as trace_api
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
    OTLPSpanExporter as GRPCSpanExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
    OTLPSpanExporter as HTTPSpanExporter,
)
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import SimpleLogRecordProcessor
from opentelemetry.sdk.resources import (
    OTELResourceDetector,
    ProcessResourceDetector,
    Resource,
    get_aggregated_resources,
)
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)

from flowtrace.config.settings import ExporterSettings
from flowtrace.types.exceptions import TracingInitializationError

from .constants import OPENINFERENCE_PROJECT_NAME

logger = logging.getLogger(__name__)

OTLP_TRACES_PATH = "/v1/traces"
EXPORTER_TIMEOUT_ENV = ("OTEL_EXPORTER_OTLP_TIMEOUT", "OTEL_EXPORTER_OTLP_TRACES_TIMEOUT")
BSP_TIMEOUT_ENV = "OTEL_BSP_EXPORT_TIMEOUT"


def build_resource(settings: ExporterSettings) -> Resource:
    """Service and project attributes merged with the OTEL env and process detectors."""
    initial = Resource.create(
        {
            "service.name": settings.service_name,
            OPENINFERENCE_PROJECT_NAME: settings.project_name,
        }
    )
    return get_aggregated_resources(
        [OTELResourceDetector(), ProcessResourceDetector()], initial_resource=initial
    )


def _exporter_timeout(settings: ExporterSettings) -> Optional[float]:
    # Explicit OTEL_* timeouts win over our default
    if any(os.getenv(name) for name in EXPORTER_TIMEOUT_ENV):
        return None
    return settings.timeout


def build_span_exporter(settings: ExporterSettings) -> Optional[SpanExporter]:
    """
    Build the span exporter selected by the settings.

    For ``otlp`` with Arize credentials the exporter targets the Arize endpoint
    with ``space_id``/``api_key`` headers over gRPC (default) or HTTP at
    ``<endpoint>/v1/traces``. Without credentials the HTTP exporter reads the
    standard ``OTEL_EXPORTER_OTLP_*`` variables.

    Returns:
        Optional[SpanExporter]: None for the ``none`` exporter
    """
    if settings.kind == "none":
        logger.warning("Span exporter disabled; spans will not leave the process.")
        return None
    if settings.kind == "console":
        return ConsoleSpanExporter()
    if settings.kind == "inmemory":
        return InMemorySpanExporter()

    timeout = _exporter_timeout(settings)
    if settings.has_arize_credentials:
        if settings.protocol == "http":
            endpoint = settings.endpoint.rstrip("/") + OTLP_TRACES_PATH
            logger.info(f"Arize HTTP exporter -> {endpoint}")
            return HTTPSpanExporter(
                endpoint=endpoint, headers=settings.arize_headers, timeout=timeout
            )
        logger.info(f"Arize gRPC exporter -> {settings.endpoint}")
        return GRPCSpanExporter(
            endpoint=settings.endpoint, headers=settings.arize_headers, timeout=timeout
        )

    logger.info("No Arize credentials found, using standard OTEL exporter env vars")
    return HTTPSpanExporter(timeout=timeout)


class TracingPipeline:
    """
    Owns the tracer provider and exporter for the lifetime of the process.

    OTLP exporters are fed through a batch processor; console and in-memory
    exporters get a simple processor so spans are visible immediately. When
    log export is enabled a logger provider ships records over OTLP HTTP
    through ``log_handler``.
    """

    def __init__(
        self,
        settings: ExporterSettings,
        exporter: Optional[SpanExporter] = None,
    ) -> None:
        self.settings = settings
        self.logger_provider: Optional[LoggerProvider] = None
        self.log_handler: Optional[LoggingHandler] = None
        try:
            self.exporter = exporter or build_span_exporter(settings)
            resource = build_resource(settings)
            self.provider = TracerProvider(resource=resource)
            if settings.export_logs:
                self.logger_provider = LoggerProvider(resource=resource)
                self.logger_provider.add_log_record_processor(
                    SimpleLogRecordProcessor(OTLPLogExporter())
                )
                self.log_handler = LoggingHandler(
                    level=logging.NOTSET, logger_provider=self.logger_provider
                )
        except Exception as e:
            raise TracingInitializationError(
                f"Failed to build tracing pipeline: {e}"
            ) from e

        if self.exporter is not None:
            self.provider.add_span_processor(self._build_processor(self.exporter))

        logger.info(f"Project: {settings.project_name}")
        logger.info(f"Exporter: {settings.kind} ({type(self.exporter).__name__})")
        logger.info(f"OTEL logs exporter {'enabled' if settings.export_logs else 'disabled'}")

    def _build_processor(self, exporter: SpanExporter):
        if isinstance(exporter, (HTTPSpanExporter, GRPCSpanExporter)):
            export_timeout = None
            if not os.getenv(BSP_TIMEOUT_ENV):
                export_timeout = int(self.settings.timeout * 1000)
            return BatchSpanProcessor(exporter, export_timeout_millis=export_timeout)
        return SimpleSpanProcessor(exporter)

    def install_global(self) -> None:
        """Register the provider as the process-wide tracer provider."""
        trace_api.set_tracer_provider(self.provider)

    def get_tracer(self, name: str, version: Optional[str] = None):
        return self.provider.get_tracer(name, version)

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        try:
            if self.logger_provider is not None:
                self.logger_provider.force_flush(timeout_millis)
            return self.provider.force_flush(timeout_millis)
        except Exception as e:
            logger.error(f"Error flushing telemetry data: {e}")
            return False

    def shutdown(self) -> None:
        try:
            self.provider.shutdown()
        except Exception as e:
            logger.error(f"Error shutting down tracer provider: {e}")
        if self.logger_provider is not None:
            try:
                self.logger_provider.shutdown()
            except Exception as e:
                logger.error(f"Error shutting down logger provider: {e}")


__all__ = [
    "TracingPipeline",
    "build_resource",
    "build_span_exporter",
]
