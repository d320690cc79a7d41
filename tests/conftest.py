"""Pytest configuration and shared fixtures for flowtrace testing."""

import pytest
import logging
import sys
import os
from typing import Generator

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)

# Add the project root to the Python path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from flowtrace.config.settings import ExporterSettings, TracingSettings  # noqa: E402
from flowtrace.observability import bootstrap  # noqa: E402
from flowtrace.observability.bootstrap import PACKAGE_LOGGER, shutdown_tracing  # noqa: E402
from flowtrace.observability.instrumentor import WorkflowEngineInstrumentor  # noqa: E402

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

ENV_PREFIXES = ("TRACING_", "ARIZE_", "OTEL_", "FLOWTRACE_", "N8N_")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Run every test without tracing-related environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith(ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture(autouse=True)
def no_library_instrumentors(monkeypatch):
    """Keep installed OpenTelemetry library instrumentors out of the tests."""
    monkeypatch.setattr(bootstrap, "entry_points", lambda group: [])


@pytest.fixture(autouse=True)
def reset_instrumentation() -> Generator[None, None, None]:
    """Tear down the process-wide runtime and instrumentor after each test."""
    yield
    shutdown_tracing()
    WorkflowEngineInstrumentor().uninstrument()
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.NOTSET)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    """In-memory exporter collecting finished spans."""
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(span_exporter) -> TracerProvider:
    """Private tracer provider exporting synchronously to memory."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider


@pytest.fixture
def tracer(tracer_provider):
    """Tracer bound to the in-memory provider."""
    return tracer_provider.get_tracer("flowtrace.tests")


@pytest.fixture
def make_settings():
    """Factory for explicit settings that never reach a real collector."""

    def _make_settings(**overrides) -> TracingSettings:
        values = {
            "instrument_langchain": False,
            "exporter": ExporterSettings(kind="inmemory"),
        }
        values.update(overrides)
        return TracingSettings(**values)

    return _make_settings


@pytest.fixture
def settings(make_settings) -> TracingSettings:
    """Default settings: constant workflow names, node-name node spans."""
    return make_settings()
