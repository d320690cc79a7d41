"""
Process bootstrap for flowtrace.

``initialize_tracing`` installs the tracing pipeline exactly once per process
and returns a ``TracingRuntime`` handle. Two independent signals guard against
duplicate initialization: the handle held by this module and the
``FLOWTRACE_TRACING_INITIALIZED`` environment variable, which survives the
module being loaded a second time under another name.

Usage:
    >>> runtime = initialize_tracing()
    >>> engine = runtime.instrument(engine)
    >>> runtime.install_exception_handlers(asyncio.get_running_loop())
    ...
    >>> shutdown_tracing()
"""

import asyncio
import logging
import os
import sys
import threading
from importlib.metadata import entry_points
from typing import Any, List, Optional

from opentelemetry import trace as trace_api
from opentelemetry.sdk.trace.export import SpanExporter
from opentelemetry.trace import Status, StatusCode

from flowtrace.config.settings import TracingSettings, normalize_otel_environment

from .instrumentor import WorkflowEngineInstrumentor
from .provider import TracingPipeline

logger = logging.getLogger(__name__)

INITIALIZED_ENV = "FLOWTRACE_TRACING_INITIALIZED"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PACKAGE_LOGGER = "flowtrace"

INSTRUMENTOR_ENTRY_POINT_GROUP = "opentelemetry_instrumentor"
# Low-level and Postgres instrumentations are too noisy next to workflow spans;
# LangChain has its own toggle.
DISABLED_LIBRARY_INSTRUMENTORS = frozenset(
    {
        "asyncio",
        "threading",
        "system_metrics",
        "psycopg",
        "psycopg2",
        "asyncpg",
        "aiopg",
        "langchain",
    }
)

_RUNTIME: Optional["TracingRuntime"] = None
_LOCK = threading.Lock()

# ============================================================================
# Logging
# ============================================================================


def configure_logging(level: str = "info") -> logging.Logger:
    """
    Set the level of the ``flowtrace`` logger and give it a console handler.

    A handler is only attached when the logger has none, so repeated calls and
    host applications that configure logging themselves are left alone.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level.upper())
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    return package_logger


# ============================================================================
# LangChain Instrumentation
# ============================================================================


def instrument_langchain(tracer_provider: Any) -> Optional[Any]:
    """
    Trace LangChain calls made inside nodes with OpenInference spans.

    Must run after the tracer provider is built so the instrumentation gets a
    real tracer. Any failure, typically LangChain not being installed, is
    logged and tracing continues without LangChain spans.

    Returns:
        Optional[Any]: The active LangChainInstrumentor, or None
    """
    try:
        from openinference.instrumentation.langchain import LangChainInstrumentor

        instrumentor = LangChainInstrumentor()
        instrumentor.instrument(tracer_provider=tracer_provider)
        if not instrumentor.is_instrumented_by_opentelemetry:
            logger.warning("LangChain instrumentation not available: langchain-core missing")
            return None
        logger.info("LangChain OpenInference instrumentation enabled (sub-node tracing active)")
        return instrumentor
    except Exception as e:
        logger.warning(f"LangChain instrumentation not available: {e}")
        logger.debug("LangChain instrumentation error details", exc_info=True)
        return None


# ============================================================================
# Library Auto-Instrumentation
# ============================================================================


def instrument_libraries(tracer_provider: Any) -> List[Any]:
    """
    Activate every installed OpenTelemetry library instrumentor.

    Instrumentors are discovered through the ``opentelemetry_instrumentor``
    entry points, which is how the HTTP server, HTTP client and database
    spans around workflow runs come into existence. Entries in
    ``DISABLED_LIBRARY_INSTRUMENTORS`` and instrumentors the host application
    already activated are skipped. A failing instrumentor is logged and the
    rest still load.

    Returns:
        List[Any]: The instrumentors activated here, for later uninstrumenting
    """
    instrumentors = []
    for entry_point in entry_points(group=INSTRUMENTOR_ENTRY_POINT_GROUP):
        if entry_point.name in DISABLED_LIBRARY_INSTRUMENTORS:
            logger.debug(f"Skipping {entry_point.name} instrumentation")
            continue
        try:
            instrumentor = entry_point.load()()
            if instrumentor.is_instrumented_by_opentelemetry:
                continue
            instrumentor.instrument(tracer_provider=tracer_provider)
        except Exception as e:
            logger.warning(f"Failed to instrument {entry_point.name}: {e}")
            continue
        if instrumentor.is_instrumented_by_opentelemetry:
            instrumentors.append(instrumentor)
    names = ", ".join(type(i).__name__ for i in instrumentors) or "none installed"
    logger.info(f"Auto-instrumentations enabled: {names}")
    return instrumentors


# ============================================================================
# Runtime Handle
# ============================================================================


class TracingRuntime:
    """
    Handle on the live tracing pipeline owned by the process bootstrap.

    Attributes:
        settings: The resolved tracing settings
        pipeline: Tracer provider and exporter
        instrumentor: The engine instrumentor holding both span wrappers
    """

    def __init__(
        self,
        settings: TracingSettings,
        pipeline: TracingPipeline,
        instrumentor: WorkflowEngineInstrumentor,
        langchain_instrumentor: Optional[Any] = None,
        library_instrumentors: Optional[List[Any]] = None,
    ) -> None:
        self.settings = settings
        self.pipeline = pipeline
        self.instrumentor = instrumentor
        self.langchain_instrumentor = langchain_instrumentor
        self.library_instrumentors = library_instrumentors or []
        self._previous_excepthook = None

    @property
    def tracer(self) -> Any:
        return self.instrumentor.tracer

    def instrument(self, engine: Any) -> Any:
        """Return ``engine`` decorated with workflow and node tracing (idempotent)."""
        return self.instrumentor.wrap(engine)

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self.pipeline.force_flush(timeout_millis)

    def install_exception_handlers(
        self, loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> None:
        """
        Flush buffered spans when the process dies of an uncaught exception.

        The previous ``sys.excepthook`` still runs afterwards, so the process
        exits with a non-zero status as usual. When ``loop`` is given, errors of
        tasks nobody awaited are logged only.
        """
        if self._previous_excepthook is None:
            self._previous_excepthook = sys.excepthook
            sys.excepthook = self._handle_uncaught_exception
        if loop is not None:
            loop.set_exception_handler(self._handle_loop_exception)

    def _handle_uncaught_exception(self, exc_type, exc_value, exc_traceback) -> None:
        logger.critical(
            "Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback)
        )
        span = trace_api.get_current_span()
        if span.is_recording() and isinstance(exc_value, BaseException):
            span.record_exception(exc_value)
            span.set_status(Status(StatusCode.ERROR, str(exc_value)))
        self.force_flush()
        previous = self._previous_excepthook or sys.__excepthook__
        previous(exc_type, exc_value, exc_traceback)

    def _handle_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict
    ) -> None:
        error = context.get("exception")
        logger.error(
            f"Unhandled asyncio error: {context.get('message', error)}",
            exc_info=error if isinstance(error, BaseException) else None,
        )

    def shutdown(self) -> None:
        """Uninstrument, flush and shut the pipeline down."""
        if self._previous_excepthook is not None:
            if sys.excepthook == self._handle_uncaught_exception:
                sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None
        if self.langchain_instrumentor is not None:
            try:
                self.langchain_instrumentor.uninstrument()
            except Exception as e:
                logger.warning(f"Failed to uninstrument LangChain: {e}")
            self.langchain_instrumentor = None
        for library_instrumentor in self.library_instrumentors:
            try:
                library_instrumentor.uninstrument()
            except Exception as e:
                logger.warning(
                    f"Failed to uninstrument {type(library_instrumentor).__name__}: {e}"
                )
        self.library_instrumentors = []
        self.instrumentor.uninstrument()
        if self.pipeline.log_handler is not None:
            logging.getLogger(PACKAGE_LOGGER).removeHandler(self.pipeline.log_handler)
        self.pipeline.force_flush()
        self.pipeline.shutdown()
        logger.info("Tracing shut down")


# ============================================================================
# Initialization Guard
# ============================================================================


def _start(
    settings: Optional[TracingSettings],
    exporter: Optional[SpanExporter],
    set_global: bool,
) -> TracingRuntime:
    normalize_otel_environment()
    settings = settings or TracingSettings()
    configure_logging(settings.log_level)
    logger.info("Starting workflow OpenTelemetry instrumentation (Arize / OpenInference)")

    if settings.debug:
        exporter_settings = settings.exporter
        logger.debug(f"Arize protocol: {exporter_settings.protocol}")
        logger.debug(f"Arize endpoint: {exporter_settings.endpoint}")
        logger.debug(
            f"Arize space_id configured: {'Yes' if exporter_settings.space_id else 'No'}"
        )
        logger.debug(
            f"Arize api_key configured: {'Yes' if exporter_settings.api_key else 'No'}"
        )

    pipeline = TracingPipeline(settings.exporter, exporter=exporter)
    if set_global:
        pipeline.install_global()
    if pipeline.log_handler is not None:
        logging.getLogger(PACKAGE_LOGGER).addHandler(pipeline.log_handler)

    library_instrumentors = []
    if settings.only_workflow_spans:
        logger.info(
            "TRACING_ONLY_WORKFLOW_SPANS=true -> auto-instrumentations DISABLED (no HTTP/DB spans)"
        )
    else:
        library_instrumentors = instrument_libraries(pipeline.provider)

    instrumentor = WorkflowEngineInstrumentor()
    instrumentor.instrument(tracer_provider=pipeline.provider, settings=settings)

    langchain_instrumentor = None
    if settings.instrument_langchain:
        langchain_instrumentor = instrument_langchain(pipeline.provider)
    else:
        logger.info("LangChain instrumentation disabled (TRACING_INSTRUMENT_LANGCHAIN=false)")

    return TracingRuntime(
        settings, pipeline, instrumentor, langchain_instrumentor, library_instrumentors
    )


def initialize_tracing(
    settings: Optional[TracingSettings] = None,
    *,
    exporter: Optional[SpanExporter] = None,
    set_global: bool = True,
) -> Optional[TracingRuntime]:
    """
    Install the tracing pipeline once per process.

    Args:
        settings: Tracing options; read from the environment when omitted
        exporter: Span exporter overriding the one selected by the settings
        set_global: Register the tracer provider as the global provider

    Returns:
        Optional[TracingRuntime]: The runtime created by the first call. Later
        calls return the same runtime, or None when only the environment flag
        survived (the module was loaded again).

    Raises:
        TracingConfigurationError: If the settings are invalid
        TracingInitializationError: If the pipeline cannot be built
    """
    global _RUNTIME
    with _LOCK:
        if _RUNTIME is not None:
            logger.info(
                f"Already initialized in this process (PID: {os.getpid()}), skipping duplicate initialization"
            )
            return _RUNTIME
        if os.environ.get(INITIALIZED_ENV) == "true":
            logger.info(
                f"Tracing was initialized by another load of this module (PID: {os.getpid()}), skipping"
            )
            return None

        os.environ[INITIALIZED_ENV] = "true"
        logger.info(f"First initialization in process (PID: {os.getpid()})")
        try:
            _RUNTIME = _start(settings, exporter, set_global)
        except Exception:
            os.environ.pop(INITIALIZED_ENV, None)
            raise
        return _RUNTIME


def get_tracing_runtime() -> Optional[TracingRuntime]:
    return _RUNTIME


def shutdown_tracing() -> None:
    """Tear the pipeline down and clear both initialization signals."""
    global _RUNTIME
    with _LOCK:
        runtime, _RUNTIME = _RUNTIME, None
        os.environ.pop(INITIALIZED_ENV, None)
    if runtime is not None:
        runtime.shutdown()


__all__ = [
    "INITIALIZED_ENV",
    "TracingRuntime",
    "configure_logging",
    "get_tracing_runtime",
    "initialize_tracing",
    "instrument_langchain",
    "instrument_libraries",
    "shutdown_tracing",
]
