from flowtrace.config import ExporterSettings, TracingSettings
from flowtrace.observability import (
    SpanKind,
    TracedWorkflowExecute,
    TracingRuntime,
    WorkflowEngineInstrumentor,
    classify_node,
    get_tracing_runtime,
    initialize_tracing,
    shutdown_tracing,
)
from flowtrace.types import (
    NodeDescriptor,
    TracingConfigurationError,
    TracingError,
    TracingInitializationError,
    WorkflowDescriptor,
    WorkflowExecutor,
)

__all__ = [
    "ExporterSettings",
    "NodeDescriptor",
    "SpanKind",
    "TracedWorkflowExecute",
    "TracingConfigurationError",
    "TracingError",
    "TracingInitializationError",
    "TracingRuntime",
    "TracingSettings",
    "WorkflowDescriptor",
    "WorkflowEngineInstrumentor",
    "WorkflowExecutor",
    "classify_node",
    "get_tracing_runtime",
    "initialize_tracing",
    "shutdown_tracing",
]
