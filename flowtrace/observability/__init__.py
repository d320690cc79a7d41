from .bootstrap import (
    TracingRuntime,
    configure_logging,
    get_tracing_runtime,
    initialize_tracing,
    shutdown_tracing,
)
from .instrumentor import TracedWorkflowExecute, WorkflowEngineInstrumentor
from .provider import TracingPipeline
from .span_kinds import SpanKind, classify_node

__all__ = [
    "SpanKind",
    "TracedWorkflowExecute",
    "TracingPipeline",
    "TracingRuntime",
    "WorkflowEngineInstrumentor",
    "classify_node",
    "configure_logging",
    "get_tracing_runtime",
    "initialize_tracing",
    "shutdown_tracing",
]
