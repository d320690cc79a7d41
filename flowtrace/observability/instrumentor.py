"""
OpenTelemetry instrumentor for workflow engine executions.

The engine's two execution entry points are traced by decoration rather than
by patching its class: ``WorkflowEngineInstrumentor.wrap`` returns a
``TracedWorkflowExecute`` proxy around an engine instance. The proxy behaves
exactly like the engine (attribute access, isinstance checks, every other
method) except that the entry points run inside spans.

Span Hierarchy:

- (optional) inbound HTTP request span, renamed after the workflow
  └── n8n.workflow.execute (CHAIN span) - one workflow run
      ├── <node name> (LLM/TOOL/CHAIN/... span) - one node run
      │   └── LangChain spans (when LangChain instrumentation is enabled)
      └── <node name> ...

The engine's own class functions are rebound to the proxy, so a workflow run
that calls ``self.run_node(...)`` internally goes through the node wrapper and
its spans nest under the workflow span.
"""

import inspect
import logging
import types
from typing import Any, Collection, Optional

import wrapt
from opentelemetry import trace as trace_api
from opentelemetry.instrumentation.instrumentor import BaseInstrumentor

from flowtrace.config.settings import TracingSettings

from .constants import TRACER_NAME, TRACER_VERSION
from .wrappers import NodeRunWrapper, WorkflowRunWrapper

logger = logging.getLogger(__name__)

WORKFLOW_ENTRY_POINT = "process_run_execution_data"
NODE_ENTRY_POINT = "run_node"

# ============================================================================
# Traced Engine Proxy
# ============================================================================


class TracedWorkflowExecute(wrapt.ObjectProxy):
    """
    Engine proxy that routes both execution entry points through span wrappers.

    Usage:
        >>> traced = TracedWorkflowExecute(engine, workflow_wrapper, node_wrapper)
        >>> result = await traced.process_run_execution_data(workflow)
    """

    def __init__(
        self,
        engine: Any,
        workflow_wrapper: WorkflowRunWrapper,
        node_wrapper: NodeRunWrapper,
    ) -> None:
        super().__init__(engine)
        self._self_workflow_wrapper = workflow_wrapper
        self._self_node_wrapper = node_wrapper

    def process_run_execution_data(self, *args: Any, **kwargs: Any) -> Any:
        return self._self_workflow_wrapper(
            self._self_bound(WORKFLOW_ENTRY_POINT), self, args, kwargs
        )

    def run_node(self, *args: Any, **kwargs: Any) -> Any:
        return self._self_node_wrapper(
            self._self_bound(NODE_ENTRY_POINT), self, args, kwargs
        )

    def _self_bound(self, name: str) -> Any:
        """
        Bind the engine's own implementation of ``name`` to this proxy.

        Plain functions defined on the engine class are bound to the proxy so
        their internal ``self.<entry point>`` calls stay traced. Anything else
        (instance attributes, static or class methods) is read from the engine.
        """
        engine = self.__wrapped__
        if name not in getattr(engine, "__dict__", {}):
            function = inspect.getattr_static(type(engine), name, None)
            if inspect.isfunction(function):
                return types.MethodType(function, self)
        return getattr(engine, name)

    def __repr__(self) -> str:
        return f"<TracedWorkflowExecute for {self.__wrapped__!r}>"


# ============================================================================
# Main Instrumentor Class
# ============================================================================


class WorkflowEngineInstrumentor(BaseInstrumentor):
    """
    OpenTelemetry instrumentor for workflow engine executions.

    ``instrument()`` builds the tracer and both span wrappers once per process
    (``BaseInstrumentor`` ignores repeated calls); ``wrap()`` then decorates
    engine instances with them.

    Usage:
        >>> instrumentor = WorkflowEngineInstrumentor()
        >>> instrumentor.instrument(tracer_provider=provider, settings=settings)
        >>> engine = instrumentor.wrap(engine)
        >>> instrumentor.uninstrument()
    """

    _tracer = None
    _settings: Optional[TracingSettings] = None
    _workflow_wrapper: Optional[WorkflowRunWrapper] = None
    _node_wrapper: Optional[NodeRunWrapper] = None

    def instrumentation_dependencies(self) -> Collection[str]:
        """
        Get the list of dependencies required for instrumentation.

        The engine is handed over as an object, so no package is required.

        Returns:
            Collection[str]: Empty collection
        """
        return ()

    def _instrument(self, **kwargs: Any) -> None:
        """
        Build the tracer and the span wrappers.

        Args:
            **kwargs: Instrumentation configuration including:
                     - tracer_provider: Optional OpenTelemetry tracer provider
                     - settings: Optional TracingSettings (read from the
                       environment when omitted)
        """
        self._settings = kwargs.get("settings") or TracingSettings()
        self._initialize_tracer(kwargs)
        self._workflow_wrapper = WorkflowRunWrapper(self._tracer, self._settings)
        self._node_wrapper = NodeRunWrapper(self._tracer, self._settings)
        logger.info("Workflow engine OpenTelemetry instrumentation enabled")

    def _initialize_tracer(self, kwargs: dict) -> None:
        """
        Initialize the OpenTelemetry tracer shared by both wrappers.

        Args:
            kwargs (dict): Configuration including optional tracer_provider
        """
        tracer_provider = kwargs.get("tracer_provider")
        if not tracer_provider:
            tracer_provider = trace_api.get_tracer_provider()

        self._tracer = trace_api.get_tracer(
            TRACER_NAME, TRACER_VERSION, tracer_provider=tracer_provider
        )

    @property
    def tracer(self) -> Any:
        return self._tracer

    @property
    def is_instrumented(self) -> bool:
        return self._workflow_wrapper is not None

    def wrap(self, engine: Any) -> Any:
        """
        Decorate an engine instance with tracing.

        Args:
            engine: Object implementing ``process_run_execution_data`` and
                ``run_node``

        Returns:
            Any: A ``TracedWorkflowExecute`` proxy; an engine that is already
            traced, or any engine while not instrumented, is returned unchanged
        """
        if isinstance(engine, TracedWorkflowExecute):
            logger.debug("Engine is already traced")
            return engine
        if not self.is_instrumented:
            logger.warning("Instrumentor is not active, engine left untraced")
            return engine
        return TracedWorkflowExecute(engine, self._workflow_wrapper, self._node_wrapper)

    def _uninstrument(self, **kwargs: Any) -> None:
        """
        Drop the tracer and wrappers. Engines wrapped earlier keep tracing.

        Args:
            **kwargs: Uninstrumentation configuration (unused)
        """
        self._tracer = None
        self._settings = None
        self._workflow_wrapper = None
        self._node_wrapper = None
        logger.info("Workflow engine OpenTelemetry instrumentation disabled")


# ============================================================================
# Exported Classes
# ============================================================================

__all__ = [
    "TracedWorkflowExecute",
    "WorkflowEngineInstrumentor",
]
