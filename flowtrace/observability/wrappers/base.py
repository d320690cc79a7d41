import asyncio
import inspect
import logging
from typing import Any, Awaitable, Optional, Tuple

from opentelemetry import context as context_api
from opentelemetry import trace as trace_api
from opentelemetry.trace import Span, Status, StatusCode

from flowtrace.config.settings import TracingSettings

logger = logging.getLogger(__name__)

CANCELLED_STATUS_MESSAGE = "cancelled"

# ============================================================================
# Execution Span Wrapper
# ============================================================================


class ExecutionSpanWrapper:
    """
    Shared span lifecycle for the engine's execution entry points.

    Subclasses decide what a span looks like (``_start_span``) and what gets
    recorded when the wrapped call settles (``_on_success``/``_on_failure``).
    This class guarantees the lifecycle around them:

    - the span is active while the wrapped call runs, so spans created inside
      nest under it across every suspension point
    - the span is ended exactly once, after the outcome has been recorded, on
      normal return, raised error, cancellation or a settled future
    - the wrapped call's return value and errors pass through unchanged
    - failures of the tracing code itself are logged, never raised

    Supported call shapes: coroutine functions, plain functions, and plain
    functions returning an asyncio future (the same future is handed back and
    the span ends when it settles) or any other awaitable.
    """

    operation = "execution"

    def __init__(self, tracer: Any, settings: TracingSettings) -> None:
        """
        Initialize the wrapper.

        Args:
            tracer: OpenTelemetry tracer instance
            settings: Tracing options shared by all wrappers
        """
        self._tracer = tracer
        self._settings = settings

    def __call__(self, wrapped: Any, instance: Any, args: Any, kwargs: Any) -> Any:
        """
        Wrap one engine call with a span.

        Args:
            wrapped: The original callable, already bound to ``instance``
            instance: The engine object the call belongs to
            args: Positional arguments
            kwargs: Keyword arguments

        Returns:
            Any: Exactly what ``wrapped`` returns
        """
        # Check for instrumentation suppression
        if context_api.get_value(context_api._SUPPRESS_INSTRUMENTATION_KEY):
            logger.debug("Instrumentation suppressed, skipping span creation")
            return wrapped(*args, **kwargs)

        if inspect.iscoroutinefunction(wrapped):
            return self._handle_async_execution(wrapped, instance, args, kwargs)
        return self._handle_sync_execution(wrapped, instance, args, kwargs)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _start_span(self, instance: Any, args: Any, kwargs: Any) -> Tuple[Span, Any]:
        """Start the span for one call and return it with per-call state."""
        raise NotImplementedError

    def _on_success(self, span: Span, result: Any, state: Any) -> None:
        span.set_status(Status(StatusCode.OK))

    def _on_failure(self, span: Span, error: BaseException, state: Any) -> None:
        if isinstance(error, asyncio.CancelledError):
            span.set_status(Status(StatusCode.ERROR, CANCELLED_STATUS_MESSAGE))
            span.record_exception(error)
            return
        span.set_status(Status(StatusCode.ERROR, str(error) or type(error).__name__))
        span.record_exception(error)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _begin(self, instance: Any, args: Any, kwargs: Any) -> Optional[Tuple[Span, Any]]:
        try:
            return self._start_span(instance, args, kwargs)
        except Exception as e:
            logger.warning(f"Failed to start {self.operation} span, running untraced: {e}")
            return None

    def _finish_success(self, span: Span, result: Any, state: Any) -> None:
        try:
            self._on_success(span, result, state)
        except Exception as e:
            logger.warning(f"Failed to record {self.operation} result: {e}")
        finally:
            span.end()

    def _finish_failure(self, span: Span, error: BaseException, state: Any) -> None:
        try:
            self._on_failure(span, error, state)
        except Exception as e:
            logger.warning(f"Failed to record {self.operation} error: {e}")
        finally:
            span.end()

    def _activate(self, span: Span) -> Any:
        return trace_api.use_span(
            span,
            end_on_exit=False,
            record_exception=False,
            set_status_on_exception=False,
        )

    def _handle_async_execution(
        self, wrapped: Any, instance: Any, args: Any, kwargs: Any
    ) -> Any:
        """
        Handle a coroutine function.

        The span is started when the returned coroutine is first awaited, so
        its parent is whatever span is active in the awaiting task.
        """

        async def async_wrapper():
            started = self._begin(instance, args, kwargs)
            if started is None:
                return await wrapped(*args, **kwargs)
            span, state = started
            try:
                with self._activate(span):
                    result = await wrapped(*args, **kwargs)
            except BaseException as e:
                self._finish_failure(span, e, state)
                raise
            self._finish_success(span, result, state)
            return result

        return async_wrapper()

    def _handle_sync_execution(
        self, wrapped: Any, instance: Any, args: Any, kwargs: Any
    ) -> Any:
        """
        Handle a plain function, including one that returns a future or awaitable.
        """
        started = self._begin(instance, args, kwargs)
        if started is None:
            return wrapped(*args, **kwargs)
        span, state = started
        try:
            with self._activate(span):
                result = wrapped(*args, **kwargs)
        except BaseException as e:
            self._finish_failure(span, e, state)
            raise

        if asyncio.isfuture(result):
            result.add_done_callback(
                lambda future: self._finish_future(span, future, state)
            )
            return result
        if inspect.isawaitable(result):
            return self._await_result(span, result, state)

        self._finish_success(span, result, state)
        return result

    def _finish_future(self, span: Span, future: "asyncio.Future", state: Any) -> None:
        if future.cancelled():
            self._finish_failure(span, asyncio.CancelledError(), state)
            return
        error = future.exception()
        if error is not None:
            self._finish_failure(span, error, state)
            return
        self._finish_success(span, future.result(), state)

    async def _await_result(self, span: Span, awaitable: Awaitable, state: Any) -> Any:
        try:
            with self._activate(span):
                result = await awaitable
        except BaseException as e:
            self._finish_failure(span, e, state)
            raise
        self._finish_success(span, result, state)
        return result
