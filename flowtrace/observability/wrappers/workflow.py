import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from opentelemetry import trace as trace_api
from opentelemetry.trace import Span, Status, StatusCode

from flowtrace.types.execution import WorkflowDescriptor

from ..constants import (
    EXECUTION_ID,
    HTTP_ORIGINAL_NAME,
    INPUT_MIME_TYPE,
    INPUT_VALUE,
    JSON_MIME_TYPE,
    METADATA,
    OPENINFERENCE_SPAN_KIND,
    OUTPUT_MIME_TYPE,
    OUTPUT_VALUE,
    SESSION_ID,
    TRACE_NAMING,
    UNKNOWN,
    WORKFLOW_ID,
    WORKFLOW_NAME,
    WORKFLOW_SETTINGS_PREFIX,
    safe_json_dumps,
)
from ..naming import build_request_span_name, build_workflow_span_name, naming_mode
from ..payloads import (
    extract_workflow_error,
    extract_workflow_output,
    minimal_workflow_input,
    serialize_payload,
)
from ..span_kinds import SpanKind
from ..utils import (
    first_defined,
    flatten_attributes,
    get_argument,
    get_field,
    get_path,
    to_attribute_value,
)
from .base import ExecutionSpanWrapper

logger = logging.getLogger(__name__)

HTTP_VERB_NAME = re.compile(r"^(GET|POST|PUT|PATCH|DELETE|HEAD|OPTIONS)$", re.IGNORECASE)
HTTP_METHOD_ATTRIBUTES = ("http.method", "http.request.method")

# Locations of the execution id on the engine, probed in order
EXECUTION_ID_PATHS: Tuple[Tuple[str, ...], ...] = (
    ("executionId",),
    ("workflowExecuteAdditionalData", "executionId"),
    ("additionalData", "executionId"),
)


@dataclass
class WorkflowRun:
    """Identifiers of one in-flight workflow run."""

    workflow_id: str
    workflow_name: str
    execution_id: str

    @property
    def session_id(self) -> str:
        # Each execution is its own session
        return self.execution_id


# ============================================================================
# Workflow Run Wrapper
# ============================================================================


class WorkflowRunWrapper(ExecutionSpanWrapper):
    """
    Wrapper for the engine's workflow run entry point.

    Creates one CHAIN span per workflow run. Node spans created while the run
    is in flight nest under it. When the run is hosted by an inbound HTTP
    request span, that span is renamed after the workflow so the trace list
    shows workflow names rather than HTTP verbs.

    Features:
    - Execution and session id resolution from several engine locations
    - Configurable span naming (constant, dynamic or explicit pattern)
    - Flattened workflow settings as span attributes
    - Engine-reported run errors recorded on the span
    - Final output taken from the last executed node's last run only
    """

    operation = "workflow"

    def _start_span(self, instance: Any, args: Any, kwargs: Any) -> Tuple[Span, WorkflowRun]:
        workflow = WorkflowDescriptor.from_workflow(
            get_argument(args, kwargs, 0, "workflow")
        )
        run = WorkflowRun(
            workflow_id=workflow.id or UNKNOWN,
            workflow_name=workflow.name or UNKNOWN,
            execution_id=self._resolve_execution_id(instance),
        )
        attributes = self._build_workflow_attributes(run, workflow.settings)

        if not self._settings.only_workflow_spans:
            self._rename_request_span(trace_api.get_current_span(), run, attributes)

        span_name = build_workflow_span_name(
            run.workflow_id,
            run.workflow_name,
            run.execution_id,
            run.session_id,
            pattern=self._settings.workflow_span_name_pattern,
            dynamic=self._settings.dynamic_workflow_trace_name,
        )
        logger.debug(
            f"Starting workflow span {span_name}: workflow={run.workflow_id} execution={run.execution_id}"
        )
        return self._tracer.start_span(span_name, attributes=attributes), run

    def _resolve_execution_id(self, instance: Any) -> str:
        candidates = (get_path(instance, *path) for path in EXECUTION_ID_PATHS)
        return str(first_defined(*candidates, default=UNKNOWN))

    def _build_workflow_attributes(
        self, run: WorkflowRun, settings: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Build span attributes for a workflow run.

        Args:
            run: Identifiers of the run
            settings: The workflow's settings object

        Returns:
            Dict[str, Any]: Span attributes for the CHAIN span
        """
        identifiers = {
            WORKFLOW_ID: run.workflow_id,
            WORKFLOW_NAME: run.workflow_name,
            EXECUTION_ID: run.execution_id,
        }
        attributes: Dict[str, Any] = {
            OPENINFERENCE_SPAN_KIND: SpanKind.CHAIN.value,
            SESSION_ID: run.session_id,
            **identifiers,
        }
        for key, value in flatten_attributes(settings):
            attributes[f"{WORKFLOW_SETTINGS_PREFIX}.{key}"] = to_attribute_value(value)
        attributes[METADATA] = safe_json_dumps(identifiers)
        return attributes

    def _rename_request_span(
        self, parent: Any, run: WorkflowRun, attributes: Dict[str, Any]
    ) -> None:
        """
        Rename an inbound HTTP request span after the workflow it hosts.

        Only spans named after a bare HTTP verb or carrying an HTTP method
        attribute qualify. Workflow attributes are copied for keys the span
        does not already have. The span is never re-parented.
        """
        try:
            if parent is None or not parent.is_recording():
                return
            original_name = getattr(parent, "name", None) or ""
            parent_attributes = getattr(parent, "attributes", None) or {}
            has_method = any(parent_attributes.get(key) for key in HTTP_METHOD_ATTRIBUTES)
            if not (has_method or HTTP_VERB_NAME.match(original_name)):
                return

            dynamic = self._settings.dynamic_workflow_trace_name
            parent.update_name(
                build_request_span_name(
                    run.workflow_id,
                    run.workflow_name,
                    run.execution_id,
                    run.session_id,
                    pattern=self._settings.workflow_span_name_pattern,
                    dynamic=dynamic,
                )
            )
            for key, value in attributes.items():
                if parent_attributes.get(key) is None:
                    parent.set_attribute(key, value)
            parent.set_attribute(HTTP_ORIGINAL_NAME, original_name)
            parent.set_attribute(TRACE_NAMING, naming_mode(dynamic))
        except Exception as e:
            logger.warning(f"Failed to rename HTTP request span: {e}")

    def _on_success(self, span: Span, result: Any, run: WorkflowRun) -> None:
        error = extract_workflow_error(result)
        if error:
            self._record_run_error(span, error)
        else:
            span.set_status(Status(StatusCode.OK))

        if not self._settings.capture_input_output:
            return

        try:
            output = extract_workflow_output(result)
            if output is not None:
                span.set_attribute(
                    OUTPUT_VALUE, serialize_payload(output, self._settings.max_io_chars)
                )
                span.set_attribute(OUTPUT_MIME_TYPE, JSON_MIME_TYPE)
        except Exception as e:
            logger.warning(f"Failed to capture workflow output: {e}")

        existing = getattr(span, "attributes", None) or {}
        if not existing.get(INPUT_VALUE):
            span.set_attribute(
                INPUT_VALUE, minimal_workflow_input(run.workflow_id, run.workflow_name)
            )
            span.set_attribute(INPUT_MIME_TYPE, JSON_MIME_TYPE)

    def _record_run_error(self, span: Span, error: Any) -> None:
        """Record an error the engine reported in the run result without raising."""
        if isinstance(error, BaseException):
            span.record_exception(error)
            message = str(error)
        else:
            message = str(first_defined(get_field(error, "message"), default=error))
            span.add_event(
                "exception",
                {
                    "exception.type": str(
                        first_defined(get_field(error, "name"), default=type(error).__name__)
                    ),
                    "exception.message": message,
                },
            )
        span.set_status(Status(StatusCode.ERROR, message))
