import logging
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from opentelemetry.trace import Span, Status, StatusCode

from flowtrace.types.execution import NodeDescriptor

from ..constants import (
    EXECUTION_ID,
    INPUT_MIME_TYPE,
    INPUT_VALUE,
    JSON_MIME_TYPE,
    LLM_INPUT_MESSAGE_CONTENT,
    LLM_INPUT_MESSAGE_ROLE,
    LLM_OUTPUT_MESSAGE_CONTENT,
    LLM_OUTPUT_MESSAGE_ROLE,
    METADATA,
    NODE_NAME,
    NODE_PREFIX,
    NODE_STATUS,
    NODE_TYPE,
    OPENINFERENCE_SPAN_KIND,
    OUTPUT_MIME_TYPE,
    OUTPUT_VALUE,
    SESSION_ID,
    UNKNOWN,
    USER_ID,
    WORKFLOW_ID,
    safe_json_dumps,
)
from ..naming import build_node_span_name
from ..payloads import (
    NodeOutput,
    extract_node_input,
    extract_node_output,
    extract_user_message,
    message_content,
    serialize_payload,
)
from ..span_kinds import SpanKind, resolve_span_kind
from ..utils import (
    first_defined,
    flatten_attributes,
    get_argument,
    get_field,
    to_attribute_value,
)
from .base import ExecutionSpanWrapper

logger = logging.getLogger(__name__)


@dataclass
class NodeRun:
    """Classification and identity of one in-flight node run."""

    node_name: str
    node_type: str
    span_kind: SpanKind


# ============================================================================
# Node Run Wrapper
# ============================================================================


class NodeRunWrapper(ExecutionSpanWrapper):
    """
    Wrapper for the engine's single-node run entry point.

    Each node run becomes a child span of the active workflow span, classified
    with an OpenInference span kind. Resolved input items are attached before
    the node runs and its output items afterwards. LLM nodes additionally get a
    synthesized user message and assistant message.

    Wrapped call signature:
        run_node(workflow, execution_data, run_execution_data, run_index,
                 additional_data, mode, abort_signal=None)
    """

    operation = "node"

    def _start_span(self, instance: Any, args: Any, kwargs: Any) -> Tuple[Span, NodeRun]:
        workflow = get_argument(args, kwargs, 0, "workflow")
        execution_data = get_argument(args, kwargs, 1, "execution_data")
        additional_data = get_argument(args, kwargs, 4, "additional_data")

        node = NodeDescriptor.from_node(get_field(execution_data, "node"))
        execution_id = str(first_defined(get_field(additional_data, "executionId"), default=UNKNOWN))
        user_id = str(first_defined(get_field(additional_data, "userId"), default=UNKNOWN))
        workflow_id = str(first_defined(get_field(workflow, "id"), default=UNKNOWN))

        node_attributes = self._build_node_attributes(node, workflow_id, execution_id)
        span_kind = resolve_span_kind(
            node.type, node_attributes, enabled=self._settings.map_span_kinds
        )
        run = NodeRun(
            node_name=node.name or UNKNOWN,
            node_type=node.type or UNKNOWN,
            span_kind=span_kind,
        )

        attributes: Dict[str, Any] = {
            OPENINFERENCE_SPAN_KIND: span_kind.value,
            SESSION_ID: execution_id,
            USER_ID: user_id,
            **node_attributes,
            METADATA: safe_json_dumps(
                {
                    WORKFLOW_ID: workflow_id,
                    EXECUTION_ID: execution_id,
                    NODE_NAME: run.node_name,
                    NODE_TYPE: run.node_type,
                }
            ),
        }
        span_name = build_node_span_name(
            node.name,
            span_kind.value,
            use_node_name=self._settings.use_node_name_span,
            kind_in_name=self._settings.span_kind_in_node_span_name,
        )
        logger.debug(f"Executing node {run.node_name} ({run.node_type}) as {span_kind.value}")

        span = self._tracer.start_span(span_name, attributes=attributes)
        if self._settings.capture_input_output:
            self._capture_input(span, execution_data, run)
        return span, run

    def _build_node_attributes(
        self, node: NodeDescriptor, workflow_id: str, execution_id: str
    ) -> Dict[str, Any]:
        """
        Build the engine-namespaced attributes of a node span.

        The whole node object is flattened under ``n8n.node.``; non-scalar
        leaves are JSON-encoded.
        """
        attributes: Dict[str, Any] = {
            WORKFLOW_ID: workflow_id,
            EXECUTION_ID: execution_id,
            NODE_NAME: node.name or UNKNOWN,
        }
        for key, value in flatten_attributes(node.attributes):
            attributes[f"{NODE_PREFIX}.{key}"] = to_attribute_value(value)
        return attributes

    def _capture_input(self, span: Span, execution_data: Any, run: NodeRun) -> None:
        try:
            node_input = extract_node_input(execution_data)
            if node_input is None:
                return
            span.set_attribute(
                INPUT_VALUE, serialize_payload(node_input, self._settings.max_io_chars)
            )
            span.set_attribute(INPUT_MIME_TYPE, JSON_MIME_TYPE)

            if run.span_kind is SpanKind.LLM:
                content = extract_user_message(node_input)
                if content:
                    span.set_attribute(LLM_INPUT_MESSAGE_ROLE, "user")
                    span.set_attribute(LLM_INPUT_MESSAGE_CONTENT, message_content(content))
        except Exception as e:
            logger.warning(f"Failed to capture input of node {run.node_name}: {e}")

    def _on_success(self, span: Span, result: Any, run: NodeRun) -> None:
        if self._settings.capture_input_output:
            try:
                self._capture_output(span, result, run)
            except Exception as e:
                logger.warning(f"Failed to set output attributes of node {run.node_name}: {e}")
        span.set_status(Status(StatusCode.OK))

    def _capture_output(self, span: Span, result: Any, run: NodeRun) -> None:
        output = extract_node_output(result)
        if output is None:
            logger.debug(f"No output extracted for node {run.node_name}")
            return
        span.set_attribute(OUTPUT_VALUE, serialize_payload(output, self._settings.max_io_chars))
        span.set_attribute(OUTPUT_MIME_TYPE, JSON_MIME_TYPE)

        if run.span_kind is SpanKind.LLM and isinstance(output, NodeOutput) and output.primary:
            span.set_attribute(LLM_OUTPUT_MESSAGE_ROLE, "assistant")
            span.set_attribute(LLM_OUTPUT_MESSAGE_CONTENT, message_content(output.primary))

    def _on_failure(self, span: Span, error: BaseException, run: NodeRun) -> None:
        super()._on_failure(span, error, run)
        span.set_attribute(NODE_STATUS, "error")
