import json
import logging
from typing import Any

from openinference.instrumentation import safe_json_dumps as oi_safe_json_dumps
from openinference.semconv.trace import (
    MessageAttributes,
    OpenInferenceMimeTypeValues,
    SpanAttributes,
)

logger = logging.getLogger(__name__)

# ============================================================================
# OpenInference Semantic Conventions
# ============================================================================

OPENINFERENCE_SPAN_KIND = SpanAttributes.OPENINFERENCE_SPAN_KIND
INPUT_VALUE = SpanAttributes.INPUT_VALUE
OUTPUT_VALUE = SpanAttributes.OUTPUT_VALUE
INPUT_MIME_TYPE = SpanAttributes.INPUT_MIME_TYPE
OUTPUT_MIME_TYPE = SpanAttributes.OUTPUT_MIME_TYPE
SESSION_ID = SpanAttributes.SESSION_ID
USER_ID = SpanAttributes.USER_ID
METADATA = SpanAttributes.METADATA

JSON_MIME_TYPE = OpenInferenceMimeTypeValues.JSON.value

# Single synthesized message for LLM spans: llm.input_messages.0.message.role etc.
LLM_INPUT_MESSAGE_ROLE = (
    f"{SpanAttributes.LLM_INPUT_MESSAGES}.0.{MessageAttributes.MESSAGE_ROLE}"
)
LLM_INPUT_MESSAGE_CONTENT = (
    f"{SpanAttributes.LLM_INPUT_MESSAGES}.0.{MessageAttributes.MESSAGE_CONTENT}"
)
LLM_OUTPUT_MESSAGE_ROLE = (
    f"{SpanAttributes.LLM_OUTPUT_MESSAGES}.0.{MessageAttributes.MESSAGE_ROLE}"
)
LLM_OUTPUT_MESSAGE_CONTENT = (
    f"{SpanAttributes.LLM_OUTPUT_MESSAGES}.0.{MessageAttributes.MESSAGE_CONTENT}"
)

# Resource attribute read by Arize / Phoenix to group traces into projects
OPENINFERENCE_PROJECT_NAME = "openinference.project.name"

# ============================================================================
# Workflow Engine Attributes
# ============================================================================

ENGINE_NAMESPACE = "n8n"

WORKFLOW_ID = f"{ENGINE_NAMESPACE}.workflow.id"
WORKFLOW_NAME = f"{ENGINE_NAMESPACE}.workflow.name"
WORKFLOW_SETTINGS_PREFIX = f"{ENGINE_NAMESPACE}.workflow.settings"
EXECUTION_ID = f"{ENGINE_NAMESPACE}.execution.id"
NODE_PREFIX = f"{ENGINE_NAMESPACE}.node"
NODE_NAME = f"{NODE_PREFIX}.name"
NODE_TYPE = f"{NODE_PREFIX}.type"
NODE_STATUS = f"{NODE_PREFIX}.status"
NODE_CATEGORY = f"{NODE_PREFIX}.category"
NODE_CATEGORY_RAW = f"{NODE_PREFIX}.category_raw"
HTTP_ORIGINAL_NAME = f"{ENGINE_NAMESPACE}.http.original_name"
TRACE_NAMING = f"{ENGINE_NAMESPACE}.trace.naming"

# Span names used when the naming policy falls back to constants
WORKFLOW_SPAN_NAME = f"{ENGINE_NAMESPACE}.workflow.execute"
REQUEST_SPAN_NAME = f"{ENGINE_NAMESPACE}.workflow.request"
NODE_SPAN_NAME = f"{ENGINE_NAMESPACE}.node.execute"
UNKNOWN_NODE_SPAN_NAME = "unknown-node"

UNKNOWN = "unknown"

TRACER_NAME = "flowtrace.instrumentation"
TRACER_VERSION = "1.0.0"

# ============================================================================
# Utility Functions with OpenInference Integration
# ============================================================================


def safe_json_dumps(obj: Any) -> str:
    """
    Serialize an object to a JSON string without ever raising.

    Uses OpenInference's serializer (which stringifies unknown types). Values it
    still cannot encode, such as circular structures, degrade to a diagnostic
    JSON object instead of propagating the error.

    Args:
        obj (Any): Object to serialize

    Returns:
        str: JSON string representation, or ``{"_serializationError": "..."}``
    """
    try:
        return oi_safe_json_dumps(obj)
    except Exception as e:
        logger.debug(f"Falling back to diagnostic payload after JSON failure: {e}")
        return json.dumps({"_serializationError": str(e)})


__all__ = [
    "ENGINE_NAMESPACE",
    "EXECUTION_ID",
    "HTTP_ORIGINAL_NAME",
    "INPUT_MIME_TYPE",
    "INPUT_VALUE",
    "JSON_MIME_TYPE",
    "LLM_INPUT_MESSAGE_CONTENT",
    "LLM_INPUT_MESSAGE_ROLE",
    "LLM_OUTPUT_MESSAGE_CONTENT",
    "LLM_OUTPUT_MESSAGE_ROLE",
    "METADATA",
    "NODE_CATEGORY",
    "NODE_CATEGORY_RAW",
    "NODE_NAME",
    "NODE_PREFIX",
    "NODE_SPAN_NAME",
    "NODE_STATUS",
    "NODE_TYPE",
    "OPENINFERENCE_PROJECT_NAME",
    "OPENINFERENCE_SPAN_KIND",
    "OUTPUT_MIME_TYPE",
    "OUTPUT_VALUE",
    "REQUEST_SPAN_NAME",
    "SESSION_ID",
    "TRACE_NAMING",
    "TRACER_NAME",
    "TRACER_VERSION",
    "UNKNOWN",
    "UNKNOWN_NODE_SPAN_NAME",
    "USER_ID",
    "WORKFLOW_ID",
    "WORKFLOW_NAME",
    "WORKFLOW_SETTINGS_PREFIX",
    "WORKFLOW_SPAN_NAME",
    "safe_json_dumps",
]
