"""
Span naming policy for workflow, request and node spans.

Workflow span names default to a low-cardinality constant. An explicit pattern
or dynamic naming trades cardinality for readability in the trace list.
"""

import re
from typing import Any, Optional

from .constants import (
    NODE_PREFIX,
    NODE_SPAN_NAME,
    REQUEST_SPAN_NAME,
    UNKNOWN,
    UNKNOWN_NODE_SPAN_NAME,
    WORKFLOW_SPAN_NAME,
)

MAX_SEGMENT_CHARS = 80
MAX_PATTERN_NAME_CHARS = 180

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_segment(value: Any, default: str = UNKNOWN) -> str:
    """
    Turn an identifier into a span-name-safe segment.

    Whitespace runs become a single hyphen, any other character outside
    ``[A-Za-z0-9._-]`` becomes a hyphen, and the result is capped at 80
    characters. Empty values yield ``default``.

    Example:
        >>> sanitize_segment("  My Flow / v2 ")
        'My-Flow---v2'
        >>> sanitize_segment(None, "wf")
        'wf'
    """
    if value is None or value == "" or value is False:
        return default
    text = _WHITESPACE.sub("-", str(value).strip())
    text = _DISALLOWED.sub("-", text)[:MAX_SEGMENT_CHARS]
    return text or default


def _dynamic_name(workflow_id: Any, workflow_name: Any, execution_id: Any) -> str:
    return "-".join(
        (
            sanitize_segment(workflow_id, "wf"),
            sanitize_segment(workflow_name, "workflow"),
            sanitize_segment(execution_id, "exec"),
        )
    )


def _pattern_name(
    pattern: str,
    workflow_id: Any,
    workflow_name: Any,
    execution_id: Any,
    session_id: Any,
) -> str:
    name = (
        pattern.replace("{workflowId}", sanitize_segment(workflow_id, "wf"))
        .replace("{workflowName}", sanitize_segment(workflow_name, "workflow"))
        .replace("{executionId}", sanitize_segment(execution_id, "exec"))
        .replace("{sessionId}", sanitize_segment(session_id, "sess"))
    )
    return name[:MAX_PATTERN_NAME_CHARS]


def build_workflow_span_name(
    workflow_id: Any,
    workflow_name: Any,
    execution_id: Any,
    session_id: Any,
    pattern: Optional[str] = None,
    dynamic: bool = False,
) -> str:
    """
    Name a workflow span.

    Precedence: an explicit pattern with ``{workflowId}``, ``{workflowName}``,
    ``{executionId}`` and ``{sessionId}`` placeholders, then the dynamic
    ``<workflowId>-<workflowName>-<executionId>`` name, then the constant
    ``n8n.workflow.execute``.

    Example:
        >>> build_workflow_span_name("wf1", "Demo", "42", "42", pattern="run:{workflowName}")
        'run:Demo'
    """
    if pattern and pattern.strip():
        name = _pattern_name(pattern, workflow_id, workflow_name, execution_id, session_id)
        return name or WORKFLOW_SPAN_NAME
    if dynamic:
        return _dynamic_name(workflow_id, workflow_name, execution_id)
    return WORKFLOW_SPAN_NAME


def build_request_span_name(
    workflow_id: Any,
    workflow_name: Any,
    execution_id: Any,
    session_id: Any,
    pattern: Optional[str] = None,
    dynamic: bool = False,
) -> str:
    """Name an inbound request span that hosts a workflow run."""
    if pattern and pattern.strip():
        name = _pattern_name(pattern, workflow_id, workflow_name, execution_id, session_id)
        return name or REQUEST_SPAN_NAME
    if dynamic:
        return _dynamic_name(workflow_id, workflow_name, execution_id)
    return REQUEST_SPAN_NAME


def build_node_span_name(
    node_name: Any,
    span_kind: Any,
    use_node_name: bool = True,
    kind_in_name: bool = False,
) -> str:
    """
    Name a node span.

    The node's own name wins when ``use_node_name`` is set, then
    ``n8n.node.<KIND>.execute`` when ``kind_in_name`` is set, then the constant
    ``n8n.node.execute``.
    """
    if use_node_name:
        if isinstance(node_name, str) and node_name:
            return node_name
        return UNKNOWN_NODE_SPAN_NAME
    if kind_in_name and span_kind:
        return f"{NODE_PREFIX}.{span_kind}.execute"
    return NODE_SPAN_NAME


def naming_mode(dynamic: bool) -> str:
    return "dynamic" if dynamic else "constant"


__all__ = [
    "build_node_span_name",
    "build_request_span_name",
    "build_workflow_span_name",
    "naming_mode",
    "sanitize_segment",
]
