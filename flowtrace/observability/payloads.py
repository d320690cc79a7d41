"""
Payload extraction for workflow and node spans.

The engine hands node inputs and results over in several loosely typed shapes.
Node results are first classified into a closed set of shapes (see
``NodeResult``) and every extractor works exhaustively over that set. The
records carried by each item live in its ``json`` field; binary payloads and
engine bookkeeping are never copied onto spans.

Every extractor is total: failures are turned into a diagnostic
``{"_error": "<message>"}`` payload instead of propagating into the traced call.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .constants import safe_json_dumps
from .utils import get_field, get_path

logger = logging.getLogger(__name__)

MAX_OUTPUT_ITEMS = 10
DEFAULT_MAX_IO_CHARS = 12000

# Probed in order on the first output record
PRIMARY_OUTPUT_FIELDS = ("output", "completion", "text", "result", "response")

# Probed in order on the first input record of LLM nodes
USER_MESSAGE_FIELDS = ("chatInput", "text", "prompt", "query")

MAIN_CONNECTION = "main"

_SCALAR_TYPES = (str, bytes, int, float, bool)

# ============================================================================
# Node Result Shapes
# ============================================================================


@dataclass(frozen=True)
class ConnectionListResult:
    """Result whose ``data`` is a list of output connections, each a list of items."""

    connections: Sequence[Any]


@dataclass(frozen=True)
class NamedConnectionsResult:
    """Result whose ``data`` wraps the output connections under a named field."""

    connections: Sequence[Any]
    name: str = MAIN_CONNECTION


@dataclass(frozen=True)
class EmptyResult:
    """No result, or a result without data."""


@dataclass(frozen=True)
class UnrecognizedResult:
    """Any other shape. Kept for diagnostics only."""

    data: Any = None


NodeResult = Union[
    ConnectionListResult, NamedConnectionsResult, EmptyResult, UnrecognizedResult
]


def classify_result(result: Any) -> NodeResult:
    """
    Determine which of the known shapes a node result has.

    Example:
        >>> classify_result({"data": [[{"json": {"a": 1}}]]})
        ConnectionListResult(connections=([{'json': {'a': 1}}],))
        >>> classify_result(None)
        EmptyResult()
    """
    if result is None:
        return EmptyResult()
    data = get_field(result, "data")
    if data is None:
        return EmptyResult()
    if isinstance(data, (list, tuple)):
        return ConnectionListResult(connections=tuple(data))
    if isinstance(data, Mapping):
        main = data.get(MAIN_CONNECTION)
        if isinstance(main, (list, tuple)):
            return NamedConnectionsResult(connections=tuple(main))
    return UnrecognizedResult(data=data)


@dataclass
class NodeOutput:
    """Flattened node output: a convenience primary value plus the first records."""

    primary: Any = None
    items: List[Any] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.primary is not None:
            payload["primary"] = self.primary
        payload["items"] = self.items
        return payload


# ============================================================================
# Record Collection
# ============================================================================


def _item_record(item: Any) -> Any:
    record = get_field(item, "json")
    # pydantic models expose a deprecated json() method under the same name
    if callable(record):
        return None
    return record


def collect_records(connections: Any) -> List[Any]:
    """
    Collect the ``json`` record of every item across output/input connections.

    Args:
        connections: Sequence of connections, each a sequence of items. Missing
            or malformed connections are skipped.

    Returns:
        List[Any]: Records in connection order, then item order
    """
    records: List[Any] = []
    if not isinstance(connections, (list, tuple)):
        return records
    for connection in connections:
        if not isinstance(connection, (list, tuple)):
            continue
        for item in connection:
            record = _item_record(item)
            if record is not None:
                records.append(record)
    return records


def _unwrap_single(records: List[Any]) -> Any:
    if not records:
        return None
    if len(records) == 1:
        return records[0]
    return records


# ============================================================================
# Extractors
# ============================================================================


def extract_node_input(execution_data: Any) -> Any:
    """
    Extract the resolved input records flowing into a node.

    Reads ``execution_data.data`` (connection name → list of item slots) rather
    than the node parameters, which still hold unevaluated expressions. The
    ``main`` connection is read first, then any other connection in order.

    Args:
        execution_data: The per-node execution data passed to ``run_node``

    Returns:
        Any: A single record, a list of records, None when there is no input, or
        ``{"_error": ...}`` if the data could not be read
    """
    try:
        connections = get_field(execution_data, "data")
        if not isinstance(connections, Mapping) or not connections:
            return None

        names = list(connections.keys())
        if MAIN_CONNECTION in connections:
            names = [MAIN_CONNECTION] + [n for n in names if n != MAIN_CONNECTION]

        records: List[Any] = []
        for name in names:
            records.extend(collect_records(connections[name]))
        return _unwrap_single(records)
    except Exception as e:
        logger.debug(f"Failed to extract node input: {e}")
        return {"_error": str(e)}


def _primary_value(record: Any) -> Any:
    if record is None or isinstance(record, _SCALAR_TYPES):
        return None
    for name in PRIMARY_OUTPUT_FIELDS:
        value = get_field(record, name)
        if value:
            return value
    return None


def extract_node_output(result: Any) -> Union[NodeOutput, Dict[str, str], None]:
    """
    Extract a bounded view of a node's output.

    Args:
        result: The value returned by ``run_node``

    Returns:
        NodeOutput with at most ``MAX_OUTPUT_ITEMS`` records, None when the
        result carries no records, or ``{"_error": ...}`` on failure
    """
    try:
        shape = classify_result(result)
        if isinstance(shape, (ConnectionListResult, NamedConnectionsResult)):
            records = collect_records(shape.connections)
        elif isinstance(shape, EmptyResult):
            logger.debug("Node result carries no data")
            return None
        else:
            logger.debug(
                f"Unrecognized node result shape: data type {type(shape.data).__name__}"
            )
            return None

        if not records:
            logger.debug(
                f"No output records found in {type(shape).__name__} "
                f"with {len(shape.connections)} connection(s)"
            )
            return None

        return NodeOutput(
            primary=_primary_value(records[0]), items=records[:MAX_OUTPUT_ITEMS]
        )
    except Exception as e:
        logger.debug(f"Failed to extract node output: {e}")
        return {"_error": str(e)}


def extract_workflow_output(run_result: Any) -> Any:
    """
    Extract the output of the last executed node's last run.

    Only ``resultData.runData[resultData.lastNodeExecuted][-1]`` is read, never
    the complete per-node run log.

    Returns:
        Any: A single record, a list of records, None, or ``{"_error": ...}``
    """
    try:
        result_data = get_path(run_result, "data", "resultData")
        run_data = get_field(result_data, "runData")
        last_node = get_field(result_data, "lastNodeExecuted")
        if not run_data or not last_node:
            return None

        if isinstance(run_data, Mapping):
            node_runs = run_data.get(last_node)
        else:
            node_runs = getattr(run_data, str(last_node), None)
        if not isinstance(node_runs, (list, tuple)) or not node_runs:
            return None

        main = get_path(node_runs[-1], "data", MAIN_CONNECTION)
        return _unwrap_single(collect_records(main))
    except Exception as e:
        logger.debug(f"Failed to extract workflow output: {e}")
        return {"_error": str(e)}


def extract_workflow_error(run_result: Any) -> Any:
    """Return the engine-reported error of a finished run, if any."""
    return get_path(run_result, "data", "resultData", "error")


def extract_user_message(node_input: Any) -> Any:
    """
    Find a single user message in a node's input for LLM spans.

    The first record is probed for ``chatInput``, ``text``, ``prompt`` and
    ``query`` in that order; the first truthy value wins.
    """
    record = node_input[0] if isinstance(node_input, list) and node_input else node_input
    if record is None or isinstance(record, _SCALAR_TYPES):
        return None
    for name in USER_MESSAGE_FIELDS:
        value = get_field(record, name)
        if value:
            return value
    return None


# ============================================================================
# Serialization
# ============================================================================


def truncate_io(value: Any, max_chars: int = DEFAULT_MAX_IO_CHARS) -> str:
    """
    Cap a payload string, recording how many characters were dropped.

    Example:
        >>> truncate_io("abcdef", 4)
        'abcd...[truncated 2 chars]'
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    if len(value) <= max_chars:
        return value
    return f"{value[:max_chars]}...[truncated {len(value) - max_chars} chars]"


def serialize_payload(value: Any, max_chars: int = DEFAULT_MAX_IO_CHARS) -> str:
    """JSON-encode a payload without raising and cap it to ``max_chars``."""
    if isinstance(value, NodeOutput):
        value = value.to_payload()
    return truncate_io(safe_json_dumps(value), max_chars)


def message_content(value: Any) -> str:
    """Strings pass through; anything else is JSON-encoded."""
    if isinstance(value, str):
        return value
    return safe_json_dumps(value)


def minimal_workflow_input(workflow_id: Any, workflow_name: Any) -> str:
    return safe_json_dumps({"workflowId": workflow_id, "workflowName": workflow_name})


__all__ = [
    "ConnectionListResult",
    "EmptyResult",
    "MAX_OUTPUT_ITEMS",
    "NamedConnectionsResult",
    "NodeOutput",
    "NodeResult",
    "PRIMARY_OUTPUT_FIELDS",
    "USER_MESSAGE_FIELDS",
    "UnrecognizedResult",
    "classify_result",
    "collect_records",
    "extract_node_input",
    "extract_node_output",
    "extract_user_message",
    "extract_workflow_error",
    "extract_workflow_output",
    "message_content",
    "minimal_workflow_input",
    "serialize_payload",
    "truncate_io",
]
