"""
Utility functions for flowtrace OpenTelemetry instrumentation.

This module provides the helpers shared by the classifier, the payload
extractors and the execution wrappers. Workflow engines hand over loosely typed
execution data (plain dictionaries decoded from JSON, pydantic models, or
arbitrary objects), so every read goes through a tolerant field accessor that
never raises.

Key Components:
- Field Access: get_field, get_path, first_defined, as_mapping
- Span Attributes: flatten_attributes, to_attribute_value
- Argument Processing: get_argument
"""

import dataclasses
import logging
import re
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple

from opentelemetry.util.types import AttributeValue

from .constants import safe_json_dumps

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

# ============================================================================
# Field Access
# ============================================================================


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()


def get_field(obj: Any, name: str) -> Any:
    """
    Read a single field from a mapping or an object.

    The camelCase name is tried first, then its snake_case alias, first as a
    mapping key and then as an attribute. Missing fields yield ``None``.

    Args:
        obj: Mapping, pydantic model, dataclass or any object (None allowed)
        name: Field name in camelCase (e.g. ``resultData``)

    Returns:
        Any: The field value, or None when absent

    Example:
        >>> get_field({"result_data": 1}, "resultData")
        1
    """
    if obj is None:
        return None
    names = (name,)
    alias = _snake_case(name)
    if alias != name:
        names = (name, alias)
    if isinstance(obj, Mapping):
        for candidate in names:
            if candidate in obj:
                return obj[candidate]
        return None
    for candidate in names:
        try:
            value = getattr(obj, candidate, None)
        except Exception:
            logger.debug(f"Attribute access failed for {candidate}", exc_info=True)
            continue
        if value is not None:
            return value
    return None


def get_path(obj: Any, *path: str) -> Any:
    """
    Walk a dotted path of fields, stopping at the first missing segment.

    Example:
        >>> get_path({"data": {"resultData": {"error": "boom"}}}, "data", "resultData", "error")
        'boom'
    """
    current = obj
    for segment in path:
        current = get_field(current, segment)
        if current is None:
            return None
    return current


def first_defined(*values: Any, default: Any = None) -> Any:
    """Return the first value that is neither None nor an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return default


def as_mapping(obj: Any) -> Dict[str, Any]:
    """
    Convert a loosely typed engine object into a plain dictionary.

    Handles mappings, pydantic models (``model_dump``), dataclasses and plain
    objects (``vars``). Anything else becomes an empty dictionary.
    """
    if obj is None:
        return {}
    if isinstance(obj, Mapping):
        return dict(obj)
    try:
        if hasattr(obj, "model_dump") and callable(obj.model_dump):
            dumped = obj.model_dump()
            if isinstance(dumped, Mapping):
                return dict(dumped)
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return dataclasses.asdict(obj)
        if hasattr(obj, "__dict__"):
            return {
                key: value
                for key, value in vars(obj).items()
                if not key.startswith("_")
            }
    except Exception as e:
        logger.debug(f"Could not convert {type(obj).__name__} to mapping: {e}")
    return {}


# ============================================================================
# Argument Processing
# ============================================================================


def get_argument(
    args: Sequence[Any], kwargs: Mapping[str, Any], index: int, name: str
) -> Any:
    """
    Fetch a call argument by position, falling back to its keyword name.

    Example:
        >>> get_argument((1, 2), {}, 1, "execution_data")
        2
        >>> get_argument((1,), {"execution_data": 3}, 1, "execution_data")
        3
    """
    if len(args) > index:
        return args[index]
    return kwargs.get(name)


# ============================================================================
# Span Attribute Utilities
# ============================================================================


def flatten_attributes(
    mapping: Optional[Mapping[str, Any]],
) -> Iterator[Tuple[str, Any]]:
    """
    Flatten nested dictionaries and sequences into dot-notation keys.

    Flattening Rules:
        - Nested dicts: {'user': {'name': 'John'}} → ('user.name', 'John')
        - Lists and tuples: {'tags': ['a', 'b']} → ('tags.0', 'a'), ('tags.1', 'b')
        - Empty dicts/lists: kept as leaf values
        - None values: skipped

    Example:
        >>> dict(flatten_attributes({'a': {'b': [1, {'c': 2}]}}))
        {'a.b.0': 1, 'a.b.1.c': 2}
    """
    if not mapping:
        return

    for key, value in mapping.items():
        if value is None:
            continue

        if isinstance(value, Mapping) and value:
            for sub_key, sub_value in flatten_attributes(value):
                yield f"{key}.{sub_key}", sub_value

        elif isinstance(value, (list, tuple)) and value:
            indexed = {str(index): item for index, item in enumerate(value)}
            for sub_key, sub_value in flatten_attributes(indexed):
                yield f"{key}.{sub_key}", sub_value
        else:
            yield str(key), value


def to_attribute_value(value: Any) -> AttributeValue:
    """Keep scalar attribute values as-is and JSON-encode everything else."""
    if isinstance(value, (str, bool, int, float)):
        return value
    return safe_json_dumps(value)


__all__ = [
    "as_mapping",
    "first_defined",
    "flatten_attributes",
    "get_argument",
    "get_field",
    "get_path",
    "to_attribute_value",
]
