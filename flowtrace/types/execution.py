from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class WorkflowExecutor(Protocol):
    """
    The two execution entry points of a workflow engine that get traced.

    Implementations may be coroutine functions, plain functions, or plain
    functions returning an awaitable (e.g. an ``asyncio.Future``).
    """

    def process_run_execution_data(self, workflow: Any, *args: Any, **kwargs: Any) -> Any:
        ...

    def run_node(
        self,
        workflow: Any,
        execution_data: Any,
        run_execution_data: Any,
        run_index: int,
        additional_data: Any,
        mode: Any,
        abort_signal: Any = None,
    ) -> Any:
        ...


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class WorkflowDescriptor(BaseModel):
    """Read-only view of the workflow an engine is running."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(default=None, description="Workflow identifier.")
    name: Optional[str] = Field(default=None, description="Workflow display name.")
    settings: Dict[str, Any] = Field(
        default_factory=dict, description="Workflow settings object."
    )

    @classmethod
    def from_workflow(cls, workflow: Any) -> "WorkflowDescriptor":
        """Build a descriptor from a dict, a model or any object. Never raises."""
        from flowtrace.observability.utils import as_mapping, get_field

        settings = get_field(workflow, "settings")
        return cls(
            id=_optional_str(get_field(workflow, "id")),
            name=_optional_str(get_field(workflow, "name")),
            settings={str(k): v for k, v in as_mapping(settings).items()},
        )


class NodeDescriptor(BaseModel):
    """Read-only view of one node (step) of a workflow."""

    model_config = ConfigDict(frozen=True)

    type: Optional[str] = Field(default=None, description="Node type identifier.")
    name: Optional[str] = Field(default=None, description="Node display name.")
    attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="The complete node object as a mapping (parameters, category, position...).",
    )

    @classmethod
    def from_node(cls, node: Any) -> "NodeDescriptor":
        """Build a descriptor from a dict, a model or any object. Never raises."""
        from flowtrace.observability.utils import as_mapping, get_field

        node_type = get_field(node, "type")
        node_name = get_field(node, "name")
        return cls(
            type=node_type if isinstance(node_type, str) else None,
            name=node_name if isinstance(node_name, str) else None,
            attributes={str(k): v for k, v in as_mapping(node).items()},
        )
