from .base import ExecutionSpanWrapper
from .node import NodeRunWrapper
from .workflow import WorkflowRunWrapper

__all__ = [
    "ExecutionSpanWrapper",
    "NodeRunWrapper",
    "WorkflowRunWrapper",
]
