from .exceptions import (
    TracingConfigurationError,
    TracingError,
    TracingInitializationError,
)
from .execution import NodeDescriptor, WorkflowDescriptor, WorkflowExecutor
