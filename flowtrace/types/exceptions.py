class TracingError(Exception):
    """Base exception for flowtrace specific errors."""


class TracingConfigurationError(TracingError):
    """Custom exception for invalid tracing or exporter settings."""


class TracingInitializationError(TracingError):
    """Custom exception for failures while building the tracing pipeline."""
