from pydantic import BaseModel, Field
from typing import Any, Optional
import logging
import os

from flowtrace.types.exceptions import TracingConfigurationError

logger = logging.getLogger(__name__)

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off")

EXPORTER_KINDS = ("otlp", "console", "inmemory", "none")
EXPORTER_PROTOCOLS = ("grpc", "http")
LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
# winston level names used by engine deployments
LOG_LEVEL_ALIASES = {"warn": "warning", "verbose": "debug", "http": "debug", "silly": "debug"}
OTLP_LOGS_EXPORTERS = ("otlp", "otlp_http", "otlp-http")

DEFAULT_ARIZE_ENDPOINT = "https://otlp.arize.com"
DEFAULT_PROJECT_NAME = "n8n"
DEFAULT_SERVICE_NAME = "n8n"
DEFAULT_MAX_IO_CHARS = 12000
DEFAULT_EXPORT_TIMEOUT = 30.0


def strip_quotes(value: Optional[str]) -> Optional[str]:
    """Remove surrounding whitespace and one leading/trailing quote character."""
    if value is None:
        return None
    value = value.strip()
    if value[:1] in ("'", '"'):
        value = value[1:]
    if value[-1:] in ("'", '"'):
        value = value[:-1]
    return value


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = strip_quotes(os.getenv(name))
    return value if value else default


def env_bool(name: str, default: bool) -> bool:
    """
    Read a boolean toggle from the environment.

    Accepts ``true/1/yes/on`` and ``false/0/no/off`` (case-insensitive); any
    other value, or no value at all, yields ``default``.
    """
    value = (env_str(name) or "").lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    if value:
        logger.warning(f"Ignoring unrecognized boolean {name}={value!r}")
    return default


def env_int(name: str, default: int) -> int:
    value = env_str(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise TracingConfigurationError(
            f"{name} must be an integer, got {value!r}"
        ) from e


def env_float(name: str, default: float) -> float:
    value = env_str(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise TracingConfigurationError(f"{name} must be a number, got {value!r}") from e


def resolve_log_level(value: str) -> str:
    """
    Map a configured level onto a ``logging`` level name.

    winston names (``warn``, ``verbose``, ``http``, ``silly``) are translated;
    anything unknown falls back to ``info`` with a warning.
    """
    level = value.lower()
    level = LOG_LEVEL_ALIASES.get(level, level)
    if level not in LOG_LEVELS:
        logger.warning(f"Unknown log level {value!r}, falling back to 'info'")
        return "info"
    return level


def logs_export_enabled() -> bool:
    """OTLP log export is opt-in through ``OTEL_LOGS_EXPORTER`` or ``N8N_OTEL_EXPORT_LOGS``."""
    if (env_str("OTEL_LOGS_EXPORTER") or "").lower() in OTLP_LOGS_EXPORTERS:
        return True
    return env_bool("N8N_OTEL_EXPORT_LOGS", False)


def normalize_otel_environment() -> None:
    """
    Strip surrounding quotes from every ``OTEL_*`` environment variable.

    Container runtimes often pass quoted values through verbatim, which the
    OpenTelemetry exporters then reject as malformed endpoints or headers.
    """
    for key, value in list(os.environ.items()):
        if not key.startswith("OTEL_"):
            continue
        cleaned = strip_quotes(value)
        if cleaned != value:
            os.environ[key] = cleaned
            logger.debug(f"Stripped quotes from {key}")


class ExporterSettings(BaseModel):
    """
    Selects and parameterises the span exporter.

    With Arize credentials (``space_id`` and ``api_key``) the OTLP exporter
    targets the Arize endpoint directly. Without them the standard
    ``OTEL_EXPORTER_OTLP_*`` variables configure the HTTP exporter.
    """

    kind: Optional[str] = Field(
        default=None,
        description="Exporter to use: otlp, console, inmemory or none. Defaults to the 'TRACING_EXPORTER' environment variable, then 'otlp'.",
    )
    protocol: Optional[str] = Field(
        default=None,
        description="OTLP transport for Arize: grpc or http. Defaults to the 'ARIZE_PROTOCOL' environment variable, then 'grpc'.",
    )
    endpoint: Optional[str] = Field(
        default=None,
        description="Arize OTLP endpoint. Defaults to the 'ARIZE_ENDPOINT' environment variable, then 'https://otlp.arize.com'.",
    )
    space_id: Optional[str] = Field(
        default=None,
        description="Arize space id. Defaults to the 'ARIZE_SPACE_ID' environment variable.",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="Arize API key. Defaults to the 'ARIZE_API_KEY' environment variable.",
    )
    project_name: Optional[str] = Field(
        default=None,
        description="Project the traces are grouped under. Defaults to the 'ARIZE_PROJECT_NAME' environment variable, then 'n8n'.",
    )
    service_name: Optional[str] = Field(
        default=None,
        description="Resource service.name. Defaults to the 'OTEL_SERVICE_NAME' environment variable, then 'n8n'.",
    )
    timeout: Optional[float] = Field(
        default=None,
        description="Export timeout in seconds. Defaults to the 'TRACING_EXPORT_TIMEOUT' environment variable, then 30.",
    )
    export_logs: Optional[bool] = Field(
        default=None,
        description="Also export flowtrace log records over OTLP HTTP. Defaults to True when 'OTEL_LOGS_EXPORTER' is otlp, otlp_http or otlp-http, else to the 'N8N_OTEL_EXPORT_LOGS' environment variable, then False.",
    )

    def model_post_init(self, __context: Any) -> None:
        """
        Resolve environment variable defaults and validate the exporter selection.
        """
        self.kind = (self.kind or env_str("TRACING_EXPORTER", "otlp")).lower()
        self.protocol = (self.protocol or env_str("ARIZE_PROTOCOL", "grpc")).lower()
        self.endpoint = self.endpoint or env_str("ARIZE_ENDPOINT", DEFAULT_ARIZE_ENDPOINT)
        self.space_id = self.space_id or env_str("ARIZE_SPACE_ID")
        self.api_key = self.api_key or env_str("ARIZE_API_KEY")
        self.project_name = self.project_name or env_str(
            "ARIZE_PROJECT_NAME", DEFAULT_PROJECT_NAME
        )
        self.service_name = self.service_name or env_str(
            "OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME
        )
        if self.timeout is None:
            self.timeout = env_float("TRACING_EXPORT_TIMEOUT", DEFAULT_EXPORT_TIMEOUT)
        if self.export_logs is None:
            self.export_logs = logs_export_enabled()

        if self.kind not in EXPORTER_KINDS:
            raise TracingConfigurationError(
                f"Unknown exporter '{self.kind}', expected one of {', '.join(EXPORTER_KINDS)}"
            )
        if self.protocol not in EXPORTER_PROTOCOLS:
            logger.warning(f"Unknown Arize protocol '{self.protocol}', using grpc")
            self.protocol = "grpc"
        if self.timeout <= 0:
            raise TracingConfigurationError("Export timeout must be positive")

        super().model_post_init(__context)

    @property
    def has_arize_credentials(self) -> bool:
        return bool(self.space_id and self.api_key)

    @property
    def arize_headers(self) -> dict:
        return {"space_id": self.space_id, "api_key": self.api_key}


class TracingSettings(BaseModel):
    """
    Runtime options for workflow tracing.

    Every field left unset is read from its environment variable when the model
    is created, so ``TracingSettings()`` reflects the process environment.
    """

    only_workflow_spans: Optional[bool] = Field(
        default=None,
        description="Emit only the workflow and node spans and leave inbound request spans untouched. Defaults to the 'TRACING_ONLY_WORKFLOW_SPANS' environment variable, then False.",
    )
    map_span_kinds: Optional[bool] = Field(
        default=None,
        description="Map node types to OpenInference span kinds. Defaults to the 'TRACING_MAP_OPENINFERENCE_SPAN_KINDS' environment variable, then True.",
    )
    span_kind_in_node_span_name: Optional[bool] = Field(
        default=None,
        description="Name node spans n8n.node.<KIND>.execute. Defaults to the 'TRACING_SPAN_KIND_IN_NODE_SPAN_NAME' environment variable, then False.",
    )
    use_node_name_span: Optional[bool] = Field(
        default=None,
        description="Name node spans after the node itself. Defaults to the 'TRACING_USE_NODE_NAME_SPAN' environment variable, then True.",
    )
    dynamic_workflow_trace_name: Optional[bool] = Field(
        default=None,
        description="Name workflow spans <workflowId>-<workflowName>-<executionId>. Defaults to the 'TRACING_DYNAMIC_WORKFLOW_TRACE_NAME' environment variable, then False.",
    )
    workflow_span_name_pattern: Optional[str] = Field(
        default=None,
        description="Explicit workflow span name pattern with {workflowId}, {workflowName}, {executionId} and {sessionId} placeholders. Defaults to the 'TRACING_WORKFLOW_SPAN_NAME_PATTERN' environment variable.",
    )
    instrument_langchain: Optional[bool] = Field(
        default=None,
        description="Trace LangChain calls made inside nodes. Defaults to the 'TRACING_INSTRUMENT_LANGCHAIN' environment variable, then True.",
    )
    capture_input_output: Optional[bool] = Field(
        default=None,
        description="Attach input and output payloads to spans. Defaults to the 'TRACING_CAPTURE_INPUT_OUTPUT' environment variable, then True.",
    )
    max_io_chars: Optional[int] = Field(
        default=None,
        description="Character cap for input/output payloads. Defaults to the 'TRACING_MAX_IO_CHARS' environment variable, then 12000.",
    )
    log_level: Optional[str] = Field(
        default=None,
        description="Level of the flowtrace logger. Defaults to the 'TRACING_LOG_LEVEL' environment variable, then 'info'.",
    )
    exporter: ExporterSettings = Field(
        default_factory=ExporterSettings,
        description="Exporter selection and parameters.",
    )

    def model_post_init(self, __context: Any) -> None:
        """
        Post-initialization logic to handle environment variable defaults.
        """
        if self.only_workflow_spans is None:
            self.only_workflow_spans = env_bool("TRACING_ONLY_WORKFLOW_SPANS", False)
        if self.map_span_kinds is None:
            self.map_span_kinds = env_bool("TRACING_MAP_OPENINFERENCE_SPAN_KINDS", True)
        if self.span_kind_in_node_span_name is None:
            self.span_kind_in_node_span_name = env_bool(
                "TRACING_SPAN_KIND_IN_NODE_SPAN_NAME", False
            )
        if self.use_node_name_span is None:
            self.use_node_name_span = env_bool("TRACING_USE_NODE_NAME_SPAN", True)
        if self.dynamic_workflow_trace_name is None:
            self.dynamic_workflow_trace_name = env_bool(
                "TRACING_DYNAMIC_WORKFLOW_TRACE_NAME", False
            )
        self.workflow_span_name_pattern = self.workflow_span_name_pattern or os.getenv(
            "TRACING_WORKFLOW_SPAN_NAME_PATTERN"
        )
        if self.instrument_langchain is None:
            self.instrument_langchain = env_bool("TRACING_INSTRUMENT_LANGCHAIN", True)
        if self.capture_input_output is None:
            self.capture_input_output = env_bool("TRACING_CAPTURE_INPUT_OUTPUT", True)
        if self.max_io_chars is None:
            self.max_io_chars = env_int("TRACING_MAX_IO_CHARS", DEFAULT_MAX_IO_CHARS)
        self.log_level = resolve_log_level(
            self.log_level or env_str("TRACING_LOG_LEVEL", "info")
        )

        if self.max_io_chars < 0:
            raise TracingConfigurationError("max_io_chars must not be negative")

        super().model_post_init(__context)

    @property
    def debug(self) -> bool:
        return self.log_level == "debug"
