from .settings import ExporterSettings, TracingSettings, normalize_otel_environment
