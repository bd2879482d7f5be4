"""Run a command inside an OpenTelemetry span."""

__version__ = "0.4.0"
