"""Exceptions raised by otel-exec.

Child-process failures are never raised: they are recorded on the span and
in the exit code. Everything here is either a usage problem or a soft
failure that the caller reports and moves past.
"""


class OtelExecError(Exception):
    """Base class for otel-exec errors."""


class ConfigError(OtelExecError):
    """A configuration value could not be parsed."""


class TraceparentParseError(OtelExecError):
    """A traceparent string is not in version-traceid-spanid-flags form."""


class ExportError(OtelExecError):
    """Sending the span or stopping the exporter failed."""


class ExportTimeout(ExportError):
    """The export window expired before the exporter returned."""
