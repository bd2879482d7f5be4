"""Settings for one otel-exec invocation.

Values come from the standard OTEL_* environment variables first and are
then overridden by command-line flags.
"""

import csv
import os
from dataclasses import dataclass, field, replace
from typing import Dict, List, Mapping, Optional
from urllib.parse import urlparse

from opentelemetry.trace import SpanKind

from otel_exec.deadline import parse_duration
from otel_exec.errors import ConfigError
from otel_exec.logger import get_logger

DEFAULT_SERVICE_NAME = "otel-exec"
DEFAULT_TIMEOUT = "1s"
DEFAULT_COMMAND_TIMEOUT = "0"
PROTOCOL_GRPC = "grpc"
PROTOCOL_HTTP = "http/protobuf"
PROTOCOLS = (PROTOCOL_GRPC, PROTOCOL_HTTP)
SPAN_KINDS = {
    "client": SpanKind.CLIENT,
    "server": SpanKind.SERVER,
    "producer": SpanKind.PRODUCER,
    "consumer": SpanKind.CONSUMER,
    "internal": SpanKind.INTERNAL,
}
TRUTHY = {"1", "true", "TRUE", "True", "yes", "YES", "on"}

log = get_logger(__name__)


def parse_key_values(value: Optional[str]) -> Dict[str, str]:
    """Parse ``k=v,k2=v2``; values may be CSV-quoted to carry commas."""
    if not value:
        return {}
    pairs = {}
    for row in csv.reader([value]):
        for item in row:
            if not item.strip():
                continue
            key, sep, val = item.partition("=")
            if not sep or not key.strip():
                raise ConfigError(f"invalid key=value pair {item!r}")
            pairs[key.strip()] = val.strip()
    return pairs


def env_flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "") in TRUTHY


@dataclass
class Config:
    endpoint: str = ""
    protocol: str = ""
    insecure: bool = False
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: str = DEFAULT_TIMEOUT
    command_timeout: str = DEFAULT_COMMAND_TIMEOUT
    service_name: str = DEFAULT_SERVICE_NAME
    deployment_environment: str = ""
    span_name: str = ""
    kind: str = "client"
    attributes: Dict[str, str] = field(default_factory=dict)
    traceparent_carrier_file: str = ""
    traceparent_ignore_env: bool = False
    traceparent_print: bool = False
    traceparent_print_export: bool = False
    verbose: bool = False
    soft_failures: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        environ = os.environ if environ is None else environ
        config = cls(
            endpoint=environ.get("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
            or environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", ""),
            protocol=environ.get("OTEL_EXPORTER_OTLP_TRACES_PROTOCOL")
            or environ.get("OTEL_EXPORTER_OTLP_PROTOCOL", ""),
            insecure=env_flag(environ, "OTEL_EXPORTER_OTLP_INSECURE"),
            timeout=environ.get("OTEL_EXEC_TIMEOUT", DEFAULT_TIMEOUT),
            command_timeout=environ.get("OTEL_EXEC_COMMAND_TIMEOUT", DEFAULT_COMMAND_TIMEOUT),
            service_name=environ.get("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME),
            deployment_environment=environ.get("OTEL_DEPLOYMENT_ENVIRONMENT", ""),
            traceparent_carrier_file=environ.get("OTEL_EXEC_CARRIER_FILE", ""),
            traceparent_ignore_env=env_flag(environ, "OTEL_EXEC_IGNORE_ENV"),
            verbose=env_flag(environ, "OTEL_EXEC_VERBOSE"),
        )
        try:
            config.headers = parse_key_values(environ.get("OTEL_EXPORTER_OTLP_HEADERS"))
        except ConfigError as err:
            config.soft_fail("ignoring OTEL_EXPORTER_OTLP_HEADERS: %s", err)
        for name, default in (("timeout", DEFAULT_TIMEOUT), ("command_timeout", DEFAULT_COMMAND_TIMEOUT)):
            try:
                parse_duration(getattr(config, name))
            except ConfigError as err:
                config.soft_fail("%s: %s, using %s", name, err, default)
                setattr(config, name, default)
        return config

    def apply_args(self, args) -> "Config":
        """Return a copy with every flag that was given on the command line."""
        overrides = {}
        for name in (
            "endpoint",
            "protocol",
            "timeout",
            "command_timeout",
            "service_name",
            "span_name",
            "kind",
            "traceparent_carrier_file",
        ):
            value = getattr(args, name, None)
            if value:
                overrides[name] = value
        for name in ("insecure", "traceparent_ignore_env", "traceparent_print", "traceparent_print_export", "verbose"):
            if getattr(args, name, False):
                overrides[name] = True
        if getattr(args, "otlp_headers", None):
            overrides["headers"] = {**self.headers, **parse_key_values(args.otlp_headers)}
        if getattr(args, "attrs", None):
            overrides["attributes"] = {**self.attributes, **parse_key_values(args.attrs)}
        return replace(self, soft_failures=list(self.soft_failures), **overrides)

    def soft_fail(self, msg: str, *args) -> None:
        """Report a problem that must not change the exit code."""
        message = msg % args if args else msg
        self.soft_failures.append(message)
        log.warning(message)

    def is_recording(self) -> bool:
        """A span is only created and exported when an endpoint is set."""
        return bool(self.endpoint)

    def get_protocol(self) -> str:
        if self.protocol:
            if self.protocol not in PROTOCOLS:
                raise ConfigError(f"invalid protocol {self.protocol!r}, expected one of {', '.join(PROTOCOLS)}")
            return self.protocol
        if urlparse(self.endpoint).scheme in ("http", "https"):
            return PROTOCOL_HTTP
        return PROTOCOL_GRPC

    def span_kind(self) -> SpanKind:
        try:
            return SPAN_KINDS[self.kind.lower()]
        except KeyError:
            raise ConfigError(f"invalid span kind {self.kind!r}") from None

    def get_timeout(self) -> float:
        return parse_duration(self.timeout) or parse_duration(DEFAULT_TIMEOUT)

    def get_command_timeout(self) -> float:
        return parse_duration(self.command_timeout)
