"""Send the finished span to an OTLP collector within the export window."""

import threading
from typing import Callable, Optional
from urllib.parse import urlparse

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from otel_exec.config import PROTOCOL_HTTP, Config
from otel_exec.deadline import Deadline, format_duration
from otel_exec.errors import ExportError, ExportTimeout
from otel_exec.logger import get_logger
from otel_exec.span import SpanRecord

HTTP_TRACES_PATH = "/v1/traces"

log = get_logger(__name__)

ClientFactory = Callable[[Config], SpanExporter]


def http_traces_endpoint(endpoint: str) -> str:
    """Append the traces path to a bare http(s) collector address."""
    parsed = urlparse(endpoint)
    if parsed.path in ("", "/"):
        return endpoint.rstrip("/") + HTTP_TRACES_PATH
    return endpoint


def build_resource(config: Config) -> Resource:
    resource_attrs = {"service.name": config.service_name}
    if config.deployment_environment:
        resource_attrs["deployment.environment"] = config.deployment_environment
    return Resource.create(resource_attrs)


def create_client(config: Config) -> SpanExporter:
    """Build the OTLP exporter for the configured protocol."""
    timeout = config.get_timeout()
    headers = dict(config.headers) or None
    if config.get_protocol() == PROTOCOL_HTTP:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(
            endpoint=http_traces_endpoint(config.endpoint),
            headers=headers,
            timeout=timeout,
        )

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    return OTLPSpanExporter(
        endpoint=config.endpoint,
        insecure=config.insecure,
        headers=headers,
        timeout=timeout,
    )


def call_with_deadline(fn: Callable, deadline: Deadline, what: str):
    """Run ``fn`` on a daemon thread and give up when ``deadline`` expires.

    The thread is abandoned on timeout; being a daemon it cannot keep the
    wrapper alive.
    """
    outcome = {}

    def target():
        try:
            outcome["value"] = fn()
        except Exception as err:  # noqa: BLE001
            outcome["error"] = err

    thread = threading.Thread(target=target, name=f"otel-exec-{what}", daemon=True)
    thread.start()
    thread.join(deadline.remaining())
    if thread.is_alive():
        raise ExportTimeout(f"{what} timed out after {format_duration(deadline.timeout)}")
    if "error" in outcome:
        raise ExportError(f"{what}: {outcome['error']}") from outcome["error"]
    return outcome.get("value")


def send_span(deadline: Deadline, client: SpanExporter, config: Config, span: SpanRecord) -> None:
    def export():
        return client.export([span.to_readable_span(build_resource(config))])

    result = call_with_deadline(export, deadline, "export")
    if result is not SpanExportResult.SUCCESS:
        raise ExportError(f"exporter returned {getattr(result, 'name', result)}")
    log.debug("sent span %032x/%016x", span.trace_id, span.span_id)


def stop_client(deadline: Deadline, client: SpanExporter) -> None:
    call_with_deadline(client.shutdown, deadline, "shutdown")


def export_span(
    config: Config,
    span: SpanRecord,
    deadline: Deadline,
    client_factory: Optional[ClientFactory] = None,
) -> None:
    """Send ``span`` and stop the client; failures only become soft failures."""
    factory = client_factory or create_client
    try:
        client = factory(config)
    except Exception as err:  # noqa: BLE001
        config.soft_fail("unable to create OTLP client: %s", err)
        return

    try:
        send_span(deadline, client, config, span)
    except ExportError as err:
        config.soft_fail("unable to send span: %s", err)

    try:
        stop_client(deadline, client)
    except ExportError as err:
        config.soft_fail("client.stop() failed: %s", err)
