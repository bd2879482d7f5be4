import csv
import time

import pytest
from opentelemetry.sdk.resources import Resource
from opentelemetry.trace import SpanKind, StatusCode

from otel_exec.span import Command, csv_join, default_span_name, new_span
from otel_exec.traceparent import Traceparent

TP = "00-f61fc53f926e07a9c3893b1a722e1b65-7a2d6a804f3de137-01"


def test_command_attributes_without_arguments():
    assert Command.from_argv(["true"]).attributes() == {"command": "true", "arguments": ""}


def test_arguments_attribute_is_csv_escaped():
    attrs = Command.from_argv(["echo", "a b", "c,d", 'say "hi"']).attributes()
    assert next(csv.reader([attrs["arguments"]])) == ["a b", "c,d", 'say "hi"']


def test_csv_join_has_no_line_terminator():
    assert csv_join(["a", "b"]) == "a,b"


def test_empty_argv_rejected():
    with pytest.raises(ValueError):
        Command.from_argv([])


def test_default_span_name_is_basename():
    assert default_span_name(Command.from_argv(["/usr/bin/curl", "-s"])) == "curl"


def test_new_span_continues_parent_trace():
    parent = Traceparent.decode(TP)
    span = new_span("step", parent=parent)
    assert span.trace_id == parent.trace_id_int
    assert span.parent_span_id == parent.span_id_int
    assert span.span_id not in (0, parent.span_id_int)


def test_new_span_without_parent_starts_trace():
    span = new_span("step", parent=Traceparent.empty())
    assert span.trace_id != 0
    assert span.parent_span_id == 0


def test_end_is_non_negative_and_once_only():
    span = new_span("step")
    time.sleep(0.01)
    span.end()
    assert span.duration_ns >= 10_000_000
    with pytest.raises(RuntimeError):
        span.end()
    with pytest.raises(RuntimeError):
        span.set_error("too late")


def test_traceparent_of_span():
    span = new_span("step")
    tp = span.traceparent(sampled=True)
    assert tp.trace_id_int == span.trace_id
    assert tp.span_id_int == span.span_id
    assert tp.encode().endswith("-01")


def test_to_readable_span():
    span = new_span("step", kind=SpanKind.SERVER, attributes={"command": "x"}, parent=Traceparent.decode(TP))
    span.set_error("exec command failed: exit status 2")
    span.end()
    readable = span.to_readable_span(Resource.create({"service.name": "svc"}))
    assert readable.name == "step"
    assert readable.kind is SpanKind.SERVER
    assert readable.context.span_id == span.span_id
    assert readable.parent.span_id == span.parent_span_id
    assert readable.status.status_code is StatusCode.ERROR
    assert readable.status.description == "exec command failed: exit status 2"
    assert readable.start_time == span.start_time_ns
    assert readable.end_time == span.end_time_ns
    assert readable.attributes["command"] == "x"
    assert readable.resource.attributes["service.name"] == "svc"
