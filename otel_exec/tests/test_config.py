import argparse

import pytest
from opentelemetry.trace import SpanKind

from otel_exec.config import PROTOCOL_GRPC, PROTOCOL_HTTP, Config, parse_key_values
from otel_exec.errors import ConfigError


def test_defaults_do_not_record():
    config = Config.from_env({})
    assert config.is_recording() is False
    assert config.get_timeout() == 1.0
    assert config.get_command_timeout() == 0.0
    assert config.service_name == "otel-exec"
    assert config.span_kind() is SpanKind.CLIENT


def test_from_env():
    config = Config.from_env(
        {
            "OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4318",
            "OTEL_EXPORTER_OTLP_HEADERS": "x-token=abc,tenant=t1",
            "OTEL_SERVICE_NAME": "builds",
            "OTEL_EXEC_COMMAND_TIMEOUT": "30s",
            "OTEL_EXEC_IGNORE_ENV": "true",
        }
    )
    assert config.is_recording() is True
    assert config.get_protocol() == PROTOCOL_HTTP
    assert config.headers == {"x-token": "abc", "tenant": "t1"}
    assert config.service_name == "builds"
    assert config.get_command_timeout() == 30.0
    assert config.traceparent_ignore_env is True


def test_traces_endpoint_wins():
    config = Config.from_env(
        {
            "OTEL_EXPORTER_OTLP_ENDPOINT": "http://a:4318",
            "OTEL_EXPORTER_OTLP_TRACES_ENDPOINT": "localhost:4317",
        }
    )
    assert config.endpoint == "localhost:4317"
    assert config.get_protocol() == PROTOCOL_GRPC


def test_invalid_env_duration_is_soft():
    config = Config.from_env({"OTEL_EXEC_TIMEOUT": "soon"})
    assert config.timeout == "1s"
    assert len(config.soft_failures) == 1


def test_apply_args_overrides():
    args = argparse.Namespace(
        endpoint="localhost:4317",
        span_name="build",
        kind="server",
        attrs="a=1,b=2",
        insecure=True,
        verbose=False,
        otlp_headers=None,
    )
    base = Config.from_env({"OTEL_SERVICE_NAME": "svc"})
    config = base.apply_args(args)
    assert config.endpoint == "localhost:4317"
    assert config.service_name == "svc"
    assert config.span_kind() is SpanKind.SERVER
    assert config.attributes == {"a": "1", "b": "2"}
    assert config.insecure is True
    assert base.endpoint == ""


def test_parse_key_values_quoted():
    assert parse_key_values('"msg=a,b",k=v') == {"msg": "a,b", "k": "v"}


def test_parse_key_values_rejects_missing_equals():
    with pytest.raises(ConfigError):
        parse_key_values("novalue")


def test_invalid_protocol():
    with pytest.raises(ConfigError):
        Config(endpoint="x", protocol="carrier-pigeon").get_protocol()
