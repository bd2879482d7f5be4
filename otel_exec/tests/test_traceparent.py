import io

import pytest

from otel_exec.errors import TraceparentParseError
from otel_exec.traceparent import (
    Traceparent,
    load_traceparent,
    print_traceparent,
    save_traceparent,
)

TP = "00-f61fc53f926e07a9c3893b1a722e1b65-7a2d6a804f3de137-01"


def test_decode_fields():
    tp = Traceparent.decode(TP)
    assert tp.trace_id.hex() == "f61fc53f926e07a9c3893b1a722e1b65"
    assert tp.span_id.hex() == "7a2d6a804f3de137"
    assert tp.sampled is True
    assert tp.initialized is True


def test_encode_round_trip():
    tp = Traceparent.from_ids(0xABC, 0xDEF, sampled=False)
    decoded = Traceparent.decode(tp.encode())
    assert decoded.trace_id == tp.trace_id
    assert decoded.span_id == tp.span_id
    assert decoded.sampled is False
    assert Traceparent.decode(TP).encode() == TP


def test_decode_accepts_uppercase_hex():
    assert Traceparent.decode(TP.upper()).encode() == TP


@pytest.mark.parametrize(
    "value",
    ["", "garbage", "00-f61fc53f-7a2d6a804f3de137-01", TP + "-extra", "00_" + TP[3:]],
)
def test_decode_rejects_malformed(value):
    with pytest.raises(TraceparentParseError):
        Traceparent.decode(value)


def test_all_zero_ids_are_not_initialized():
    tp = Traceparent.decode("00-" + "0" * 32 + "-" + "0" * 16 + "-01")
    assert tp.initialized is False
    assert Traceparent.empty().initialized is False


def test_load_from_env():
    tp = load_traceparent({"TRACEPARENT": TP})
    assert tp.encode() == TP


def test_load_ignores_env_when_asked():
    assert load_traceparent({"TRACEPARENT": TP}, ignore_env=True).initialized is False


def test_load_malformed_env_is_uninitialized():
    assert load_traceparent({"TRACEPARENT": "not-a-traceparent"}).initialized is False


def test_env_overrides_carrier_file(tmp_path):
    carrier = tmp_path / "tp.env"
    save_traceparent(str(carrier), Traceparent.from_ids(1, 2, sampled=True))
    from_file = load_traceparent({}, carrier_file=str(carrier))
    assert from_file.trace_id_int == 1
    assert from_file.span_id_int == 2

    from_env = load_traceparent({"TRACEPARENT": TP}, carrier_file=str(carrier))
    assert from_env.encode() == TP


def test_missing_carrier_file_is_uninitialized(tmp_path):
    tp = load_traceparent({}, carrier_file=str(tmp_path / "missing"))
    assert tp.initialized is False


def test_print_traceparent_export_prefix():
    out = io.StringIO()
    print_traceparent(out, Traceparent.decode(TP), export=True)
    lines = out.getvalue().splitlines()
    assert lines[0] == "# trace id: f61fc53f926e07a9c3893b1a722e1b65"
    assert lines[-1] == f"export TRACEPARENT={TP}"
