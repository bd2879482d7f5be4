import pytest

from otel_exec.deadline import Deadline, DeadlineCoordinator, parse_duration
from otel_exec.errors import ConfigError


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.mark.parametrize(
    "value,expected",
    [
        ("", 0.0),
        ("0", 0.0),
        ("5", 5.0),
        ("100ms", 0.1),
        ("1.5s", 1.5),
        ("1m30s", 90.0),
        ("250us", 0.00025),
        ("2h", 7200.0),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", ["abc", "10 parsecs", "-1s", "1x", "s"])
def test_parse_duration_rejects(value):
    with pytest.raises(ConfigError):
        parse_duration(value)


def test_zero_timeout_is_unbounded():
    deadline = Deadline(0)
    assert deadline.bounded is False
    assert deadline.remaining() is None
    assert deadline.expired() is False


def test_remaining_counts_down():
    clock = FakeClock()
    deadline = Deadline(2.0, clock=clock)
    assert deadline.remaining() == pytest.approx(2.0)
    clock.now += 1.5
    assert deadline.remaining() == pytest.approx(0.5)
    clock.now += 1.0
    assert deadline.remaining() == 0.0
    assert deadline.expired() is True


def test_cancel_is_idempotent():
    with Deadline(1.0) as deadline:
        assert deadline.active
    assert not deadline.active
    deadline.cancel()
    assert not deadline.active


def test_export_window_waits_for_command_window():
    clock = FakeClock()
    coordinator = DeadlineCoordinator(0, 1.0, clock=clock)
    command = coordinator.command_window()
    with pytest.raises(RuntimeError):
        coordinator.export_window()

    clock.now += 50
    command.cancel()
    export = coordinator.export_window()
    assert export.remaining() == pytest.approx(1.0)


def test_export_timeout_must_be_positive():
    with pytest.raises(ConfigError):
        DeadlineCoordinator(0, 0)
