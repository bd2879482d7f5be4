"""Command and export time budgets.

The wrapper has two windows that never overlap: the command window bounds the
child's lifetime and the export window, opened only once the command window is
closed, bounds sending the span.
"""

import re
import time
from typing import Callable, Optional

from otel_exec.errors import ConfigError
from otel_exec.logger import get_logger

DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

log = get_logger(__name__)


def parse_duration(value: Optional[str]) -> float:
    """Parse a duration into seconds.

    Accepts Go-style strings (``100ms``, ``1.5s``, ``1m30s``) and bare
    integers, which are read as seconds. Empty input is zero.

    Raises:
        ConfigError: the string is neither form.
    """
    text = (value or "").strip()
    if not text:
        return 0.0
    if text.isdigit():
        return float(text)

    total = 0.0
    pos = 0
    for match in DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ConfigError(f"unable to parse duration string {value!r}")
    return total


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:g}ms"
    return f"{seconds:g}s"


class Deadline:
    """A single time window.

    ``timeout`` of ``None`` or ``0`` means unbounded. ``cancel`` releases the
    window and may be called any number of times; leaving a ``with`` block
    calls it.
    """

    def __init__(
        self,
        timeout: Optional[float],
        name: str = "deadline",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.timeout = timeout if timeout and timeout > 0 else None
        self._clock = clock
        self._started = clock()
        self._cancelled = False

    @property
    def bounded(self) -> bool:
        return self.timeout is not None

    @property
    def active(self) -> bool:
        return not self._cancelled

    def remaining(self) -> Optional[float]:
        """Seconds left in the window, ``None`` when unbounded."""
        if self.timeout is None:
            return None
        return max(0.0, self._started + self.timeout - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        log.debug("%s window released", self.name)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cancel()
        return False

    def __repr__(self):
        bound = format_duration(self.timeout) if self.timeout else "unbounded"
        return f"Deadline({self.name}, {bound})"


class DeadlineCoordinator:
    """Hands out the command window, then the export window."""

    def __init__(self, command_timeout: float, export_timeout: float, clock=time.monotonic):
        if export_timeout <= 0:
            raise ConfigError("export timeout must be positive")
        self.command_timeout = command_timeout
        self.export_timeout = export_timeout
        self._clock = clock
        self._command: Optional[Deadline] = None
        self._export: Optional[Deadline] = None

    def command_window(self) -> Deadline:
        if self._command is None:
            self._command = Deadline(self.command_timeout, "command", self._clock)
            log.debug("opened %r", self._command)
        return self._command

    def export_window(self) -> Deadline:
        """Open the export window; the command window must be closed first."""
        if self._command is not None and self._command.active:
            raise RuntimeError("export window requested while command window is active")
        if self._export is None:
            self._export = Deadline(self.export_timeout, "export", self._clock)
            log.debug("opened %r", self._export)
        return self._export
