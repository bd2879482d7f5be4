"""W3C traceparent carrier: decode, encode, load and save."""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, TextIO

from otel_exec.errors import TraceparentParseError
from otel_exec.logger import get_logger

TRACEPARENT_ENV = "TRACEPARENT"
TRACEPARENT_REGEX = re.compile(
    r"^\s*(?P<version>[0-9a-f]{2})-(?P<trace_id>[0-9a-f]{32})-"
    r"(?P<span_id>[0-9a-f]{16})-(?P<flags>[0-9a-f]{2})\s*$",
    re.IGNORECASE,
)
CARRIER_LINE_REGEX = re.compile(r"^\s*(?:export\s+)?TRACEPARENT=(?P<value>\S+)")
SAMPLED_FLAG = 0x01

log = get_logger(__name__)


@dataclass(frozen=True)
class Traceparent:
    """A decoded traceparent: the trace/span identifiers handed to a child."""

    trace_id: bytes = bytes(16)
    span_id: bytes = bytes(8)
    sampled: bool = False
    initialized: bool = False

    @classmethod
    def empty(cls) -> "Traceparent":
        return cls()

    @classmethod
    def from_ids(cls, trace_id: int, span_id: int, sampled: bool) -> "Traceparent":
        return cls(
            trace_id=trace_id.to_bytes(16, "big"),
            span_id=span_id.to_bytes(8, "big"),
            sampled=sampled,
            initialized=bool(trace_id) and bool(span_id),
        )

    @classmethod
    def decode(cls, value: str) -> "Traceparent":
        """Parse ``00-<trace id>-<span id>-<flags>``.

        Raises:
            TraceparentParseError: the string is not four hyphen-separated
                hex fields of the expected widths.
        """
        match = TRACEPARENT_REGEX.match(value or "")
        if not match:
            raise TraceparentParseError(f"could not parse traceparent {value!r}")
        trace_id = bytes.fromhex(match.group("trace_id"))
        span_id = bytes.fromhex(match.group("span_id"))
        flags = int(match.group("flags"), 16)
        return cls(
            trace_id=trace_id,
            span_id=span_id,
            sampled=bool(flags & SAMPLED_FLAG),
            initialized=any(trace_id) and any(span_id),
        )

    def encode(self) -> str:
        flags = "01" if self.sampled else "00"
        return f"00-{self.trace_id.hex()}-{self.span_id.hex()}-{flags}"

    @property
    def trace_id_int(self) -> int:
        return int.from_bytes(self.trace_id, "big")

    @property
    def span_id_int(self) -> int:
        return int.from_bytes(self.span_id, "big")


def decode_or_empty(value: Optional[str], source: str) -> Traceparent:
    """Decode ``value`` and fall back to the empty carrier when malformed."""
    if not value:
        return Traceparent.empty()
    try:
        return Traceparent.decode(value)
    except TraceparentParseError as err:
        log.debug("ignoring traceparent from %s: %s", source, err)
        return Traceparent.empty()


def read_carrier_file(path: Path) -> Optional[str]:
    """Return the TRACEPARENT value stored in a carrier file, if any."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as err:
        log.warning("unable to read traceparent carrier %s: %s", path, err)
        return None
    for line in text.splitlines():
        match = CARRIER_LINE_REGEX.match(line)
        if match:
            return match.group("value")
    return None


def load_traceparent(
    environ: Optional[Mapping[str, str]] = None,
    carrier_file: Optional[str] = None,
    ignore_env: bool = False,
) -> Traceparent:
    """Load the inherited trace context.

    The carrier file is read first; a ``TRACEPARENT`` environment variable
    overrides it unless ``ignore_env`` is set. Malformed values are treated
    as absent.
    """
    environ = os.environ if environ is None else environ
    tp = Traceparent.empty()
    if carrier_file:
        path = Path(carrier_file).expanduser()
        tp = decode_or_empty(read_carrier_file(path), str(path))
    if not ignore_env:
        env_tp = decode_or_empty(environ.get(TRACEPARENT_ENV), TRACEPARENT_ENV)
        if env_tp.initialized:
            tp = env_tp
    return tp


def render_traceparent(tp: Traceparent, export: bool = False) -> str:
    prefix = "export " if export else ""
    return (
        f"# trace id: {tp.trace_id.hex()}\n"
        f"#  span id: {tp.span_id.hex()}\n"
        f"{prefix}{TRACEPARENT_ENV}={tp.encode()}\n"
    )


def save_traceparent(path: str, tp: Traceparent) -> None:
    """Write ``tp`` to a carrier file readable by :func:`load_traceparent`."""
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render_traceparent(tp, export=True), encoding="utf-8")


def print_traceparent(stream: TextIO, tp: Traceparent, export: bool = False) -> None:
    stream.write(render_traceparent(tp, export=export))
    stream.flush()
