"""The span wrapped around the child command, and the command itself."""

import csv
import io
import os
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.id_generator import RandomIdGenerator
from opentelemetry.sdk.util.instrumentation import InstrumentationScope
from opentelemetry.trace import SpanContext, SpanKind, Status, StatusCode, TraceFlags

from otel_exec import __version__
from otel_exec.traceparent import Traceparent

SCOPE_NAME = "otel_exec"


def csv_join(values: Sequence[str]) -> str:
    """Join values as a single CSV record, without a line terminator."""
    buf = io.StringIO()
    csv.writer(buf, lineterminator="").writerow(values)
    return buf.getvalue()


@dataclass(frozen=True)
class Command:
    program: str
    args: Tuple[str, ...] = ()

    @classmethod
    def from_argv(cls, argv: Sequence[str]) -> "Command":
        if not argv:
            raise ValueError("command line is empty")
        return cls(program=argv[0], args=tuple(argv[1:]))

    @property
    def argv(self):
        return [self.program, *self.args]

    def attributes(self) -> Dict[str, str]:
        return {
            "command": self.program,
            "arguments": csv_join(self.args) if self.args else "",
        }


@dataclass
class SpanRecord:
    """One span, stamped at creation and finalized when the child exits.

    The end time is the wall-clock start plus the elapsed monotonic time, so
    the duration can never go negative even if the system clock steps.
    """

    name: str
    trace_id: int
    span_id: int
    parent_span_id: int = 0
    kind: SpanKind = SpanKind.CLIENT
    attributes: Dict[str, str] = field(default_factory=dict)
    start_time_ns: int = field(default_factory=time.time_ns)
    end_time_ns: Optional[int] = None
    status_code: StatusCode = StatusCode.UNSET
    status_message: str = ""
    _start_monotonic_ns: int = field(default_factory=time.monotonic_ns, repr=False)

    @property
    def ended(self) -> bool:
        return self.end_time_ns is not None

    @property
    def duration_ns(self) -> Optional[int]:
        if self.end_time_ns is None:
            return None
        return self.end_time_ns - self.start_time_ns

    def set_error(self, message: str) -> None:
        if self.ended:
            raise RuntimeError("span already ended")
        self.status_code = StatusCode.ERROR
        self.status_message = message

    def end(self) -> int:
        if self.ended:
            raise RuntimeError("span already ended")
        elapsed = time.monotonic_ns() - self._start_monotonic_ns
        self.end_time_ns = self.start_time_ns + max(0, elapsed)
        return self.end_time_ns

    def traceparent(self, sampled: bool = True) -> Traceparent:
        return Traceparent.from_ids(self.trace_id, self.span_id, sampled)

    def to_readable_span(self, resource: Resource) -> ReadableSpan:
        """Build the SDK span the OTLP exporters serialize."""
        flags = TraceFlags(TraceFlags.SAMPLED)
        parent = None
        if self.parent_span_id:
            parent = SpanContext(
                trace_id=self.trace_id,
                span_id=self.parent_span_id,
                is_remote=True,
                trace_flags=flags,
            )
        if self.status_code is StatusCode.ERROR:
            status = Status(StatusCode.ERROR, self.status_message)
        else:
            status = Status(self.status_code)
        return ReadableSpan(
            name=self.name,
            context=SpanContext(
                trace_id=self.trace_id,
                span_id=self.span_id,
                is_remote=False,
                trace_flags=flags,
            ),
            parent=parent,
            resource=resource,
            attributes=dict(self.attributes),
            kind=self.kind,
            status=status,
            start_time=self.start_time_ns,
            end_time=self.end_time_ns,
            instrumentation_scope=InstrumentationScope(SCOPE_NAME, __version__),
        )


def new_span(
    name: str,
    kind: SpanKind = SpanKind.CLIENT,
    attributes: Optional[Dict[str, str]] = None,
    parent: Optional[Traceparent] = None,
    id_generator: Optional[RandomIdGenerator] = None,
) -> SpanRecord:
    """Start a span, continuing ``parent``'s trace when it is initialized."""
    ids = id_generator or RandomIdGenerator()
    if parent is not None and parent.initialized:
        trace_id = parent.trace_id_int
        parent_span_id = parent.span_id_int
    else:
        trace_id = ids.generate_trace_id()
        parent_span_id = 0
    return SpanRecord(
        name=name,
        trace_id=trace_id,
        span_id=ids.generate_span_id(),
        parent_span_id=parent_span_id,
        kind=kind,
        attributes=dict(attributes or {}),
    )


def default_span_name(command: Command) -> str:
    return os.path.basename(command.program) or command.program
