"""Spawn the child, wait for it, and record the outcome on the span."""

import errno
import signal
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional

from otel_exec.deadline import Deadline, format_duration
from otel_exec.logger import get_logger
from otel_exec.signals import SignalRelay
from otel_exec.span import Command, SpanRecord

EXIT_NOT_FOUND = 127
EXIT_NOT_EXECUTABLE = 126
EXIT_SIGNAL_BASE = 128

log = get_logger(__name__)


@dataclass
class ExecOutcome:
    exit_code: int
    returncode: Optional[int] = None
    timed_out: bool = False
    error: Optional[str] = None
    pid: Optional[int] = None


def signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


def exit_code_for(returncode: int) -> int:
    """Map a Popen return code to a shell-style exit code."""
    if returncode < 0:
        return EXIT_SIGNAL_BASE - returncode
    return returncode


def describe_returncode(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {signal_name(-returncode)}"
    return f"exit status {returncode}"


def spawn_exit_code(err: OSError) -> int:
    if isinstance(err, FileNotFoundError) or err.errno == errno.ENOENT:
        return EXIT_NOT_FOUND
    if isinstance(err, PermissionError) or err.errno == errno.EACCES:
        return EXIT_NOT_EXECUTABLE
    return 1


def run_command(
    command: Command,
    env: Mapping[str, str],
    deadline: Deadline,
    span: SpanRecord,
    relay: Optional[SignalRelay] = None,
    stdin=None,
    stdout=None,
    stderr=None,
) -> ExecOutcome:
    """Run ``command`` to completion inside ``deadline``.

    Standard streams default to the wrapper's own. On any failure the span
    gets an ERROR status; its end time is stamped as soon as the wait
    returns, before the caller does any teardown.
    """
    try:
        child = subprocess.Popen(
            command.argv,
            env=dict(env),
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
        )
    except OSError as err:
        span.set_error(f"exec command failed: {err}")
        span.end()
        log.debug("spawn of %s failed: %s", command.program, err)
        return ExecOutcome(exit_code=spawn_exit_code(err), error=str(err))

    if relay is not None:
        relay.attach(child)
    log.debug("spawned %s as pid %s", command.program, child.pid)

    timed_out = False
    try:
        returncode = child.wait(timeout=deadline.remaining())
    except subprocess.TimeoutExpired:
        timed_out = True
        child.kill()
        returncode = child.wait()

    error = None
    if timed_out:
        error = f"command timed out after {format_duration(deadline.timeout)}: {describe_returncode(returncode)}"
    elif returncode != 0:
        error = describe_returncode(returncode)
    if error is not None:
        span.set_error(f"exec command failed: {error}")
    span.end()

    return ExecOutcome(
        exit_code=exit_code_for(returncode),
        returncode=returncode,
        timed_out=timed_out,
        error=error,
        pid=child.pid,
    )
