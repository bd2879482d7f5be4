"""Run one command inside a span and report how it went."""

import os
import sys
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from otel_exec.config import Config
from otel_exec.deadline import DeadlineCoordinator
from otel_exec.environment import build_child_env, env_to_mapping
from otel_exec.execution import ExecOutcome, run_command
from otel_exec.export import ClientFactory, export_span
from otel_exec.logger import get_logger
from otel_exec.signals import SignalRelay
from otel_exec.span import Command, SpanRecord, default_span_name, new_span
from otel_exec.traceparent import Traceparent, load_traceparent, print_traceparent, save_traceparent

log = get_logger(__name__)


@dataclass
class ExecResult:
    """What the caller needs once the wrapper is done.

    ``exit_code`` is always the child's, whatever happened to the export.
    """

    exit_code: int
    span: SpanRecord
    outcome: ExecOutcome
    soft_failures: List[str] = field(default_factory=list)

    @property
    def timed_out(self) -> bool:
        return self.outcome.timed_out


def child_traceparent(config: Config, span: SpanRecord, inherited: Traceparent) -> Optional[Traceparent]:
    """Pick the context the child sees: our span, the inherited one, or none."""
    if config.is_recording():
        return span.traceparent(sampled=True)
    if not config.traceparent_ignore_env and inherited.initialized:
        return inherited
    return None


def propagate_traceparent(config: Config, tp: Traceparent, stdout) -> None:
    if config.traceparent_carrier_file and tp.initialized:
        try:
            save_traceparent(config.traceparent_carrier_file, tp)
        except OSError as err:
            config.soft_fail("unable to write traceparent carrier %s: %s", config.traceparent_carrier_file, err)
    if config.traceparent_print and tp.initialized:
        print_traceparent(stdout or sys.stdout, tp, export=config.traceparent_print_export)


def do_exec(
    config: Config,
    command: Command,
    environ: Optional[Mapping[str, str]] = None,
    stdin=None,
    stdout=None,
    stderr=None,
    client_factory: Optional[ClientFactory] = None,
    relay: Optional[SignalRelay] = None,
) -> ExecResult:
    """Run ``command`` wrapped in a span.

    Must be called from the main thread: the signal relay installs handlers.
    The steps are strictly ordered: the span end time is stamped when the
    child exits, then the command window is released, then the relay is
    stopped and awaited, and only then is the export window opened. The
    relay keeps its handlers installed until the export is done, so a signal
    arriving while the span is sent is dropped instead of ending the wrapper.
    """
    environ = os.environ if environ is None else environ
    attributes = {**config.attributes, **command.attributes()}

    coordinator = DeadlineCoordinator(config.get_command_timeout(), config.get_timeout())
    command_window = coordinator.command_window()

    inherited = load_traceparent(environ, config.traceparent_carrier_file, config.traceparent_ignore_env)
    span = new_span(
        config.span_name or default_span_name(command),
        kind=config.span_kind(),
        attributes=attributes,
        parent=inherited,
    )
    env = env_to_mapping(build_child_env(environ, child_traceparent(config, span, inherited)))

    relay = relay or SignalRelay()
    relay.start()
    try:
        try:
            with command_window:
                outcome = run_command(
                    command,
                    env,
                    command_window,
                    span,
                    relay=relay,
                    stdin=stdin,
                    stdout=stdout,
                    stderr=stderr,
                )
        finally:
            relay.stop(release_handlers=False)

        with coordinator.export_window() as export_window:
            if config.is_recording():
                export_span(config, span, export_window, client_factory)
            else:
                log.debug("no OTLP endpoint configured, span not exported")
    finally:
        relay.release()

    if config.is_recording():
        propagate_traceparent(config, span.traceparent(sampled=True), stdout)
    else:
        propagate_traceparent(config, inherited, stdout)

    return ExecResult(
        exit_code=outcome.exit_code,
        span=span,
        outcome=outcome,
        soft_failures=list(config.soft_failures),
    )
