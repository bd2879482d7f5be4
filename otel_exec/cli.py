#!/usr/bin/env python3
"""Wrap a command in an OpenTelemetry span."""

import argparse
import sys

from otel_exec import __version__
from otel_exec.config import PROTOCOLS, SPAN_KINDS, Config
from otel_exec.deadline import parse_duration
from otel_exec.errors import ConfigError
from otel_exec.exec_cmd import do_exec
from otel_exec.logger import configure_logging
from otel_exec.span import Command

EPILOG = """\
The wrapping span's W3C traceparent is passed to the child process as
TRACEPARENT, so nested invocations relate their spans automatically:

  otel-exec -n my-service -s "outer span" -- sh -c 'otel-exec -s "inner span" sleep 1'
"""


def duration_arg(value: str) -> str:
    try:
        parse_duration(value)
    except ConfigError as err:
        raise argparse.ArgumentTypeError(str(err)) from None
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="otel-exec",
        description="Execute a command inside a span, measuring and reporting how long it took to run.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--endpoint", help="OTLP collector endpoint; nothing is sent when unset.")
    parser.add_argument("--protocol", choices=PROTOCOLS, help="OTLP protocol (default: inferred from endpoint).")
    parser.add_argument("--insecure", action="store_true", help="Allow plaintext gRPC connections.")
    parser.add_argument("--otlp-headers", help="Extra exporter headers as k=v,k2=v2.")
    parser.add_argument(
        "--timeout",
        type=duration_arg,
        help="Budget for sending the span, started after the command exits (default: 1s).",
    )
    parser.add_argument(
        "--command-timeout",
        type=duration_arg,
        help="Timeout for the child process; 0 waits forever (default: 0).",
    )
    parser.add_argument("-n", "--service", dest="service_name", help="Service name (default: otel-exec).")
    parser.add_argument("-s", "--name", dest="span_name", help="Span name (default: command basename).")
    parser.add_argument("-k", "--kind", choices=sorted(SPAN_KINDS), help="Span kind (default: client).")
    parser.add_argument("-a", "--attrs", help="Span attributes as k=v,k2=v2.")
    parser.add_argument(
        "--tp-carrier",
        dest="traceparent_carrier_file",
        help="File to read the parent traceparent from and write the span's traceparent to.",
    )
    parser.add_argument(
        "--tp-ignore-env",
        dest="traceparent_ignore_env",
        action="store_true",
        help="Ignore TRACEPARENT from the environment.",
    )
    parser.add_argument(
        "--tp-print",
        dest="traceparent_print",
        action="store_true",
        help="Print the traceparent to stdout once the command is done.",
    )
    parser.add_argument(
        "--tp-export",
        dest="traceparent_print_export",
        action="store_true",
        help="Prefix the printed traceparent with 'export '.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug diagnostics to stderr.")
    parser.add_argument("cmd", nargs=argparse.REMAINDER, help="Command to execute.")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    cmd = list(args.cmd)
    if cmd and cmd[0] == "--":
        cmd = cmd[1:]
    if not cmd:
        raise SystemExit("No command provided.")

    try:
        config = Config.from_env().apply_args(args)
    except ConfigError as err:
        parser.error(str(err))
    configure_logging(config.verbose)

    result = do_exec(config, Command.from_argv(cmd))
    return result.exit_code


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
