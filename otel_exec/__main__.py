from otel_exec.cli import run

run()
