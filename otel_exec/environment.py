"""Child process environment with a sanctioned TRACEPARENT."""

import os
from typing import Dict, Iterable, List, Mapping, Optional, Union

from otel_exec.traceparent import TRACEPARENT_ENV, Traceparent

TRACEPARENT_PREFIX = f"{TRACEPARENT_ENV}="

EnvSource = Union[Mapping[str, str], Iterable[str]]


def environ_list(environ: Optional[EnvSource] = None) -> List[str]:
    """Return ``environ`` as ``KEY=VALUE`` strings, defaulting to os.environ."""
    if environ is None:
        environ = os.environ
    if isinstance(environ, Mapping):
        return [f"{key}={value}" for key, value in environ.items()]
    return list(environ)


def build_child_env(
    parent_env: Optional[EnvSource] = None,
    carrier: Optional[Traceparent] = None,
) -> List[str]:
    """Copy the parent's environment for the child.

    Any inherited TRACEPARENT is dropped. When ``carrier`` is given, exactly
    one TRACEPARENT carrying it is appended; the parent's environment itself
    is left untouched.
    """
    env = [entry for entry in environ_list(parent_env) if not entry.startswith(TRACEPARENT_PREFIX)]
    if carrier is not None:
        env.append(f"{TRACEPARENT_PREFIX}{carrier.encode()}")
    return env


def env_to_mapping(env: Iterable[str]) -> Dict[str, str]:
    """Convert ``KEY=VALUE`` strings to the mapping subprocess expects."""
    mapping = {}
    for entry in env:
        key, sep, value = entry.partition("=")
        if sep and key:
            mapping[key] = value
    return mapping
