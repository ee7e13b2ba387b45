"""Runtime module for launching commands and managing child processes.

Commands run in an explicit Context; ProcessHandle tracks one child from
launch to exit, and the runner functions cover the common ways of running
a command and collecting what it writes.
"""

from __future__ import annotations

from .context import Context
from .process import ProcessHandle, ProcessSpec, ProcessState, TerminationReason
from .runner import (
    AsyncCommand,
    RunResult,
    arun,
    build_spec,
    create_process,
    run,
    run_and_print,
    run_async,
    run_async_and_print,
    run_then_if_failure,
    run_then_if_success,
)

__all__ = [
    "AsyncCommand",
    "Context",
    "ProcessHandle",
    "ProcessSpec",
    "ProcessState",
    "RunResult",
    "TerminationReason",
    "arun",
    "build_spec",
    "create_process",
    "run",
    "run_and_print",
    "run_async",
    "run_async_and_print",
    "run_then_if_failure",
    "run_then_if_success",
]
