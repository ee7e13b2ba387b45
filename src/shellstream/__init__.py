"""shellstream - run shell commands and stream their output from Python.

Environment variables:
    SHELLSTREAM_ENCODING: default stream encoding (default utf-8)
    SHELLSTREAM_CHUNK_SIZE: bytes per read from OS channels (default 65536)
    SHELLSTREAM_WHICH: program resolving bare executable names
    SHELLSTREAM_LOG_DEBUG: debug logging to a temp file (default false)

Usage:
    from shellstream import Context, run

    context = Context.from_process()
    print(run(context, "git", "status", "--short").stdout)
"""

__version__ = "0.1.0"

from .errors import CommandError, ExecutableNotFound, NonZeroExit, exit_with_error, fatal_error
from .logs import configure_logging
from .runtime import (
    AsyncCommand,
    Context,
    ProcessHandle,
    ProcessSpec,
    ProcessState,
    RunResult,
    TerminationReason,
    arun,
    create_process,
    run,
    run_and_print,
    run_async,
    run_async_and_print,
    run_then_if_failure,
    run_then_if_success,
)
from .streams import (
    ChannelStream,
    DiscardChannel,
    FileChannel,
    LineSequence,
    MemoryChannel,
    ReadableStream,
    StdoutStream,
    WritableStream,
    pipe_streams,
)

__all__ = [
    "__version__",
    "AsyncCommand",
    "ChannelStream",
    "CommandError",
    "Context",
    "DiscardChannel",
    "ExecutableNotFound",
    "FileChannel",
    "LineSequence",
    "MemoryChannel",
    "NonZeroExit",
    "ProcessHandle",
    "ProcessSpec",
    "ProcessState",
    "ReadableStream",
    "RunResult",
    "StdoutStream",
    "TerminationReason",
    "WritableStream",
    "arun",
    "configure_logging",
    "create_process",
    "exit_with_error",
    "fatal_error",
    "pipe_streams",
    "run",
    "run_and_print",
    "run_async",
    "run_async_and_print",
    "run_then_if_failure",
    "run_then_if_success",
]
