"""Running commands in a Context.

Four ways to run a command, by whether the call blocks and where the
output goes:

| Function              | Blocks | Output                                  |
|-----------------------|--------|-----------------------------------------|
| run()                 | yes    | captured into a RunResult               |
| run_and_print()       | yes    | the context's stdout / stderr           |
| run_async()           | no     | live streams on the returned command    |
| run_async_and_print() | no     | the context's stdout / stderr           |

arun() is run() for async callers. run() never raises for command failures;
the error is attached to the result. run_and_print() raises CommandError.
The non-blocking functions exit the host process if the command cannot be
launched, reporting the caller's file and line.
"""

from __future__ import annotations

import functools
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import anyio

from ..config import get_config
from ..errors import (
    EXIT_CODE_NOT_FOUND,
    CommandError,
    ExecutableNotFound,
    NonZeroExit,
    exit_with_error,
    fatal_error,
)
from ..streams import ReadableStream, WritableStream, pipe_streams
from .context import Context
from .process import ProcessHandle, ProcessSpec

__all__ = [
    "AsyncCommand",
    "RunResult",
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

logger = logging.getLogger(__name__)


# =============================================================================
# Process construction
# =============================================================================


def _flatten(args: Iterable[Any]) -> list[str]:
    """Flatten nested lists and tuples of arguments and convert them with str()."""
    flat: list[str] = []
    for arg in args:
        if isinstance(arg, (list, tuple)):
            flat.extend(_flatten(arg))
        else:
            flat.append(str(arg))
    return flat


def _resolve_executable(context: Context, executable: str) -> str:
    """Full path of `executable` as found by the path-search program.

    Paths (anything containing "/") are returned unchanged. Bare names that
    cannot be resolved are returned unchanged too, leaving the search to the OS.
    """
    which = get_config().which_path
    if "/" in executable or executable == which:
        return executable
    result = run(context, which, executable)
    if result.succeeded and result.stdout:
        logger.debug(f"Resolved executable {executable} -> {result.stdout}")
        return result.stdout
    return executable


def build_spec(context: Context, executable: str, args: Iterable[Any] = ()) -> ProcessSpec:
    """Resolve `executable` and combine it with the context into a ProcessSpec."""
    return ProcessSpec(
        argv=[executable, *_flatten(args)],
        executable=_resolve_executable(context, executable),
        env=dict(context.env),
        cwd=context.cwd,
    )


def create_process(context: Context, executable: str, args: Iterable[Any] = ()) -> ProcessHandle:
    """Unlaunched process bound to the context's streams."""
    return ProcessHandle(
        build_spec(context, executable, args),
        stdin=context.stdin,
        stdout=context.stdout,
        stderr=context.stderr,
    )


# =============================================================================
# Asynchronous commands
# =============================================================================


class AsyncCommand(ProcessHandle):
    """Process whose output is read through pipes.

    Attributes:
        stdout: The child's standard output
        stderr: The child's standard error (the same stream as stdout when
            output is combined)
        stdin: Writable end of the child's standard input if interactive,
            else None (the child reads the context's stdin)
    """

    def __init__(
        self,
        spec: ProcessSpec,
        context: Context,
        *,
        combine_output: bool = False,
        interactive: bool = False,
    ) -> None:
        encoding = context.encoding
        out_write, self.stdout = pipe_streams(encoding)
        self._child_ends: list[Any] = [out_write]

        if combine_output:
            self.stderr: ReadableStream = self.stdout
            err_write = out_write
        else:
            err_write, self.stderr = pipe_streams(encoding)
            self._child_ends.append(err_write)

        self.stdin: WritableStream | None = None
        child_stdin: Any = context.stdin
        if interactive:
            self.stdin, child_stdin = pipe_streams(encoding)
            self._child_ends.append(child_stdin)

        super().__init__(spec, stdin=child_stdin, stdout=out_write, stderr=err_write)

    @property
    def combined(self) -> bool:
        return self.stderr is self.stdout

    def launch(self) -> AsyncCommand:
        try:
            super().launch()
        except ExecutableNotFound:
            self.close()
            raise
        finally:
            # The child holds its own copies; ours would keep the pipes open.
            for stream in self._child_ends:
                stream.close()
        return self

    def close(self) -> None:
        """Close the host's ends of the pipes."""
        self.stdout.close()
        if not self.combined:
            self.stderr.close()
        if self.stdin is not None:
            self.stdin.close()


def run_async(
    context: Context,
    executable: str,
    *args: Any,
    combine_output: bool = False,
    interactive: bool = False,
) -> AsyncCommand:
    """Launch a command and return without waiting for it.

    Args:
        context: Where and how to run the command
        executable: Program name or path
        *args: Arguments; nested lists are flattened, values converted with str()
        combine_output: Send stderr into the same stream as stdout
        interactive: Give the command a writable stdin pipe instead of the
            context's stdin

    Returns:
        The running command. Its output must be read, or the child may block
        once a pipe buffer is full.
    """
    command = AsyncCommand(
        build_spec(context, executable, args),
        context,
        combine_output=combine_output,
        interactive=interactive,
    )
    try:
        command.launch()
    except ExecutableNotFound as e:
        exit_with_error(e, stacklevel=2)
    return command


def run_async_and_print(context: Context, executable: str, *args: Any) -> ProcessHandle:
    """Launch a command writing straight to the context's streams; do not wait."""
    handle = create_process(context, executable, args)
    try:
        handle.launch()
    except ExecutableNotFound as e:
        exit_with_error(e, stacklevel=2)
    return handle


# =============================================================================
# Synchronous commands
# =============================================================================


@dataclass(frozen=True)
class RunResult:
    """Outcome of a command run with run().

    Attributes:
        command: The command line, for messages
        stdout: Standard output, trimmed if it is a single line
        stderr: Standard error, trimmed if it is a single line
        exit_code: Exit code; 127 if the command could not be launched
        error: ExecutableNotFound or NonZeroExit, None on success
        stdout_bytes: Standard output as received
        stderr_bytes: Standard error as received
    """

    command: str
    stdout: str
    stderr: str
    exit_code: int
    error: CommandError | None = None
    stdout_bytes: bytes = b""
    stderr_bytes: bytes = b""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


def _clean_up_output(text: str) -> str:
    """Strip surrounding whitespace if `text` is a single line."""
    newline = text.find("\n")
    if newline == -1 or newline == len(text) - 1:
        return text.strip()
    return text


def _decode_output(data: bytes, encoding: str, name: str) -> str:
    try:
        return data.decode(encoding)
    except UnicodeDecodeError:
        fatal_error(f"Could not convert binary output of {name} to text using encoding {encoding}.")


def _drain(command: AsyncCommand) -> tuple[bytes, bytes]:
    """Read stdout and stderr to their ends at the same time.

    A worker thread drains stderr while the calling thread drains stdout, so
    a child filling one pipe never blocks while the other is being read.
    The worker is joined before returning, also when reading fails; a failed
    stdout read kills the child first so that stderr reaches its end.

    Raises:
        OSError: Reading either pipe failed
    """
    if command.combined:
        return command.stdout.read_all_bytes(), b""

    stderr_chunks: list[bytes] = []
    stderr_errors: list[OSError] = []

    def drain_stderr() -> None:
        try:
            stderr_chunks.append(command.stderr.read_all_bytes())
        except OSError as e:
            logger.debug(f"Reading stderr failed pid={command.pid}: {e}")
            stderr_errors.append(e)

    worker = threading.Thread(
        target=drain_stderr,
        name=f"shellstream-drain-{command.pid}",
        daemon=True,
    )
    worker.start()
    try:
        stdout = command.stdout.read_all_bytes()
    except OSError as e:
        logger.debug(f"Reading stdout failed pid={command.pid}: {e}, killing child")
        command.kill()
        raise
    finally:
        worker.join()
    if stderr_errors:
        raise stderr_errors[0]
    logger.debug(f"Drained output pid={command.pid} stdout={len(stdout)}B")
    return stdout, b"".join(stderr_chunks)


def run(context: Context, executable: str, *args: Any, combine_output: bool = False) -> RunResult:
    """Run a command to completion and capture its output.

    Args:
        context: Where and how to run the command
        executable: Program name or path
        *args: Arguments; nested lists are flattened, values converted with str()
        combine_output: Capture stderr into stdout

    Returns:
        The result; launch failures and non-zero exits are reported in
        `error`, not raised

    Raises:
        OSError: Reading the child's output failed
    """
    command = AsyncCommand(
        build_spec(context, executable, args),
        context,
        combine_output=combine_output,
    )
    stdout_bytes = stderr_bytes = b""
    error: CommandError | None = None
    try:
        command.launch()
    except ExecutableNotFound as e:
        error = e
        exit_code = EXIT_CODE_NOT_FOUND
    else:
        try:
            stdout_bytes, stderr_bytes = _drain(command)
        finally:
            command.close()
        exit_code = command.wait()
        if exit_code != 0:
            error = NonZeroExit(command.command, exit_code)

    encoding = context.encoding
    return RunResult(
        command=command.command,
        stdout=_clean_up_output(_decode_output(stdout_bytes, encoding, "stdout")),
        stderr=_clean_up_output(_decode_output(stderr_bytes, encoding, "stderr")),
        exit_code=exit_code,
        error=error,
        stdout_bytes=stdout_bytes,
        stderr_bytes=stderr_bytes,
    )


async def arun(
    context: Context,
    executable: str,
    *args: Any,
    combine_output: bool = False,
) -> RunResult:
    """run() in a worker thread, for use from async code."""
    return await anyio.to_thread.run_sync(
        functools.partial(run, context, executable, *args, combine_output=combine_output)
    )


def run_and_print(context: Context, executable: str, *args: Any) -> None:
    """Run a command writing straight to the context's streams and wait for it.

    Raises:
        ExecutableNotFound: The command could not be launched
        NonZeroExit: The command exited with a non-zero code
    """
    handle = create_process(context, executable, args)
    handle.launch()
    handle.finish()


# =============================================================================
# Chaining
# =============================================================================


def run_then_if_success(result: RunResult, then: Callable[[], RunResult]) -> RunResult:
    """`result` if it failed, else the result of calling `then` (shell `&&`)."""
    if not result.succeeded:
        return result
    return then()


def run_then_if_failure(result: RunResult, then: Callable[[], RunResult]) -> RunResult:
    """`result` if it succeeded, else the result of calling `then` (shell `||`)."""
    if result.succeeded:
        return result
    return then()
