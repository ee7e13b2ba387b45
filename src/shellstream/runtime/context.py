"""Execution context for launching commands.

A Context says where a child process runs and what it is connected to:
environment, working directory and the three standard streams. It is an
immutable value passed explicitly to every runner call; there is no
process-wide default context. A script builds one at its entry point:

    context = Context.from_process()
    result = run(context, "ls", "-l")

and derives variations from it:

    quiet = context.with_stdin(ReadableStream(DiscardChannel()))
    build = context.with_cwd("build").with_env(CFLAGS="-O2")
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field, replace

from ..config import get_config
from ..streams import (
    DiscardChannel,
    FileChannel,
    ReadableStream,
    StdoutStream,
    WritableStream,
)

__all__ = ["Context"]


def _default_encoding() -> str:
    return get_config().encoding


@dataclass(frozen=True)
class Context:
    """Environment, directory and streams for child processes.

    The default-constructed context is blank: no environment variables,
    streams that read nothing and discard everything, and the current
    directory of the host process.

    Attributes:
        env: Environment variables of the child
        cwd: Working directory of the child
        stdin: Stream the child reads from
        stdout: Stream the child writes its output to
        stderr: Stream the child writes its errors to
        encoding: Encoding of the pipes the runner creates for captured output
    """

    env: Mapping[str, str] = field(default_factory=dict)
    cwd: str = field(default_factory=os.getcwd)
    stdin: ReadableStream = field(default_factory=lambda: ReadableStream(DiscardChannel()))
    stdout: WritableStream = field(default_factory=lambda: WritableStream(DiscardChannel()))
    stderr: WritableStream = field(default_factory=lambda: WritableStream(DiscardChannel()))
    encoding: str = field(default_factory=_default_encoding)

    @classmethod
    def blank(cls) -> Context:
        """Context with no environment that reads nothing and writes nowhere."""
        return cls()

    @classmethod
    def from_process(cls) -> Context:
        """Context of the host process.

        Takes a snapshot of os.environ and the current directory, and binds
        the host's standard input, output and error. Later changes to
        os.environ or the current directory do not affect the context.
        """
        encoding = _default_encoding()
        return cls(
            env=dict(os.environ),
            cwd=os.getcwd(),
            stdin=ReadableStream(FileChannel(sys.__stdin__.fileno(), owns_fd=False), encoding),
            stdout=StdoutStream(encoding),
            stderr=WritableStream(FileChannel(sys.__stderr__.fileno(), owns_fd=False), encoding),
            encoding=encoding,
        )

    def with_stdin(self, stdin: ReadableStream) -> Context:
        return replace(self, stdin=stdin)

    def with_stdout(self, stdout: WritableStream) -> Context:
        return replace(self, stdout=stdout)

    def with_stderr(self, stderr: WritableStream) -> Context:
        return replace(self, stderr=stderr)

    def with_env(self, env: Mapping[str, str] | None = None, /, **overrides: str) -> Context:
        """Copy with a different environment.

        Args:
            env: Replacement environment (default: keep the current one)
            **overrides: Variables to set on top of it

        Returns:
            The modified copy
        """
        merged = dict(self.env if env is None else env)
        merged.update(overrides)
        return replace(self, env=merged)

    def with_cwd(self, path: str | os.PathLike[str]) -> Context:
        """Copy with a different working directory; relative paths start at `cwd`."""
        return replace(self, cwd=os.path.normpath(os.path.join(self.cwd, os.fspath(path))))

    def with_encoding(self, encoding: str) -> Context:
        return replace(self, encoding=encoding)
