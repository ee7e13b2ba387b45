"""shellstream exceptions and fatal exits.

Recoverable failures are `CommandError` subclasses that the synchronous
runner attaches to its result. Unrecoverable ones go through `fatal_error`,
and launch failures on entry points without a typed result go through
`exit_with_error`.
"""

from __future__ import annotations

import logging
import os
import sys
import traceback
from typing import NoReturn

__all__ = [
    "CommandError",
    "ExecutableNotFound",
    "NonZeroExit",
    "EXIT_CODE_NOT_FOUND",
    "exit_with_error",
    "fatal_error",
]

logger = logging.getLogger(__name__)

# Shell convention for "command not found".
EXIT_CODE_NOT_FOUND = 127


class CommandError(Exception):
    """Base class for errors from running a command."""

    @property
    def errorcode(self) -> int:
        """Exit code that represents this error."""
        return 1


class ExecutableNotFound(CommandError):
    """The executable could not be launched.

    Attributes:
        path: The executable path as it was passed to the OS
    """

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Could not execute file at path '{path}'.")

    @property
    def errorcode(self) -> int:
        return EXIT_CODE_NOT_FOUND

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ExecutableNotFound) and other.path == self.path

    def __hash__(self) -> int:
        return hash((ExecutableNotFound, self.path))


class NonZeroExit(CommandError):
    """A command exited with a non-zero code.

    Attributes:
        command: The command line, formatted for display
        code: The exit code
    """

    def __init__(self, command: str, code: int) -> None:
        self.command = command
        self.code = code
        super().__init__(f"Command '{command}' returned with error code {code}.")

    @property
    def errorcode(self) -> int:
        return self.code

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, NonZeroExit)
            and other.command == self.command
            and other.code == self.code
        )

    def __hash__(self) -> int:
        return hash((NonZeroExit, self.command, self.code))


def exit_with_error(error: BaseException | str, *, stacklevel: int = 1) -> NoReturn:
    """Print a diagnostic naming the originating call site and exit.

    Args:
        error: The error, or a plain message
        stacklevel: 1 reports the caller of this function, 2 its caller, ...

    Raises:
        SystemExit: Always; the code is `errorcode` for command errors, else 1
    """
    caller = traceback.extract_stack(limit=stacklevel + 1)[0]
    message = f"{caller.filename}:{caller.lineno}: {error}"
    logger.error(message)
    print(message, file=sys.stderr, flush=True)
    code = error.errorcode if isinstance(error, CommandError) else 1
    sys.exit(code)


def fatal_error(message: str) -> NoReturn:
    """Abort the host process.

    For states with no safe recovery, such as a text stream receiving bytes
    that are invalid in its encoding.
    """
    logger.critical(message)
    print(f"Fatal error: {message}", file=sys.stderr, flush=True)
    os.abort()
