"""Child process handle with an explicit lifecycle.

This module provides:
- ProcessSpec: what to launch (argv, resolved executable, env, cwd)
- ProcessHandle: launch, state queries, signals, waiting and completion
  callbacks for one child process

Key design points:
- State machine CREATED -> LAUNCHED -> RUNNING -> EXITED, with FAILED
  reachable from every non-terminal state; terminal states are final
- A watcher thread reaps the child and runs completion handlers, so
  handlers fire exactly once whether registered before or after exit
- Graceful termination is SIGTERM -> timeout -> SIGKILL -> timeout
- Signals go to the child only; it shares the host's process group, as a
  command started from an interactive shell would
"""

from __future__ import annotations

import logging
import signal
import subprocess
import sys
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import anyio

from ..config import get_config
from ..errors import ExecutableNotFound, NonZeroExit

__all__ = [
    "ProcessHandle",
    "ProcessSpec",
    "ProcessState",
    "TerminationReason",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"


class ProcessState(Enum):
    CREATED = "created"
    LAUNCHED = "launched"
    RUNNING = "running"
    EXITED = "exited"
    FAILED = "failed"


class TerminationReason(Enum):
    """How a child ended."""

    EXIT = "exit"
    UNCAUGHT_SIGNAL = "uncaught_signal"


_TRANSITIONS: dict[ProcessState, frozenset[ProcessState]] = {
    ProcessState.CREATED: frozenset({ProcessState.LAUNCHED, ProcessState.FAILED}),
    ProcessState.LAUNCHED: frozenset({ProcessState.RUNNING, ProcessState.FAILED}),
    ProcessState.RUNNING: frozenset({ProcessState.EXITED, ProcessState.FAILED}),
    ProcessState.EXITED: frozenset(),
    ProcessState.FAILED: frozenset(),
}


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for a child process.

    Attributes:
        argv: Command line arguments (first element is the name as given)
        executable: Resolved path of the program to run
        env: Environment variables (None = inherit the host's)
        cwd: Working directory (None = the host's)
    """

    argv: list[str]
    executable: str
    env: Mapping[str, str] | None = None
    cwd: str | None = None

    @property
    def command(self) -> str:
        """Command line for messages: the executable followed by the arguments."""
        return " ".join([self.executable, *self.argv[1:]])


def _popen_target(binding: Any) -> Any:
    """Turn a stream (or raw descriptor) into a subprocess.Popen argument."""
    if binding is None or isinstance(binding, int):
        return binding
    return binding.fileno()


class ProcessHandle:
    """One child process.

    The standard descriptors are bound at construction time to streams (or
    anything with a fileno() usable by subprocess.Popen, or a raw descriptor).

    Example:
        handle = ProcessHandle(spec, stdin=context.stdin, stdout=context.stdout,
                               stderr=context.stderr)
        handle.launch()
        handle.on_completion(lambda h: print("done", h.exit_code))
        handle.finish()
    """

    def __init__(
        self,
        spec: ProcessSpec,
        *,
        stdin: Any = None,
        stdout: Any = None,
        stderr: Any = None,
    ) -> None:
        self.spec = spec
        self._bindings = (stdin, stdout, stderr)
        self._popen: subprocess.Popen[bytes] | None = None
        self._state = ProcessState.CREATED
        self._error: ExecutableNotFound | None = None
        self._lock = threading.Lock()
        self._exited = threading.Event()
        self._handlers: list[Callable[[Any], None]] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(pid={self.pid}, state={self._state.value}, command={self.command!r})"

    @property
    def command(self) -> str:
        return self.spec.command

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _transition(self, new_state: ProcessState) -> None:
        with self._lock:
            if new_state not in _TRANSITIONS[self._state]:
                raise RuntimeError(
                    f"Illegal process state transition {self._state.value} -> {new_state.value}"
                )
            self._state = new_state

    def launch(self) -> ProcessHandle:
        """Start the child.

        Returns:
            self

        Raises:
            ExecutableNotFound: The OS could not start the executable
            RuntimeError: The handle was launched before
        """
        if self._state is not ProcessState.CREATED:
            raise RuntimeError(f"Process cannot be launched in state {self._state.value}")

        # Buffered host output must come out before the child's.
        sys.stdout.flush()
        sys.stderr.flush()

        stdin, stdout, stderr = (_popen_target(b) for b in self._bindings)
        try:
            self._popen = subprocess.Popen(
                self.spec.argv,
                executable=self.spec.executable,
                stdin=stdin,
                stdout=stdout,
                stderr=stderr,
                env=None if self.spec.env is None else dict(self.spec.env),
                cwd=self.spec.cwd,
            )
        except OSError as e:
            logger.debug(f"Launch failed executable={self.spec.executable}: {e}")
            self._error = ExecutableNotFound(self.spec.executable)
            self._transition(ProcessState.FAILED)
            raise self._error from e

        self._transition(ProcessState.LAUNCHED)
        logger.debug(
            f"Started subprocess pid={self._popen.pid} "
            f"argv={self.spec.argv[0]} cwd={self.spec.cwd}"
        )

        watcher = threading.Thread(
            target=self._watch,
            name=f"shellstream-watch-{self._popen.pid}",
            daemon=True,
        )
        self._transition(ProcessState.RUNNING)
        watcher.start()
        return self

    def _watch(self) -> None:
        """Reap the child, then run the completion handlers."""
        assert self._popen is not None
        returncode = self._popen.wait()
        with self._lock:
            self._state = ProcessState.EXITED
            handlers, self._handlers = self._handlers, []
            self._exited.set()
        logger.debug(f"Subprocess completed pid={self._popen.pid} returncode={returncode}")

        for handler in handlers:
            self._run_handler(handler)

    def _run_handler(self, handler: Callable[[Any], None]) -> None:
        try:
            handler(self)
        except Exception:
            logger.exception(f"Completion handler failed pid={self.pid}")

    def on_completion(self, handler: Callable[[Any], None]) -> ProcessHandle:
        """Call `handler` with this handle once the child has exited.

        The handler runs on the watcher thread, or right away on the calling
        thread if the child has already exited.

        Returns:
            self
        """
        with self._lock:
            if not self._exited.is_set():
                self._handlers.append(handler)
                return self
        self._run_handler(handler)
        return self

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def pid(self) -> int | None:
        return self._popen.pid if self._popen is not None else None

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state in (ProcessState.LAUNCHED, ProcessState.RUNNING)

    @property
    def error(self) -> ExecutableNotFound | None:
        """The launch error, if launching failed."""
        return self._error

    @property
    def exit_code(self) -> int | None:
        """Exit code, or None while the child is running.

        A negative value -N means the child was terminated by signal N.
        """
        if not self._exited.is_set():
            return None
        assert self._popen is not None
        return self._popen.returncode

    @property
    def termination_reason(self) -> TerminationReason | None:
        code = self.exit_code
        if code is None:
            return None
        return TerminationReason.UNCAUGHT_SIGNAL if code < 0 else TerminationReason.EXIT

    def wait(self, timeout: float | None = None) -> int:
        """Block until the child exits and return its exit code.

        Raises:
            subprocess.TimeoutExpired: The child is still running after `timeout`
            RuntimeError: The child was never started
        """
        if self._state is ProcessState.CREATED:
            raise RuntimeError("Process has not been launched")
        if self._state is ProcessState.FAILED:
            raise RuntimeError(f"Process failed to launch: {self._error}")
        if not self._exited.wait(timeout):
            raise subprocess.TimeoutExpired(self.spec.argv, timeout or 0)
        assert self._popen is not None
        return self._popen.returncode

    async def wait_async(self) -> int:
        """Wait for exit without blocking the event loop.

        Cancelling the awaiting task leaves the child running.
        """
        return await anyio.to_thread.run_sync(self.wait, abandon_on_cancel=True)

    def finish(self) -> ProcessHandle:
        """Wait for exit.

        Returns:
            self

        Raises:
            NonZeroExit: The child exited with a non-zero code
            ExecutableNotFound: The child could not be launched
        """
        if self._error is not None:
            raise self._error
        code = self.wait()
        if code != 0:
            raise NonZeroExit(self.command, code)
        return self

    # =========================================================================
    # Control
    # =========================================================================

    def send_signal(self, sig: int) -> bool:
        """Send `sig` to the child.

        Returns:
            False if the child is not running
        """
        if self._popen is None or self._exited.is_set():
            return False
        try:
            self._popen.send_signal(sig)
        except ProcessLookupError:
            return False
        logger.debug(f"Sent signal {sig} to pid={self._popen.pid}")
        return True

    def stop(self) -> None:
        """Ask the child to terminate (SIGTERM)."""
        if IS_WINDOWS:
            if self._popen is not None:
                self._popen.terminate()
            return
        self.send_signal(signal.SIGTERM)

    def interrupt(self) -> None:
        """Interrupt the child (SIGINT), as Ctrl-C would."""
        self.send_signal(signal.SIGINT)

    def suspend(self) -> bool:
        """Pause the child (SIGSTOP). Returns False where that is not possible."""
        sigstop = getattr(signal, "SIGSTOP", None)
        if sigstop is None:
            return False
        return self.send_signal(sigstop)

    def resume(self) -> bool:
        """Continue a paused child (SIGCONT)."""
        sigcont = getattr(signal, "SIGCONT", None)
        if sigcont is None:
            return False
        return self.send_signal(sigcont)

    def kill(self) -> None:
        """Kill the child (SIGKILL)."""
        if self._popen is None or self._exited.is_set():
            return
        try:
            self._popen.kill()
        except ProcessLookupError:
            return
        logger.debug(f"Killed pid={self._popen.pid}")

    def terminate(
        self,
        term_timeout: float | None = None,
        kill_timeout: float | None = None,
    ) -> int | None:
        """Terminate gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM
        2. Wait up to term_timeout for exit
        3. If still running, send SIGKILL
        4. Wait up to kill_timeout for exit

        Args:
            term_timeout: Seconds to wait after SIGTERM (default from configuration)
            kill_timeout: Seconds to wait after SIGKILL (default from configuration)

        Returns:
            The exit code, or None if the child outlived both timeouts
        """
        if not self.is_running:
            return self.exit_code
        config = get_config()
        term_timeout = config.term_timeout if term_timeout is None else term_timeout
        kill_timeout = config.kill_timeout if kill_timeout is None else kill_timeout

        logger.debug(f"Terminating subprocess pid={self.pid}")
        self.stop()
        try:
            code = self.wait(term_timeout)
            logger.debug(f"Subprocess terminated gracefully pid={self.pid} returncode={code}")
            return code
        except subprocess.TimeoutExpired:
            pass

        logger.debug(f"Force killing subprocess pid={self.pid}")
        self.kill()
        try:
            return self.wait(kill_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Subprocess did not exit after kill pid={self.pid}")
            return None
