"""Chunk sources and sinks over OS descriptors, memory and the void.

A channel hands out opaque byte chunks on demand, in one of three modes:
- poll_chunk(): non-blocking; None only means nothing is available now
- read_chunk(): blocks until some data arrives; None only at the end
- read_all(): blocks until the end and returns everything left

`at_end` turns true once the permanent end of data has been observed. The
write side is write_chunk() and close().

Carriers:
- FileChannel: an OS file descriptor (pipe end, file, standard descriptor)
- MemoryChannel: in-process chunk queue, preserving chunk boundaries
- DiscardChannel: swallows writes, reads as already ended
"""

from __future__ import annotations

import logging
import os
import select
import stat
import subprocess
import threading
from collections import deque
from typing import Optional, Protocol, runtime_checkable

from ..config import get_config

__all__ = [
    "ChunkSink",
    "ChunkSource",
    "DiscardChannel",
    "FileChannel",
    "MemoryChannel",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class ChunkSource(Protocol):
    """Readable side of a channel."""

    @property
    def at_end(self) -> bool: ...

    def poll_chunk(self) -> Optional[bytes]: ...

    def read_chunk(self) -> Optional[bytes]: ...

    def read_all(self) -> bytes: ...


@runtime_checkable
class ChunkSink(Protocol):
    """Writable side of a channel."""

    def write_chunk(self, chunk: bytes) -> None: ...

    def close(self) -> None: ...


class FileChannel:
    """Channel over an OS file descriptor.

    An empty read from a pipe or terminal is the permanent end. An empty read
    from a regular file is the end too, unless `follow` is set: then the file
    is treated like a log that may still grow, and the read only means that
    nothing is available right now.

    Attributes:
        follow: Keep polling regular files past their current end
        chunk_size: Bytes requested per read
    """

    def __init__(
        self,
        fd: int,
        *,
        follow: bool = False,
        owns_fd: bool = True,
        chunk_size: int | None = None,
    ) -> None:
        """Wrap a descriptor.

        Args:
            fd: The file descriptor
            follow: Keep polling regular files past their current end
            owns_fd: Close the descriptor in close(); False for descriptors
                borrowed from elsewhere, such as the host's standard ones
            chunk_size: Bytes per read (default from configuration)
        """
        self._fd: int | None = fd
        self._owns_fd = owns_fd
        self._at_end = False
        self.follow = follow
        self.chunk_size = chunk_size or get_config().chunk_size
        try:
            self._is_regular = stat.S_ISREG(os.fstat(fd).st_mode)
        except OSError:
            self._is_regular = False

    def __repr__(self) -> str:
        return f"FileChannel(fd={self._fd}, at_end={self._at_end}, follow={self.follow})"

    @property
    def closed(self) -> bool:
        return self._fd is None

    @property
    def at_end(self) -> bool:
        return self._at_end

    def fileno(self) -> int:
        if self._fd is None:
            raise ValueError("I/O operation on closed channel")
        return self._fd

    @property
    def popen_target(self) -> int:
        """Value to pass to subprocess.Popen for binding a child channel."""
        return self.fileno()

    def _read(self) -> Optional[bytes]:
        data = os.read(self.fileno(), self.chunk_size)
        if data:
            return data
        if not (self.follow and self._is_regular):
            self._at_end = True
        return None

    def poll_chunk(self) -> Optional[bytes]:
        if self._at_end or self._fd is None:
            return None
        if not self._is_regular:
            readable, _, _ = select.select([self._fd], [], [], 0)
            if not readable:
                return None
        return self._read()

    def read_chunk(self) -> Optional[bytes]:
        if self._at_end or self._fd is None:
            return None
        return self._read()

    def read_all(self) -> bytes:
        if self._at_end or self._fd is None:
            return b""
        chunks: list[bytes] = []
        while True:
            data = os.read(self._fd, self.chunk_size)
            if not data:
                break
            chunks.append(data)
        self._at_end = True
        return b"".join(chunks)

    def write_chunk(self, chunk: bytes) -> None:
        view = memoryview(chunk)
        while view:
            written = os.write(self.fileno(), view)
            view = view[written:]

    def close(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        if self._owns_fd:
            os.close(fd)


class MemoryChannel:
    """Thread-safe in-memory channel.

    Chunks are handed out exactly as they were written, one per pull, which
    makes chunk boundaries controllable. Cannot be bound to a child process.
    """

    def __init__(self, *chunks: bytes) -> None:
        self._chunks: deque[bytes] = deque(chunk for chunk in chunks if chunk)
        self._closed = False
        self._cond = threading.Condition()

    def __repr__(self) -> str:
        return f"MemoryChannel(chunks={len(self._chunks)}, closed={self._closed})"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def at_end(self) -> bool:
        with self._cond:
            return self._closed and not self._chunks

    @property
    def popen_target(self) -> int:
        raise TypeError("MemoryChannel cannot be bound to a child process")

    def poll_chunk(self) -> Optional[bytes]:
        with self._cond:
            return self._chunks.popleft() if self._chunks else None

    def read_chunk(self) -> Optional[bytes]:
        with self._cond:
            self._cond.wait_for(lambda: self._chunks or self._closed)
            return self._chunks.popleft() if self._chunks else None

    def read_all(self) -> bytes:
        with self._cond:
            self._cond.wait_for(lambda: self._closed)
            data = b"".join(self._chunks)
            self._chunks.clear()
            return data

    def write_chunk(self, chunk: bytes) -> None:
        with self._cond:
            if self._closed:
                raise ValueError("write to closed channel")
            if chunk:
                self._chunks.append(bytes(chunk))
                self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


class DiscardChannel:
    """Channel that drops every write and has nothing to read."""

    def __repr__(self) -> str:
        return "DiscardChannel()"

    @property
    def at_end(self) -> bool:
        return True

    @property
    def popen_target(self) -> int:
        return subprocess.DEVNULL

    def poll_chunk(self) -> Optional[bytes]:
        return None

    def read_chunk(self) -> Optional[bytes]:
        return None

    def read_all(self) -> bytes:
        return b""

    def write_chunk(self, chunk: bytes) -> None:
        pass

    def close(self) -> None:
        pass
