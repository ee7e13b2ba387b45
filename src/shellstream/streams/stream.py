"""Text streams over chunk channels.

ReadableStream and WritableStream put an encoding on top of a channel from
`channels`. A readable stream can be consumed in four ways:
- read_all(): block until the channel ends, return all text
- poll_available(): whatever text is available now, without blocking
- lines(): complete lines, resumable after running dry
- on_available(): push notification from an asyncio event loop

Decoding is incremental, so a multi-byte character split over two chunks is
decoded once both halves are in. Bytes that are invalid under the encoding
cannot be recovered from and abort the process via `fatal_error`.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import sys
from enum import Flag
from typing import Any, Callable, Optional

from ..config import get_config
from ..errors import fatal_error
from .channels import ChunkSink, ChunkSource, FileChannel
from .split import LineSequence

__all__ = [
    "ChannelStream",
    "ReadableStream",
    "StdoutStream",
    "StreamCapability",
    "Subscription",
    "WritableStream",
    "pipe_streams",
]

logger = logging.getLogger(__name__)


class StreamCapability(Flag):
    """What a stream can be used for."""

    READABLE = 1
    WRITABLE = 2
    BOTH = READABLE | WRITABLE


class Subscription:
    """Registration of a readiness callback on an event loop.

    Returned by ReadableStream.on_available(); cancel() removes the callback.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, fd: int, stream: ReadableStream) -> None:
        self._loop = loop
        self._fd = fd
        self._stream = stream
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop notifications. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._loop.remove_reader(self._fd)
        self._stream._subscription = None
        logger.debug(f"Readiness subscription cancelled fd={self._fd}")


def _binding_target(channel: Any) -> int:
    try:
        return channel.popen_target
    except AttributeError:
        raise TypeError(f"{channel!r} cannot be bound to a child process") from None


class ReadableStream:
    """Readable text stream.

    Attributes:
        source: The channel data is read from
    """

    capability = StreamCapability.READABLE

    def __init__(self, source: ChunkSource, encoding: str | None = None) -> None:
        self.source = source
        self._subscription: Subscription | None = None
        self._set_read_encoding(encoding or get_config().encoding)

    def _set_read_encoding(self, encoding: str) -> None:
        self._encoding = encoding
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="strict")

    @property
    def encoding(self) -> str:
        return self._encoding

    @encoding.setter
    def encoding(self, value: str) -> None:
        self._set_read_encoding(value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.source!r}, encoding={self._encoding!r})"

    def fileno(self) -> int:
        """Descriptor (or subprocess constant) for binding to a child."""
        return _binding_target(self.source)

    @property
    def at_end(self) -> bool:
        return self.source.at_end

    def _decode(self, data: bytes, final: bool = False) -> str:
        try:
            return self._decoder.decode(data, final)
        except UnicodeDecodeError as e:
            fatal_error(f"Could not convert binary data to text using encoding {self._encoding}: {e}")

    # =========================================================================
    # Reading
    # =========================================================================

    def poll_available_bytes(self) -> Optional[bytes]:
        """Bytes available now, or None."""
        return self.source.poll_chunk()

    def poll_available(self) -> Optional[str]:
        """Text available now, or None.

        None does not mean the stream has ended; check `at_end` for that.
        """
        while True:
            data = self.source.poll_chunk()
            if data is None:
                if self.source.at_end:
                    return self._decode(b"", final=True) or None
                return None
            text = self._decode(data)
            if text:
                return text

    def read_some(self) -> Optional[str]:
        """Block until some text is available; None once the stream has ended."""
        while True:
            data = self.source.read_chunk()
            if data is None:
                return self._decode(b"", final=True) or None
            text = self._decode(data)
            if text:
                return text

    def read_all_bytes(self) -> bytes:
        """Block until the channel ends and return all remaining bytes."""
        return self.source.read_all()

    def read_all(self) -> str:
        """Block until the channel ends and return all remaining text."""
        return self._decode(self.source.read_all(), final=True)

    def lines(self, allow_empty: bool = False) -> LineSequence[str]:
        """Complete lines of the stream.

        Args:
            allow_empty: Emit empty lines

        Returns:
            A LineSequence. It stops when no line is available right now and
            can be iterated again later to continue.
        """
        return LineSequence(
            self.poll_available,
            lambda: self.source.at_end,
            separator="\n",
            allow_empty=allow_empty,
        )

    def write_to(self, target: WritableStream) -> None:
        """Copy everything up to the end of this stream into `target`."""
        while True:
            text = self.read_some()
            if text is None:
                return
            target.write(text)

    def close(self) -> None:
        """Cancel any readiness subscription and close the channel."""
        if self._subscription is not None:
            self._subscription.cancel()
        close = getattr(self.source, "close", None)
        if close is not None:
            close()

    # =========================================================================
    # Push notification
    # =========================================================================

    def on_available(
        self,
        callback: Callable[[ReadableStream], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> Subscription:
        """Call `callback` whenever the channel becomes readable.

        The callback gets this stream and is expected to poll it. Only one
        callback can be registered at a time. Notification stops on its own
        after the callback has observed the end of the stream.

        Args:
            callback: Called on the event loop thread
            loop: Event loop to register with (default: the running loop)

        Returns:
            Subscription whose cancel() stops notifications

        Raises:
            RuntimeError: A callback is already registered, or no loop is running
            TypeError: The channel has no OS descriptor
        """
        if self._subscription is not None:
            raise RuntimeError("a readiness callback is already registered")
        fd = self.fileno()
        if loop is None:
            loop = asyncio.get_running_loop()

        subscription = Subscription(loop, fd, self)

        def ready() -> None:
            callback(self)
            if self.source.at_end:
                subscription.cancel()

        loop.add_reader(fd, ready)
        self._subscription = subscription
        logger.debug(f"Readiness subscription installed fd={fd}")
        return subscription

    def on_text_available(
        self,
        handler: Callable[[str], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> Subscription:
        """Like on_available(), but passes the polled text instead."""

        def forward(stream: ReadableStream) -> None:
            text = stream.poll_available()
            if text is not None:
                handler(text)

        return self.on_available(forward, loop=loop)


class WritableStream:
    """Writable text stream.

    Attributes:
        sink: The channel data is written to
    """

    capability = StreamCapability.WRITABLE

    def __init__(self, sink: ChunkSink, encoding: str | None = None) -> None:
        self.sink = sink
        self._write_encoding = encoding or get_config().encoding

    @property
    def encoding(self) -> str:
        return self._write_encoding

    @encoding.setter
    def encoding(self, value: str) -> None:
        self._write_encoding = value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.sink!r}, encoding={self._write_encoding!r})"

    def fileno(self) -> int:
        """Descriptor (or subprocess constant) for binding to a child."""
        return _binding_target(self.sink)

    def write(self, text: str) -> None:
        if not text:
            return
        try:
            data = text.encode(self._write_encoding)
        except UnicodeEncodeError as e:
            fatal_error(f"Could not convert text to binary data using encoding {self._write_encoding}: {e}")
        self.sink.write_chunk(data)

    def write_bytes(self, data: bytes) -> None:
        self.sink.write_chunk(data)

    def write_formatted(self, *items: Any, separator: str = " ", terminator: str = "\n") -> None:
        """Write `items` converted with str(), `separator` between each, `terminator` at the end."""
        for index, item in enumerate(items):
            if index:
                self.write(separator)
            self.write(str(item))
        self.write(terminator)

    def close(self) -> None:
        self.sink.close()


class ChannelStream(ReadableStream, WritableStream):
    """Stream that can read and write the same channel.

    Whether reading or writing makes sense depends on the channel: the read
    end of a pipe supports only reading, the write end only writing.
    """

    capability = StreamCapability.BOTH

    def __init__(self, channel: Any, encoding: str | None = None) -> None:
        ReadableStream.__init__(self, channel, encoding)
        WritableStream.__init__(self, channel, encoding)

    @property
    def channel(self) -> Any:
        return self.source

    @property
    def encoding(self) -> str:
        return self._encoding

    @encoding.setter
    def encoding(self, value: str) -> None:
        self._set_read_encoding(value)
        self._write_encoding = value

    def __repr__(self) -> str:
        return f"ChannelStream({self.source!r}, encoding={self._encoding!r})"


class _HostStdout:
    """Sink writing through sys.stdout, so output interleaves with print()."""

    def write_chunk(self, chunk: bytes) -> None:
        sys.stdout.flush()
        sys.stdout.buffer.write(chunk)
        sys.stdout.buffer.flush()

    def close(self) -> None:
        pass

    @property
    def popen_target(self) -> int:
        sys.stdout.flush()
        return sys.stdout.fileno()


class StdoutStream(WritableStream):
    """The host process's standard output.

    Text is encoded with the stream's encoding and written to the buffer
    under sys.stdout; close() does nothing.
    """

    def __init__(self, encoding: str | None = None) -> None:
        super().__init__(_HostStdout(), encoding)

    def __repr__(self) -> str:
        return "StdoutStream()"


def pipe_streams(encoding: str | None = None) -> tuple[WritableStream, ReadableStream]:
    """Create an OS pipe and return (write end, read end) as streams."""
    read_fd, write_fd = os.pipe()
    return (
        ChannelStream(FileChannel(write_fd), encoding),
        ChannelStream(FileChannel(read_fd), encoding),
    )
