"""Channel tests.

Test coverage:
- FileChannel over pipes and regular files (poll, read, end detection, follow)
- MemoryChannel chunk boundaries and blocking reads
- DiscardChannel
- Protocol conformance
"""

from __future__ import annotations

import os
import subprocess
import threading
import time
from pathlib import Path

import pytest

from shellstream.streams.channels import (
    ChunkSink,
    ChunkSource,
    DiscardChannel,
    FileChannel,
    MemoryChannel,
)


@pytest.fixture
def pipe():
    """(read channel, write channel) over an OS pipe."""
    read_fd, write_fd = os.pipe()
    reader, writer = FileChannel(read_fd), FileChannel(write_fd)
    yield reader, writer
    reader.close()
    writer.close()


# =============================================================================
# FileChannel
# =============================================================================


class TestFileChannelPipe:
    """Test FileChannel over a pipe."""

    def test_poll_empty_pipe_is_not_end(self, pipe):
        reader, _ = pipe
        assert reader.poll_chunk() is None
        assert reader.at_end is False

    def test_poll_returns_written_data(self, pipe):
        reader, writer = pipe
        writer.write_chunk(b"hello")
        assert reader.poll_chunk() == b"hello"

    def test_end_after_writer_closed(self, pipe):
        reader, writer = pipe
        writer.write_chunk(b"last")
        writer.close()

        assert reader.poll_chunk() == b"last"
        assert reader.at_end is False
        assert reader.poll_chunk() is None
        assert reader.at_end is True

    def test_read_all_blocks_until_end(self, pipe):
        reader, writer = pipe

        def produce():
            for part in (b"a", b"b", b"c"):
                time.sleep(0.02)
                writer.write_chunk(part)
            writer.close()

        thread = threading.Thread(target=produce)
        thread.start()
        assert reader.read_all() == b"abc"
        assert reader.at_end
        thread.join()

    def test_read_chunk_returns_none_only_at_end(self, pipe):
        reader, writer = pipe
        writer.write_chunk(b"x")
        assert reader.read_chunk() == b"x"
        writer.close()
        assert reader.read_chunk() is None
        assert reader.at_end

    def test_chunk_size_limits_reads(self):
        read_fd, write_fd = os.pipe()
        reader = FileChannel(read_fd, chunk_size=4)
        writer = FileChannel(write_fd)
        writer.write_chunk(b"0123456789")
        writer.close()

        assert reader.read_chunk() == b"0123"
        assert reader.read_all() == b"456789"
        reader.close()

    def test_large_write_is_complete(self, pipe):
        reader, writer = pipe
        data = os.urandom(256 * 1024)
        received = []
        thread = threading.Thread(target=lambda: received.append(reader.read_all()))
        thread.start()
        writer.write_chunk(data)
        writer.close()
        thread.join()
        assert received == [data]

    def test_close_is_idempotent(self, pipe):
        reader, _ = pipe
        reader.close()
        reader.close()
        assert reader.closed
        assert reader.poll_chunk() is None

    def test_fileno_of_closed_channel(self, pipe):
        reader, _ = pipe
        reader.close()
        with pytest.raises(ValueError):
            reader.fileno()

    def test_borrowed_descriptor_stays_open(self):
        read_fd, write_fd = os.pipe()
        try:
            channel = FileChannel(write_fd, owns_fd=False)
            channel.close()
            os.write(write_fd, b"still open")
            assert os.read(read_fd, 100) == b"still open"
        finally:
            os.close(read_fd)
            os.close(write_fd)

    def test_popen_target_is_descriptor(self, pipe):
        reader, _ = pipe
        assert reader.popen_target == reader.fileno()


class TestFileChannelRegularFile:
    """Test FileChannel over a regular file."""

    def test_reads_file_to_end(self, tmp_path: Path):
        path = tmp_path / "data.txt"
        path.write_bytes(b"contents")
        channel = FileChannel(os.open(path, os.O_RDONLY))
        try:
            assert channel.poll_chunk() == b"contents"
            assert channel.poll_chunk() is None
            assert channel.at_end
        finally:
            channel.close()

    def test_follow_keeps_polling_growing_file(self, tmp_path: Path):
        path = tmp_path / "log.txt"
        path.write_bytes(b"first\n")
        channel = FileChannel(os.open(path, os.O_RDONLY), follow=True)
        try:
            assert channel.poll_chunk() == b"first\n"
            assert channel.poll_chunk() is None
            assert channel.at_end is False

            with open(path, "ab") as f:
                f.write(b"second\n")
            assert channel.poll_chunk() == b"second\n"
        finally:
            channel.close()


# =============================================================================
# MemoryChannel
# =============================================================================


class TestMemoryChannel:
    """Test the in-memory channel."""

    def test_preserves_chunk_boundaries(self):
        channel = MemoryChannel(b"ab", b"cd")
        assert channel.poll_chunk() == b"ab"
        assert channel.poll_chunk() == b"cd"
        assert channel.poll_chunk() is None

    def test_not_at_end_until_closed(self):
        channel = MemoryChannel()
        assert channel.at_end is False
        channel.close()
        assert channel.at_end is True

    def test_at_end_only_when_drained(self):
        channel = MemoryChannel(b"left")
        channel.close()
        assert channel.at_end is False
        assert channel.poll_chunk() == b"left"
        assert channel.at_end is True

    def test_empty_chunks_ignored(self):
        channel = MemoryChannel(b"", b"x")
        channel.write_chunk(b"")
        assert channel.poll_chunk() == b"x"
        assert channel.poll_chunk() is None

    def test_read_chunk_waits_for_writer(self):
        channel = MemoryChannel()
        timer = threading.Timer(0.05, channel.write_chunk, args=(b"late",))
        timer.start()
        assert channel.read_chunk() == b"late"
        timer.join()

    def test_read_all_waits_for_close(self):
        channel = MemoryChannel(b"a")

        def finish():
            channel.write_chunk(b"b")
            channel.close()

        timer = threading.Timer(0.05, finish)
        timer.start()
        assert channel.read_all() == b"ab"
        assert channel.at_end
        timer.join()

    def test_write_after_close_fails(self):
        channel = MemoryChannel()
        channel.close()
        with pytest.raises(ValueError):
            channel.write_chunk(b"x")

    def test_cannot_bind_to_child(self):
        with pytest.raises(TypeError):
            MemoryChannel().popen_target


# =============================================================================
# DiscardChannel
# =============================================================================


class TestDiscardChannel:
    """Test the discard channel."""

    def test_reads_as_ended(self):
        channel = DiscardChannel()
        assert channel.at_end
        assert channel.poll_chunk() is None
        assert channel.read_chunk() is None
        assert channel.read_all() == b""

    def test_swallows_writes(self):
        channel = DiscardChannel()
        channel.write_chunk(b"gone")
        channel.close()

    def test_binds_to_devnull(self):
        assert DiscardChannel().popen_target == subprocess.DEVNULL


class TestProtocols:
    """Test that the carriers satisfy the channel protocols."""

    @pytest.mark.parametrize("factory", [MemoryChannel, DiscardChannel])
    def test_source_and_sink(self, factory):
        channel = factory()
        assert isinstance(channel, ChunkSource)
        assert isinstance(channel, ChunkSink)

    def test_file_channel(self, pipe):
        reader, _ = pipe
        assert isinstance(reader, ChunkSource)
        assert isinstance(reader, ChunkSink)
