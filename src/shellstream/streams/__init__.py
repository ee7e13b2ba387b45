"""Streams module for chunked channels, text streams and line splitting.

Bytes move through channels (OS descriptors, memory queues, the void);
streams add an encoding; LineSequence turns chunks into complete lines.
"""

from __future__ import annotations

from .channels import ChunkSink, ChunkSource, DiscardChannel, FileChannel, MemoryChannel
from .split import LineCursor, LineSequence, lazy_split, produce_next, split_once
from .stream import (
    ChannelStream,
    ReadableStream,
    StdoutStream,
    StreamCapability,
    Subscription,
    WritableStream,
    pipe_streams,
)

__all__ = [
    "ChannelStream",
    "ChunkSink",
    "ChunkSource",
    "DiscardChannel",
    "FileChannel",
    "LineCursor",
    "LineSequence",
    "MemoryChannel",
    "ReadableStream",
    "StdoutStream",
    "StreamCapability",
    "Subscription",
    "WritableStream",
    "lazy_split",
    "pipe_streams",
    "produce_next",
    "split_once",
]
