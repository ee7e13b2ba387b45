"""Incremental line splitting over chunked sources.

Data pulled from a live channel arrives in chunks whose size says nothing
about line boundaries. This module turns such a series of chunks into a
sequence of complete lines:

- split_once(): one split of one chunk at the first separator
- lazy_split(): repeated splitting of a single sequence
- LineCursor / produce_next(): the state and transition of line production
  across chunks, with the unterminated tail of the last chunk carried over
- LineSequence: iterator over produce_next() that an external driver (timer,
  event loop) can call again after it ran dry

Key design points:
- A tail of None means "no separator in this chunk"; an empty tail means the
  chunk ended right after a separator. Only the former asks for another chunk.
- Stitching across chunk boundaries always keeps empty segments. The caller's
  empty-slice policy is applied only to emitted lines.
- Nothing available right now is not the end: the cursor is left untouched
  and the next call resumes from it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar

__all__ = [
    "LineCursor",
    "LineSequence",
    "lazy_split",
    "produce_next",
    "split_once",
]

# str or bytes in practice; anything sliceable with .index() works.
S = TypeVar("S", bound=Any)


def split_once(sequence: S, separator: Any) -> tuple[S, Optional[S]]:
    """Split `sequence` at the first occurrence of `separator`.

    Args:
        sequence: The sequence to split
        separator: A single element (or one-character str / one-byte bytes)

    Returns:
        (head, tail): everything before the separator and everything after it.
        Either may be empty. `tail` is None when the separator does not occur.
    """
    try:
        index = sequence.index(separator)
    except ValueError:
        return sequence, None
    return sequence[:index], sequence[index + 1:]


def lazy_split(base: S, separator: Any, allow_empty: bool = False) -> Iterator[S]:
    """Lazily split one sequence on every occurrence of `separator`.

    Args:
        base: The sequence to split
        separator: The element to split over
        allow_empty: Emit empty slices from adjacent, leading or trailing
            separators

    Yields:
        The slices between separators
    """
    remaining: Optional[S] = base
    while remaining is not None:
        head, remaining = split_once(remaining, separator)
        if allow_empty or head:
            yield head


@dataclass(frozen=True)
class LineCursor(Generic[S]):
    """Position of a line sequence between two calls.

    Attributes:
        pending: Text after the last separator seen, not yet terminated.
            None when nothing has been buffered; "" right after a separator.
        exhausted: The source ended and everything buffered was emitted
    """

    pending: Optional[S] = None
    exhausted: bool = False


def produce_next(
    cursor: LineCursor[S],
    pull: Callable[[], Optional[S]],
    is_finished: Callable[[], bool],
    separator: Any = "\n",
    allow_empty: bool = False,
) -> tuple[LineCursor[S], Optional[S]]:
    """Produce the next complete line.

    Args:
        cursor: Current position
        pull: Returns the next available chunk, or None if there is none now
        is_finished: True once the source can never produce another chunk
        separator: Line separator
        allow_empty: Emit empty lines

    Returns:
        (cursor, line): the new position and the line, or None when no line
        can be produced now. When None is returned because the source is
        merely idle, the returned cursor differs from the one passed in
        only by the separator-free chunks merged into `pending`.
    """
    while not cursor.exhausted:
        if cursor.pending is not None:
            head, tail = split_once(cursor.pending, separator)
            if tail is not None:
                cursor = replace(cursor, pending=tail)
                if allow_empty or head:
                    return cursor, head
                continue

        chunk = pull()
        if chunk is None:
            if not is_finished():
                return cursor, None
            last = cursor.pending
            cursor = LineCursor(pending=None, exhausted=True)
            if last is not None and (allow_empty or last):
                return cursor, last
            return cursor, None

        head, tail = split_once(chunk, separator)
        if cursor.pending is not None:
            head = cursor.pending + head
        if tail is None:
            # Partial line: keep it and pull again.
            cursor = replace(cursor, pending=head)
            continue
        cursor = replace(cursor, pending=tail)
        if allow_empty or head:
            return cursor, head

    return cursor, None


class LineSequence(Generic[S]):
    """Lines read from a pull function, across chunk boundaries.

    The sequence is single-pass and consuming. Iteration stops whenever no
    complete line is available right now; iterating again later resumes from
    the same position, so a timer or event loop can keep driving it:

        lines = stream.lines()
        while process.is_running:
            for line in lines:
                handle(line)
            time.sleep(0.1)

    Attributes:
        separator: Line separator
        allow_empty: Emit empty lines
    """

    def __init__(
        self,
        pull: Callable[[], Optional[S]],
        is_finished: Callable[[], bool],
        separator: Any = "\n",
        allow_empty: bool = False,
    ) -> None:
        self._pull = pull
        self._is_finished = is_finished
        self.separator = separator
        self.allow_empty = allow_empty
        self._cursor: LineCursor[S] = LineCursor()

    def __repr__(self) -> str:
        return (
            f"LineSequence(pending={self._cursor.pending!r}, "
            f"exhausted={self._cursor.exhausted}, allow_empty={self.allow_empty})"
        )

    @property
    def cursor(self) -> LineCursor[S]:
        """Current position."""
        return self._cursor

    @property
    def pending(self) -> Optional[S]:
        """Buffered partial line."""
        return self._cursor.pending

    @property
    def exhausted(self) -> bool:
        """True once the source ended and every line was produced."""
        return self._cursor.exhausted

    def poll(self) -> Optional[S]:
        """Return the next line, or None if none is available now."""
        self._cursor, line = produce_next(
            self._cursor,
            self._pull,
            self._is_finished,
            separator=self.separator,
            allow_empty=self.allow_empty,
        )
        return line

    def __iter__(self) -> LineSequence[S]:
        return self

    def __next__(self) -> S:
        line = self.poll()
        if line is None:
            raise StopIteration
        return line
