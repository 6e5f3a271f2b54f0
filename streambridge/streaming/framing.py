"""
streambridge - SSE Frame Reassembly

Turns arbitrarily chunked response bytes into complete Server-Sent-Event
blocks. A block is the text before a blank-line delimiter; nothing is
yielded for a frame until its delimiter has arrived.

Incoming text is appended to a list of pieces and only joined once a
delimiter can be present, and consumed blocks advance an offset instead of
re-slicing the buffer, so many small chunks stay linear in stream length.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from ..core.errors import ChunkDecodeError


DELIMITER = "\n\n"


@dataclass(frozen=True)
class EventBlock:
    """Raw text of one SSE event, delimiter excluded."""
    text: str

    def fields(self) -> Iterator[Tuple[str, str]]:
        """
        Yield (field, value) pairs in order.

        Comment lines (leading ':') and blank lines are skipped. A single
        space after the colon is not part of the value.
        """
        for line in self.text.split("\n"):
            if not line or line.startswith(":"):
                continue
            name, sep, value = line.partition(":")
            if sep and value.startswith(" "):
                value = value[1:]
            yield name, value

    @property
    def event(self) -> Optional[str]:
        """Value of the last `event:` field, if any."""
        name = None
        for key, value in self.fields():
            if key == "event":
                name = value
        return name

    @property
    def data_lines(self) -> List[str]:
        return [value for key, value in self.fields() if key == "data"]

    @property
    def data(self) -> Optional[str]:
        """
        Payload of the block: all `data:` lines joined with newlines.

        None when the block has no `data:` line at all.
        """
        lines = self.data_lines
        if not lines:
            return None
        return "\n".join(lines)


class FrameReassembler:
    """
    Incremental SSE framer for one session.

    Usage:
        framer = FrameReassembler()
        async for chunk in response.aiter_bytes():
            for block in framer.ingest(chunk):
                handle(block)
        for block in framer.flush():
            handle(block)
    """

    def __init__(self):
        self._buffer = ""            # joined text; unconsumed from _start
        self._start = 0
        self._pieces: List[str] = []  # appended text not yet joined
        self._may_have_delimiter = False
        self._ends_with_newline = False
        self._pending_cr = False

        self.bytes_received = 0
        self.blocks_extracted = 0

    @property
    def pending_text(self) -> str:
        """Received text not yet consumed as a complete block."""
        return self._buffer[self._start:] + "".join(self._pieces)

    @property
    def pending(self) -> int:
        """Number of buffered characters awaiting a delimiter."""
        return len(self._buffer) - self._start + sum(len(piece) for piece in self._pieces)

    def feed(self, chunk: bytes) -> None:
        """
        Decode a chunk and append it to the buffer.

        Raises:
            ChunkDecodeError: If the chunk is not valid UTF-8. Nothing is
                appended in that case.
        """
        try:
            text = chunk.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ChunkDecodeError(str(e), len(chunk)) from e

        self.bytes_received += len(chunk)
        self._append(self._normalize_newlines(text))

    def _append(self, text: str) -> None:
        if not text:
            return
        if DELIMITER in text or (self._ends_with_newline and text.startswith("\n")):
            self._may_have_delimiter = True
        self._ends_with_newline = text.endswith("\n")
        self._pieces.append(text)

    def blocks(self) -> Iterator[EventBlock]:
        """Yield every complete block currently buffered, oldest first."""
        while self._may_have_delimiter:
            if self._pieces:
                self._buffer = self._buffer[self._start:] + "".join(self._pieces)
                self._start = 0
                self._pieces = []

            pos = self._buffer.find(DELIMITER, self._start)
            if pos < 0:
                self._may_have_delimiter = False
                return

            text = self._buffer[self._start:pos]
            self._start = pos + len(DELIMITER)
            if text.strip():
                self.blocks_extracted += 1
                yield EventBlock(text)

    def ingest(self, chunk: bytes) -> Iterator[EventBlock]:
        """
        Feed one chunk and return an iterator over the blocks it completed.

        Decoding happens immediately, so a ChunkDecodeError is raised by
        this call rather than on first iteration.
        """
        self.feed(chunk)
        return self.blocks()

    def flush(self) -> Iterator[EventBlock]:
        """
        Mark the end of the body.

        A CR held back at the last chunk edge is a line break after all, so
        it is released here and any block it completes is yielded.
        """
        if self._pending_cr:
            self._pending_cr = False
            self._append("\n")
        return self.blocks()

    def reset(self) -> None:
        """Drop all buffered text."""
        self._buffer = ""
        self._start = 0
        self._pieces = []
        self._may_have_delimiter = False
        self._ends_with_newline = False
        self._pending_cr = False

    def _normalize_newlines(self, text: str) -> str:
        # CRLF and lone CR both end a line; a CR at the chunk edge waits for
        # the next chunk so a split CRLF is not read as two line breaks.
        if self._pending_cr:
            text = "\r" + text
            self._pending_cr = False
        if text.endswith("\r"):
            text = text[:-1]
            self._pending_cr = True
        if "\r" in text:
            text = text.replace("\r\n", "\n").replace("\r", "\n")
        return text
