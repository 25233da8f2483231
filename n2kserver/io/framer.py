"""
Newline framing for inbound byte streams.

Reads are not line aligned: a single read may return half a line, several lines,
or anything in between. LineFramer accumulates bytes until a newline arrives.

Example:
    framer = LineFramer()
    framer.feed(b"12,3")       # []
    framer.feed(b"4,56\\n")     # ["12,34,56"]
    framer.close()             # a dangling partial line is dropped
"""

from typing import Optional

from ..exceptions import N2KLineTooLongError


class LineFramer:
    def __init__(self, max_line_length: Optional[int] = None, encoding: str = "utf-8"):
        self.max_line_length = max_line_length
        self.encoding = encoding
        self._buffer = bytearray()
        self._closed = False

    @property
    def pending(self) -> int:
        """Bytes held for a line that has not been terminated yet"""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[str]:
        """Consume a chunk and return every line it completes"""
        if self._closed:
            return []
        self._buffer.extend(chunk)
        *complete, rest = self._buffer.split(b"\n")
        self._buffer = bytearray(rest)

        if self.max_line_length is not None and len(self._buffer) > self.max_line_length:
            size = len(self._buffer)
            self._buffer.clear()
            raise N2KLineTooLongError(f"Line exceeds {self.max_line_length} bytes ({size} buffered)")

        lines = []
        for raw in complete:
            if raw.endswith(b"\r"):
                raw = raw[:-1]
            if self.max_line_length is not None and len(raw) > self.max_line_length:
                raise N2KLineTooLongError(f"Line exceeds {self.max_line_length} bytes ({len(raw)})")
            lines.append(raw.decode(self.encoding, errors="replace"))
        return lines

    def close(self) -> None:
        """End of stream; an unterminated partial line is discarded"""
        self._buffer.clear()
        self._closed = True
