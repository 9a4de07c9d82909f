"""
Line Flushing Writer

Wraps a response writer so that every complete log line is written and
flushed to the client as a unit, regardless of how upstream writes split
the bytes.
"""

from typing import Protocol

from log_gateway.core.exceptions import SinkWriteError


NEWLINE = b"\n"


class FlushableWriter(Protocol):
    def write(self, data: bytes) -> int:
        ...

    def flush(self) -> None:
        ...


class LineFlushingWriter:
    """
    Flush the downstream writer after every newline.

    By default bytes after the last newline of a write call are passed
    straight through without a flush, so slow streams never sit on a
    partial line. With ``exact_lines`` they are held in the line buffer
    until their newline arrives and each flush carries whole lines only.
    """

    def __init__(self, out: FlushableWriter, exact_lines: bool = False):
        self.out = out
        self.exact_lines = exact_lines
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Bytes held back waiting for a newline"""
        return len(self._buffer)

    def write(self, data: bytes) -> int:
        """
        Write data, flushing once per newline.

        Returns:
            Number of bytes accepted (always len(data) on success)

        Raises:
            SinkWriteError: downstream write or flush failed; carries the
                number of bytes of ``data`` handled before the failure
        """
        written = 0
        start = 0

        while True:
            index = data.find(NEWLINE, start)
            if index < 0:
                break

            end = index + 1
            line = data[start:end]
            if self._buffer:
                line = bytes(self._buffer) + line

            try:
                self.out.write(line)
            except Exception as e:
                raise SinkWriteError(written, e) from e

            self._buffer.clear()
            written += end - start
            start = end

            try:
                self.out.flush()
            except Exception as e:
                raise SinkWriteError(written, e) from e

        tail = data[start:]
        if tail:
            if self.exact_lines:
                self._buffer += tail
            else:
                try:
                    self.out.write(tail)
                except Exception as e:
                    raise SinkWriteError(written, e) from e
            written += len(tail)

        return written

    def close(self) -> None:
        """Write and flush any partial line still held in the buffer"""
        if not self._buffer:
            return

        remainder = bytes(self._buffer)
        self._buffer.clear()
        try:
            self.out.write(remainder)
            self.out.flush()
        except Exception as e:
            raise SinkWriteError(0, e) from e
