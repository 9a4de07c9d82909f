"""
Docker Stream Demultiplexer

Splits the multiplexed log stream returned by the Docker daemon for
containers without a TTY into stdout/stderr frames.

Each frame starts with an 8-byte header:
  - byte 0: channel selector (0 = stdin, 1 = stdout, 2 = stderr)
  - bytes 1-3: reserved
  - bytes 4-7: payload length (big-endian uint32)
"""

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Protocol

from log_gateway.core.exceptions import TruncatedFrameError, UnknownChannelError


HEADER_SIZE = 8
HEADER_FORMAT = ">BxxxL"


class Readable(Protocol):
    def read(self, size: int) -> bytes:
        ...


class Writable(Protocol):
    def write(self, data: bytes) -> int:
        ...


class StreamChannel(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


# stdin frames only show up for attached streams; they are treated as stdout
CHANNEL_SELECTORS = {
    0: StreamChannel.STDOUT,
    1: StreamChannel.STDOUT,
    2: StreamChannel.STDERR,
}


@dataclass(frozen=True)
class StreamFrame:
    channel: StreamChannel
    payload: bytes

    @property
    def length(self) -> int:
        return len(self.payload)


def parse_header(header: bytes) -> tuple[StreamChannel, int]:
    """Decode a frame header into (channel, payload length)"""
    selector, length = struct.unpack(HEADER_FORMAT, header)
    channel = CHANNEL_SELECTORS.get(selector)
    if channel is None:
        raise UnknownChannelError(selector)
    return channel, length


def read_exact(reader: Readable, size: int) -> bytes:
    """
    Read exactly ``size`` bytes, blocking until they arrive.

    Returns fewer bytes only when the reader hits end of stream.
    """
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def iter_frames(reader: Readable) -> Iterator[StreamFrame]:
    """
    Lazily yield frames from a multiplexed stream.

    Ends cleanly when the stream ends on a frame boundary. A stream that
    ends inside a header or payload raises TruncatedFrameError.
    """
    while True:
        header = read_exact(reader, HEADER_SIZE)
        if not header:
            return
        if len(header) < HEADER_SIZE:
            raise TruncatedFrameError("header", HEADER_SIZE, len(header))

        channel, length = parse_header(header)
        payload = read_exact(reader, length)
        if len(payload) < length:
            raise TruncatedFrameError("payload", length, len(payload))

        yield StreamFrame(channel=channel, payload=payload)


def demux_copy(reader: Readable, stdout: Writable, stderr: Writable) -> int:
    """
    Route every frame's payload to the writer for its channel.

    Returns:
        Number of payload bytes copied
    """
    writers = {
        StreamChannel.STDOUT: stdout,
        StreamChannel.STDERR: stderr,
    }
    copied = 0
    for frame in iter_frames(reader):
        if frame.length == 0:
            continue
        writers[frame.channel].write(frame.payload)
        copied += frame.length
    return copied
