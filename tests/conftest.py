"""
Pytest configuration and fixtures
"""

import struct
import threading
from typing import Iterable, List, Optional

import pytest

from log_gateway.services.log_source import ContainerInfo, LogOptions


def frame(selector: int, payload: bytes) -> bytes:
    """Build one multiplexed log frame"""
    return struct.pack(">BxxxL", selector, len(payload)) + payload


class FakeLogStream:
    """
    In-memory stand-in for LogStream.
    
    With ``block`` set, reading past the last chunk waits until close()
    like a follow-mode stream with no new output.
    """
    
    def __init__(self, chunks: Iterable[bytes] = (), block: bool = False):
        self._chunks: List[bytes] = [c for c in chunks if c]
        self.block = block
        self.closed = False
        self.close_calls = 0
        self.reading = threading.Event()
        self._closed_event = threading.Event()
    
    def read(self, size: int = -1) -> bytes:
        if self._chunks and not self.closed:
            chunk = self._chunks.pop(0)
            if 0 <= size < len(chunk):
                self._chunks.insert(0, chunk[size:])
                chunk = chunk[:size]
            return chunk
        if self.block:
            self.reading.set()
            self._closed_event.wait(timeout=10)
        return b""
    
    @property
    def unread(self) -> int:
        return sum(len(c) for c in self._chunks)
    
    def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self._closed_event.set()


class FakeLogSource:
    """Records calls and serves a prepared stream"""
    
    def __init__(
        self,
        stream: Optional[FakeLogStream] = None,
        tty: bool = False,
        open_error: Optional[Exception] = None,
        inspect_error: Optional[Exception] = None
    ):
        self.stream = stream or FakeLogStream()
        self.tty = tty
        self.open_error = open_error
        self.inspect_error = inspect_error
        self.open_calls: List[tuple] = []
        self.inspect_calls: List[str] = []
        self.healthy = True
    
    def open_logs(self, container_id: str, options: LogOptions) -> FakeLogStream:
        self.open_calls.append((container_id, options))
        if self.open_error:
            raise self.open_error
        return self.stream
    
    def inspect(self, container_id: str) -> ContainerInfo:
        self.inspect_calls.append(container_id)
        if self.inspect_error:
            raise self.inspect_error
        return ContainerInfo(container_id=container_id, tty_allocated=self.tty)
    
    def ping(self) -> bool:
        return self.healthy


class RecordingWriter:
    """Downstream writer that records writes and flushes in order"""
    
    def __init__(self, fail_on_write: Optional[int] = None):
        self.events: List[tuple] = []
        self.fail_on_write = fail_on_write
        self.write_count = 0
    
    def write(self, data: bytes) -> int:
        self.write_count += 1
        if self.fail_on_write is not None and self.write_count >= self.fail_on_write:
            raise BrokenPipeError("client went away")
        self.events.append(("write", bytes(data)))
        return len(data)
    
    def flush(self) -> None:
        self.events.append(("flush", None))
    
    @property
    def data(self) -> bytes:
        return b"".join(payload for kind, payload in self.events if kind == "write")
    
    @property
    def flush_count(self) -> int:
        return sum(1 for kind, _ in self.events if kind == "flush")


@pytest.fixture
def recording_writer():
    return RecordingWriter()


@pytest.fixture
def fake_stream():
    return FakeLogStream()


@pytest.fixture
def fake_log_source(fake_stream):
    return FakeLogSource(stream=fake_stream)
