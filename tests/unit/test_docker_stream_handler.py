"""
Unit tests for Docker Stream Handler
"""

import asyncio

import pytest

from log_gateway.core.exceptions import (
    ClientDisconnectedError,
    ContainerNotFoundError,
    SourceUnavailableError,
    TruncatedFrameError,
)
from log_gateway.schemas.logs import LogRequest
from log_gateway.services.docker_stream_handler import (
    CancellationToken,
    ChunkedResponseWriter,
    DockerStreamHandler,
    LogStreamSession,
    copy_raw,
)
from log_gateway.services.log_source import ContainerInfo
from tests.conftest import FakeLogSource, FakeLogStream, RecordingWriter, frame


async def drain(session: LogStreamSession) -> list:
    chunks = []
    while True:
        chunk = await session.next_chunk()
        if chunk is None:
            return chunks
        chunks.append(chunk)


async def wait_until(condition) -> None:
    while not condition():
        await asyncio.sleep(0.01)


class ConnectedRequest:
    """Request whose client stays connected"""
    
    async def receive(self):
        await asyncio.Event().wait()


class DisconnectedRequest:
    """Request whose client has already gone away"""
    
    async def receive(self):
        return {"type": "http.disconnect"}


def make_session(chunks, tty=False, **kwargs) -> LogStreamSession:
    return LogStreamSession(
        FakeLogStream(chunks),
        ContainerInfo(container_id="web", tty_allocated=tty),
        **kwargs
    )


class TestChunkedResponseWriter:
    """Test cases for ChunkedResponseWriter"""
    
    @pytest.fixture
    def emitted(self):
        return []
    
    @pytest.fixture
    def token(self):
        return CancellationToken()
    
    def test_flush_emits_pending_bytes(self, emitted, token):
        writer = ChunkedResponseWriter(emitted.append, token)
        
        writer.write(b"abc")
        writer.write(b"def\n")
        assert emitted == []
        
        writer.flush()
        
        assert emitted == [b"abcdef\n"]
        assert writer.bytes_sent == 7
        assert writer.chunks_sent == 1
    
    def test_flush_without_data_emits_nothing(self, emitted, token):
        writer = ChunkedResponseWriter(emitted.append, token)
        
        writer.flush()
        
        assert emitted == []
    
    def test_full_buffer_is_sent_without_flush(self, emitted, token):
        writer = ChunkedResponseWriter(emitted.append, token, buffer_size=4)
        
        writer.write(b"ab")
        writer.write(b"cdef")
        
        assert emitted == [b"abcdef"]
    
    def test_cancelled_token_fails_writes(self, emitted, token):
        writer = ChunkedResponseWriter(emitted.append, token)
        token.cancel()
        
        with pytest.raises(ClientDisconnectedError):
            writer.write(b"x")
        with pytest.raises(ClientDisconnectedError):
            writer.flush()


class TestCopyRaw:
    """Test cases for copy_raw"""
    
    def test_copies_until_end_of_stream(self):
        writer = RecordingWriter()
        
        copied = copy_raw(FakeLogStream([b"abc", b"defg"]), writer, chunk_size=2)
        
        assert copied == 7
        assert writer.data == b"abcdefg"
        assert [len(payload) for _, payload in writer.events] == [2, 1, 2, 2]


class TestLogStreamSession:
    """Test cases for LogStreamSession"""
    
    def test_pump_tty_passes_raw_bytes(self):
        emitted = []
        raw = frame(1, b"looks like a frame\n")
        session = make_session([raw], tty=True)
        session.writer._emit = emitted.append
        
        copied = session.pump()
        
        assert copied == len(raw)
        assert b"".join(emitted) == raw
    
    def test_pump_demultiplexes(self):
        emitted = []
        session = make_session([frame(1, b"a\n") + frame(2, b"b\n") + frame(1, b"c\n")])
        session.writer._emit = emitted.append
        
        session.pump()
        
        assert emitted == [b"a\n", b"b\n", b"c\n"]
    
    def test_pump_keeps_partial_lines_per_channel(self):
        emitted = []
        data = frame(1, b"out-") + frame(2, b"err line\n") + frame(1, b"rest\n")
        session = make_session([data], exact_lines=True)
        session.writer._emit = emitted.append
        
        session.pump()
        
        assert emitted == [b"err line\n", b"out-rest\n"]
    
    def test_pump_flushes_trailing_partial_line(self):
        emitted = []
        session = make_session([frame(1, b"done\nno newline")])
        session.writer._emit = emitted.append
        
        session.pump()
        
        assert emitted == [b"done\n", b"no newline"]
    
    def test_pump_keeps_output_read_before_bad_frame(self):
        emitted = []
        session = make_session([frame(1, b"ok\npartial") + b"\x01\x00"])
        session.writer._emit = emitted.append
        
        with pytest.raises(TruncatedFrameError):
            session.pump()
        
        assert emitted == [b"ok\n", b"partial"]
    
    def test_pump_drops_partial_output_when_nothing_was_sent(self):
        emitted = []
        session = make_session([frame(1, b"partial") + b"\x01\x00"])
        session.writer._emit = emitted.append
        
        with pytest.raises(TruncatedFrameError):
            session.pump()
        
        assert emitted == []
    
    @pytest.mark.asyncio
    async def test_streams_chunks_then_ends(self):
        session = make_session([frame(1, b"a\nb\n"), frame(2, b"c\n")])
        session.start()
        
        chunks = await drain(session)
        session.join(timeout=5)
        
        assert chunks == [b"a\n", b"b\n", b"c\n"]
        assert session.stream.closed
        assert session.done
        assert await session.next_chunk() is None
    
    @pytest.mark.asyncio
    async def test_framing_error_is_raised_to_reader(self):
        session = make_session([frame(1, b"ok\n") + b"\x01\x00"])
        session.start()
        
        assert await session.next_chunk() == b"ok\n"
        with pytest.raises(TruncatedFrameError):
            await session.next_chunk()
        assert await session.next_chunk() is None
        assert session.stream.closed
    
    @pytest.mark.asyncio
    async def test_source_error_is_wrapped(self):
        class BrokenStream(FakeLogStream):
            def read(self, size=-1):
                raise OSError("socket reset")
        
        session = LogStreamSession(BrokenStream(), ContainerInfo("web", True))
        session.start()
        
        with pytest.raises(SourceUnavailableError):
            await session.next_chunk()
    
    @pytest.mark.asyncio
    async def test_closing_body_stops_blocked_worker(self):
        stream = FakeLogStream([frame(1, b"first\n")], block=True)
        session = LogStreamSession(stream, ContainerInfo("web", False))
        session.start()
        
        first = await session.next_chunk()
        body = session.body(first)
        assert await body.__anext__() == b"first\n"
        
        await asyncio.to_thread(stream.reading.wait, 5)
        await body.aclose()
        session.join(timeout=5)
        
        assert session.token.cancelled
        assert stream.closed
        assert session.done
    
    @pytest.mark.asyncio
    async def test_body_ends_on_error_after_output(self):
        session = make_session([frame(1, b"a\n") + frame(9, b"b\n")])
        session.start()
        
        first = await session.next_chunk()
        chunks = [chunk async for chunk in session.body(first)]
        
        assert chunks == [b"a\n"]
    
    @pytest.mark.asyncio
    async def test_body_with_no_output(self):
        session = make_session([])
        session.start()
        
        first = await session.next_chunk()
        chunks = [chunk async for chunk in session.body(first)]
        
        assert first is None
        assert chunks == []
    
    @pytest.mark.asyncio
    async def test_disconnect_does_not_affect_other_sessions(self):
        idle = LogStreamSession(FakeLogStream([], block=True), ContainerInfo("idle", False))
        busy = make_session([frame(1, b"line %d\n" % i) for i in range(3)])
        idle.start()
        busy.start()
        
        await asyncio.to_thread(idle.stream.reading.wait, 5)
        idle.close()
        idle.join(timeout=5)
        
        assert await drain(busy) == [b"line 0\n", b"line 1\n", b"line 2\n"]
        assert idle.done
        assert await idle.next_chunk() is None
    
    @pytest.mark.asyncio
    async def test_worker_waits_for_slow_client(self):
        stream = FakeLogStream([frame(1, b"line %d\n" % i) for i in range(50)])
        session = LogStreamSession(stream, ContainerInfo("web", False), queue_size=4)
        session.start()
        
        await asyncio.wait_for(wait_until(lambda: session.writer.chunks_sent == 4), 5)
        await asyncio.sleep(0.2)
        
        assert session.writer.chunks_sent == 4
        assert not session.done
        assert stream.unread > 0
        
        assert await drain(session) == [b"line %d\n" % i for i in range(50)]
        session.join(timeout=5)
        assert session.done
    
    @pytest.mark.asyncio
    async def test_close_releases_worker_waiting_for_queue_space(self):
        stream = FakeLogStream([frame(1, b"x\n")] * 10)
        session = LogStreamSession(stream, ContainerInfo("web", False), queue_size=1)
        session.start()
        
        await asyncio.wait_for(wait_until(lambda: session.writer.chunks_sent == 1), 5)
        session.close()
        await asyncio.to_thread(session.join, 5)
        
        assert session.done
        assert stream.closed
        assert session.writer.chunks_sent == 1
    
    @pytest.mark.asyncio
    async def test_first_chunk_waits_for_output(self):
        session = make_session([frame(1, b"hello\n")])
        session.start()
        
        assert await session.first_chunk(ConnectedRequest()) == b"hello\n"
        assert not session.token.cancelled
    
    @pytest.mark.asyncio
    async def test_client_leaving_before_output_releases_stream(self):
        stream = FakeLogStream([], block=True)
        session = LogStreamSession(stream, ContainerInfo("web", False))
        session.start()
        await asyncio.to_thread(stream.reading.wait, 5)
        
        with pytest.raises(ClientDisconnectedError):
            await session.first_chunk(DisconnectedRequest())
        session.join(timeout=5)
        
        assert session.token.cancelled
        assert stream.closed
        assert session.done


class TestDockerStreamHandler:
    """Test cases for DockerStreamHandler"""
    
    @pytest.mark.asyncio
    async def test_open_session(self):
        source = FakeLogSource(tty=True)
        handler = DockerStreamHandler(source, chunk_size=128, buffer_size=256, exact_lines=True, queue_size=8)
        
        session = await handler.open_session(
            LogRequest(container_id="web", follow=False, tail="5", since="10m")
        )
        
        container_id, options = source.open_calls[0]
        assert container_id == "web"
        assert options.follow is False
        assert options.tail == "5"
        assert options.since == "10m"
        assert options.timestamps is False
        assert source.inspect_calls == ["web"]
        assert session.container.tty_allocated is True
        assert session.chunk_size == 128
        assert session.writer.buffer_size == 256
        assert session.exact_lines is True
        assert session.queue_size == 8
    
    @pytest.mark.asyncio
    async def test_open_failure_propagates(self):
        source = FakeLogSource(open_error=ContainerNotFoundError("missing"))
        handler = DockerStreamHandler(source)
        
        with pytest.raises(ContainerNotFoundError):
            await handler.open_session(LogRequest(container_id="missing"))
        
        assert source.inspect_calls == []
    
    @pytest.mark.asyncio
    async def test_inspect_failure_closes_stream(self):
        stream = FakeLogStream([b"data"])
        source = FakeLogSource(stream=stream, inspect_error=SourceUnavailableError("boom"))
        handler = DockerStreamHandler(source)
        
        with pytest.raises(SourceUnavailableError):
            await handler.open_session(LogRequest(container_id="web"))
        
        assert stream.closed
