"""
Docker Stream Handler

Runs one container log stream through the line flushing pipeline and
hands the flushed chunks to the HTTP response.

The copy loop is blocking (Docker SDK reads), so each stream gets its own
worker thread. Chunks cross back to the event loop through an asyncio
queue that holds at most a few chunks: once it is full the worker waits
for the client before reading more from Docker. A cancellation token tied
to the client connection stops the worker: the response side fires it and
closes the log stream, and the worker's next write fails and unwinds the
copy loop.
"""

import asyncio
import threading
import time
from typing import AsyncIterator, Callable, Optional, Union

from starlette.requests import Request

from log_gateway.core.config import settings
from log_gateway.core.exceptions import (
    AppException,
    ClientDisconnectedError,
    ProtocolFramingError,
    SourceUnavailableError,
    TransportWriteError,
)
from log_gateway.core.logging import logger
from log_gateway.schemas.logs import LogRequest
from log_gateway.services.line_writer import LineFlushingWriter
from log_gateway.services.log_source import ContainerInfo, DockerLogSource, LogOptions, LogStream
from log_gateway.services.stream_demux import Readable, Writable, demux_copy


_END_OF_STREAM = object()

# Seconds between checks for a dead event loop while waiting for queue space
SLOT_POLL_INTERVAL = 1.0

QueueItem = Union[bytes, Exception, object]


class CancellationToken:
    """Thread-safe flag shared by the response and its worker thread"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ChunkedResponseWriter:
    """
    Response body writer; each flush emits one body chunk.

    Unflushed bytes are held until the next flush, or sent as soon as they
    reach ``buffer_size``.
    """

    def __init__(
        self,
        emit: Callable[[bytes], None],
        token: CancellationToken,
        buffer_size: int = 4096
    ):
        self._emit = emit
        self._token = token
        self.buffer_size = buffer_size
        self._pending = bytearray()
        self.bytes_sent = 0
        self.chunks_sent = 0

    def write(self, data: bytes) -> int:
        self._check_open()
        self._pending += data
        if len(self._pending) >= self.buffer_size:
            self._send()
        return len(data)

    def flush(self) -> None:
        self._check_open()
        if self._pending:
            self._send()

    def _send(self) -> None:
        chunk = bytes(self._pending)
        self._pending.clear()
        self._emit(chunk)
        self.bytes_sent += len(chunk)
        self.chunks_sent += 1

    def _check_open(self) -> None:
        if self._token.cancelled:
            raise ClientDisconnectedError()


def copy_raw(reader: Readable, writer: Writable, chunk_size: int = 4096) -> int:
    """Copy a TTY stream verbatim until end of stream"""
    copied = 0
    while True:
        data = reader.read(chunk_size)
        if not data:
            break
        writer.write(data)
        copied += len(data)
    return copied


async def wait_for_disconnect(request: Request) -> None:
    """Return once the client has gone away"""
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


class LogStreamSession:
    """One request's log stream, worker thread and chunk queue."""

    def __init__(
        self,
        stream: LogStream,
        container: ContainerInfo,
        chunk_size: int = 4096,
        buffer_size: int = 4096,
        exact_lines: bool = False,
        queue_size: int = 16
    ):
        self.stream = stream
        self.container = container
        self.chunk_size = chunk_size
        self.exact_lines = exact_lines
        self.queue_size = queue_size
        self.token = CancellationToken()
        self.writer = ChunkedResponseWriter(self._emit, self.token, buffer_size)
        self.bytes_copied = 0
        self._queue: asyncio.Queue = asyncio.Queue()
        # One slot per data chunk queued but not yet taken by the response
        self._slots = threading.Semaphore(queue_size)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._started_at: Optional[float] = None

    @property
    def container_id(self) -> str:
        return self.container.container_id

    @property
    def done(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()

    def start(self) -> None:
        """Start copying in a dedicated worker thread"""
        self._loop = asyncio.get_running_loop()
        self._started_at = time.monotonic()
        self._thread = threading.Thread(
            target=self._run,
            name=f"log-stream-{self.container_id[:12]}",
            daemon=True
        )
        self._thread.start()

    def close(self) -> None:
        """Cancel the worker and release the log stream; safe to repeat"""
        self.token.cancel()
        # Wake a worker waiting for queue space
        self._slots.release()
        self.stream.close()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def pump(self) -> int:
        """
        Copy the log stream into the response writer.

        Runs on the worker thread. Returns the number of log bytes copied.
        """
        if self.container.tty_allocated:
            sinks = [LineFlushingWriter(self.writer, self.exact_lines)]
        else:
            # Separate line state per channel so partial lines never mix
            sinks = [
                LineFlushingWriter(self.writer, self.exact_lines),
                LineFlushingWriter(self.writer, self.exact_lines),
            ]

        try:
            if self.container.tty_allocated:
                copied = copy_raw(self.stream, sinks[0], self.chunk_size)
            else:
                copied = demux_copy(self.stream, *sinks)
        except ProtocolFramingError:
            # Once output has started the client keeps what was read before
            # the bad frame; before that the error response replaces it
            if self.writer.chunks_sent:
                self._finish(sinks)
            raise

        self._finish(sinks)
        return copied

    def _finish(self, sinks: list) -> None:
        for sink in sinks:
            sink.close()
        self.writer.flush()

    def _run(self) -> None:
        try:
            self.bytes_copied = self.pump()
            logger.info(
                f"docker container (id: {self.container_id}) logs ended: "
                f"{self.writer.bytes_sent} bytes in {self.writer.chunks_sent} chunks "
                f"after {time.monotonic() - self._started_at:.1f}s"
            )
        except TransportWriteError:
            logger.info(f"client disconnected from docker container (id: {self.container_id}) logs")
        except ProtocolFramingError as e:
            logger.error(f"Malformed log stream for container {self.container_id}: {e.message}")
            self._put(e)
        except Exception as e:
            if self.token.cancelled:
                logger.debug(f"Log stream for container {self.container_id} stopped: {e}")
            else:
                logger.error(f"Error streaming logs for container {self.container_id}: {e}")
                self._put(e)
        finally:
            self.stream.close()
            self._put(_END_OF_STREAM)

    def _emit(self, chunk: bytes) -> None:
        while not self._slots.acquire(timeout=SLOT_POLL_INTERVAL):
            if self._loop is None or self._loop.is_closed():
                raise ClientDisconnectedError("Response stream is closed")
        if self.token.cancelled or not self._put(chunk):
            raise ClientDisconnectedError("Response stream is closed")

    def _put(self, item: QueueItem) -> bool:
        if self._loop is None or self._loop.is_closed():
            return False
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
        except RuntimeError:
            # Loop shut down between the check and the call
            return False
        return True

    async def next_chunk(self) -> Optional[bytes]:
        """
        Wait for the next flushed chunk.

        Returns None at end of stream; re-raises a worker failure.
        """
        item = await self._queue.get()
        if item is _END_OF_STREAM:
            # Later callers see the end again
            self._queue.put_nowait(_END_OF_STREAM)
            return None
        if isinstance(item, AppException):
            raise item
        if isinstance(item, Exception):
            raise SourceUnavailableError(f"Log stream failed: {item}")
        self._slots.release()
        return item

    async def first_chunk(self, request: Request) -> Optional[bytes]:
        """
        Wait for the first chunk while watching for the client leaving.

        Nothing has been sent yet, so a failure here can still become an
        error response.

        Raises:
            ClientDisconnectedError: client went away first
        """
        chunk_task = asyncio.ensure_future(self.next_chunk())
        watch_task = asyncio.ensure_future(wait_for_disconnect(request))
        try:
            done, _ = await asyncio.wait(
                {chunk_task, watch_task},
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            pending = [task for task in (chunk_task, watch_task) if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if chunk_task in done:
            return chunk_task.result()

        self.close()
        raise ClientDisconnectedError()

    async def body(self, first: Optional[bytes]) -> AsyncIterator[bytes]:
        """Response body; closing it cancels the worker"""
        try:
            if first is None:
                return
            yield first
            while True:
                chunk = await self.next_chunk()
                if chunk is None:
                    break
                yield chunk
        except AppException as e:
            # Headers are already committed; ending the body is all we can do
            logger.warning(f"Log stream for container {self.container_id} aborted: {e.message}")
        finally:
            self.close()


class DockerStreamHandler:
    """Opens log sessions against the shared log source"""

    def __init__(
        self,
        log_source: DockerLogSource,
        chunk_size: Optional[int] = None,
        buffer_size: Optional[int] = None,
        exact_lines: Optional[bool] = None,
        queue_size: Optional[int] = None
    ):
        self.log_source = log_source
        self.chunk_size = chunk_size or settings.read_chunk_size
        self.buffer_size = buffer_size or settings.response_buffer_size
        self.exact_lines = settings.exact_line_flush if exact_lines is None else exact_lines
        self.queue_size = queue_size or settings.response_queue_size

    async def open_session(self, log_request: LogRequest) -> LogStreamSession:
        """
        Open the container's log stream and look up its TTY flag.

        Raises:
            SourceUnavailableError: logs could not be opened
        """
        container_id = log_request.container_id
        options = LogOptions.from_request(log_request)

        stream = await self._run_blocking(
            self.log_source.open_logs, container_id, options,
            on_abandon=lambda s: s.close()
        )
        try:
            container = await asyncio.to_thread(self.log_source.inspect, container_id)
        except BaseException:
            stream.close()
            raise

        logger.info(
            f"start docker container (id: {container_id}) logs with opts: {options} "
            f"(tty: {container.tty_allocated})"
        )

        return LogStreamSession(
            stream,
            ContainerInfo(container_id=container_id, tty_allocated=container.tty_allocated),
            chunk_size=self.chunk_size,
            buffer_size=self.buffer_size,
            exact_lines=self.exact_lines,
            queue_size=self.queue_size
        )

    @staticmethod
    async def _run_blocking(func, *args, on_abandon: Callable):
        """
        Run a blocking call in a thread.

        If the caller is cancelled first, ``on_abandon`` receives the
        eventual result so it can be released.
        """
        future = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            def release(done: asyncio.Future) -> None:
                if not done.cancelled() and done.exception() is None:
                    on_abandon(done.result())

            future.add_done_callback(release)
            raise
