"""
Docker Log Source

Opens raw container log streams through the Docker SDK. The body is left
exactly as the daemon sends it (multiplexed frames for containers without
a TTY, plain bytes otherwise) so the gateway can do its own framing.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests
from docker.client import DockerClient
from docker.errors import APIError, DockerException, NotFound, create_api_error_from_http_exception
from docker.types import CancellableStream

from log_gateway.core.exceptions import (
    ContainerNotFoundError,
    DockerConnectionError,
    SourceUnavailableError,
)
from log_gateway.core.logging import logger
from log_gateway.schemas.logs import LogRequest
from log_gateway.utils.timestamps import to_docker_timestamp


@dataclass
class LogOptions:
    follow: bool = True
    since: str = ""
    until: str = ""
    tail: str = "all"
    show_stdout: bool = True
    show_stderr: bool = True
    timestamps: bool = False
    details: bool = False

    @classmethod
    def from_request(cls, request: LogRequest) -> "LogOptions":
        return cls(
            follow=request.follow,
            since=request.since,
            until=request.until,
            tail=request.tail
        )

    def to_params(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Build the query string for ``GET /containers/{id}/logs``"""
        params: Dict[str, Any] = {
            "stdout": int(self.show_stdout),
            "stderr": int(self.show_stderr),
            "follow": int(self.follow),
            "timestamps": int(self.timestamps),
            "details": int(self.details),
            "tail": self.tail or "all",
        }

        since = to_docker_timestamp(self.since, now)
        if since is not None:
            params["since"] = since

        until = to_docker_timestamp(self.until, now)
        if until is not None:
            params["until"] = until

        return params


@dataclass
class ContainerInfo:
    container_id: str
    tty_allocated: bool


class LogStream:
    """
    Blocking reader over a container log response.

    ``close`` may be called from another thread to interrupt a read that
    is waiting for new output in follow mode.
    """

    def __init__(self, stream: CancellableStream, response: Optional[requests.Response] = None):
        self._stream = stream
        self._response = response
        self._buffer = b""
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int = -1) -> bytes:
        """Return up to ``size`` bytes, or ``b""`` at end of stream."""
        while not self._buffer:
            if self._closed:
                return b""
            try:
                self._buffer = next(self._stream)
            except StopIteration:
                return b""
            except Exception as e:
                # Reads interrupted by close() surface as transport errors
                if self._closed:
                    return b""
                raise SourceUnavailableError(f"Log stream read failed: {e}")

        if size < 0 or size >= len(self._buffer):
            data, self._buffer = self._buffer, b""
        else:
            data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True

        try:
            self._stream.close()
        except Exception as e:
            logger.debug(f"Error shutting down log stream socket: {e}")

        if self._response is not None:
            try:
                self._response.close()
            except Exception as e:
                logger.debug(f"Error closing log stream response: {e}")


class DockerLogSource:
    """
    Stateless log source shared by all requests.

    Every ``open_logs`` call returns an independent stream owned by the
    caller, so concurrent requests need no locking.
    """

    def __init__(self, client: DockerClient, connect_timeout: Optional[float] = None):
        self.client = client
        self.connect_timeout = connect_timeout

    def open_logs(self, container_id: str, options: LogOptions) -> LogStream:
        """
        Open the log stream of a container.

        Raises:
            ContainerNotFoundError: container does not exist
            DockerConnectionError: daemon unreachable
            SourceUnavailableError: any other daemon error
        """
        api = self.client.api
        url = self._logs_url(container_id)

        try:
            # No read timeout: follow mode blocks until new output arrives
            response = api.get(
                url,
                params=options.to_params(),
                stream=True,
                timeout=(self.connect_timeout, None)
            )
        except requests.exceptions.ConnectionError as e:
            raise DockerConnectionError(f"Failed to connect to Docker daemon: {e}")

        try:
            self._raise_for_status(response, container_id)
        except Exception:
            response.close()
            raise

        stream = CancellableStream(response.iter_content(chunk_size=None), response)
        return LogStream(stream, response)

    def inspect(self, container_id: str) -> ContainerInfo:
        try:
            attrs = self.client.api.inspect_container(container_id)
        except NotFound:
            raise ContainerNotFoundError(container_id)
        except requests.exceptions.ConnectionError as e:
            raise DockerConnectionError(f"Failed to connect to Docker daemon: {e}")
        except (APIError, DockerException) as e:
            raise SourceUnavailableError(f"Failed to inspect container {container_id}: {e}")

        config = attrs.get("Config") or {}
        return ContainerInfo(
            container_id=attrs.get("Id", container_id),
            tty_allocated=bool(config.get("Tty", False))
        )

    def _logs_url(self, container_id: str) -> str:
        # container.logs() decodes the frames itself, so the endpoint is called directly
        api = self.client.api
        return f"{api.base_url}/v{api.api_version}/containers/{quote(container_id, safe='')}/logs"

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except (DockerException, requests.exceptions.RequestException):
            return False

    def close(self) -> None:
        self.client.close()

    @staticmethod
    def _raise_for_status(response: requests.Response, container_id: str) -> None:
        try:
            try:
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                create_api_error_from_http_exception(e)
        except NotFound:
            raise ContainerNotFoundError(container_id)
        except APIError as e:
            raise SourceUnavailableError(f"Failed to open container logs: {e.explanation or e}")
