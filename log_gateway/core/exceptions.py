from typing import Optional, Dict, Any
from fastapi import status


class AppException(Exception):
    """
    Base error rendered as the JSON error envelope.

    Subclasses set ``code`` and ``status_code``; an instance may override
    the code for a more specific condition.
    """

    code = "APP_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidInputError(ValidationError):
    code = "INVALID_INPUT"

    def __init__(self, field: str, message: str):
        super().__init__(f"invalid value for {field}: {message}", details={"field": field})


class MissingRequiredFieldError(ValidationError):
    code = "MISSING_REQUIRED_FIELD"

    def __init__(self, field: str):
        super().__init__(f"{field} is required", details={"field": field})


class SourceUnavailableError(AppException):
    code = "SOURCE_UNAVAILABLE"


class ContainerNotFoundError(SourceUnavailableError):
    code = "CONTAINER_NOT_FOUND"

    def __init__(self, container_id: str):
        super().__init__(
            f"container with id {container_id} not found",
            details={"container_id": container_id}
        )


class DockerConnectionError(SourceUnavailableError):
    code = "DOCKER_CONNECTION_ERROR"

    def __init__(self, message: str = "Failed to connect to Docker daemon"):
        super().__init__(message)


class ProtocolFramingError(AppException):
    code = "PROTOCOL_FRAMING_ERROR"


class TruncatedFrameError(ProtocolFramingError):
    code = "TRUNCATED_FRAME"

    def __init__(self, section: str, expected: int, received: int):
        super().__init__(
            f"Truncated frame {section}: expected {expected} bytes, got {received}",
            details={"section": section, "expected": expected, "received": received}
        )


class UnknownChannelError(ProtocolFramingError):
    code = "UNKNOWN_CHANNEL"

    def __init__(self, selector: int):
        super().__init__(
            f"Unknown stream channel selector: {selector}",
            details={"selector": selector}
        )


class TransportWriteError(Exception):
    """Raised when the response transport can no longer accept data"""


class ClientDisconnectedError(TransportWriteError):
    def __init__(self, message: str = "Client disconnected"):
        super().__init__(message)


class SinkWriteError(TransportWriteError):
    """A downstream write failed part way through a sink write call"""
    
    def __init__(self, bytes_written: int, cause: Exception):
        self.bytes_written = bytes_written
        self.cause = cause
        super().__init__(f"Downstream write failed after {bytes_written} bytes: {cause}")
