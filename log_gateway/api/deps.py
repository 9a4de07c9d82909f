from typing import Optional
from fastapi import Query, Request
from pydantic import ValidationError as PydanticValidationError

from log_gateway.core.exceptions import InvalidInputError, MissingRequiredFieldError, SourceUnavailableError
from log_gateway.schemas.logs import LogRequest
from log_gateway.services.log_source import DockerLogSource


# Query parameter names differ from the model field names
QUERY_FIELDS = {"container_id": "cid"}


def get_log_source(request: Request) -> DockerLogSource:
    """Shared log source created at startup"""
    log_source = getattr(request.app.state, "log_source", None)
    if log_source is None:
        raise SourceUnavailableError("Docker log source is not initialized")
    return log_source


def get_log_request(
    cid: Optional[str] = Query(None, description="Container id or name"),
    follow: bool = Query(True, description="Keep streaming new output"),
    since: str = Query("", description="Lower time bound: Unix or RFC 3339 timestamp, or duration like 10m"),
    until: str = Query("", description="Upper time bound: Unix or RFC 3339 timestamp, or duration like 10m"),
    tail: str = Query("all", description="Number of lines from the end, or 'all'")
) -> LogRequest:
    if not cid:
        raise MissingRequiredFieldError("cid")
    
    try:
        return LogRequest(
            container_id=cid,
            follow=follow,
            since=since,
            until=until,
            tail=tail
        )
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = str(error["loc"][0]) if error.get("loc") else "query"
        raise InvalidInputError(QUERY_FIELDS.get(field, field), error["msg"])
