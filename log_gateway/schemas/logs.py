from pydantic import BaseModel, Field, validator
import re

from log_gateway.utils.timestamps import to_docker_timestamp


CONTAINER_ID_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")


class LogRequest(BaseModel):
    container_id: str = Field(..., min_length=1, max_length=255)
    follow: bool = True
    since: str = ""
    until: str = ""
    tail: str = "all"
    
    @validator("container_id")
    def validate_container_id(cls, v):
        if not CONTAINER_ID_PATTERN.match(v):
            raise ValueError("Container id can only contain letters, numbers, hyphens, dots, and underscores")
        return v
    
    @validator("since", "until")
    def validate_time_bound(cls, v):
        # Raises ValueError for anything that is not a timestamp or duration
        to_docker_timestamp(v)
        return v.strip()
    
    @validator("tail")
    def validate_tail(cls, v):
        v = v.strip() or "all"
        if v == "all" or (v.isascii() and v.isdigit()):
            return v
        raise ValueError("tail must be a non-negative integer or 'all'")
