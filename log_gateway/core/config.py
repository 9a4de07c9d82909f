from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field, validator


class Settings(BaseSettings):
    # Application
    app_name: str = "Container Log Gateway"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    
    # Server
    host: str = "0.0.0.0"
    port: int = Field(9000, ge=1, le=65535)
    
    # Docker
    docker_socket: str = "/var/run/docker.sock"
    docker_host: Optional[str] = None
    docker_api_version: Optional[str] = None
    docker_timeout: int = 60
    
    # Streaming
    read_chunk_size: int = Field(4096, gt=0)
    response_buffer_size: int = Field(4096, gt=0)
    response_queue_size: int = Field(16, gt=0)
    exact_line_flush: bool = False
    
    @validator("log_level")
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level
    
    @property
    def docker_url(self) -> str:
        if self.docker_host:
            return self.docker_host
        return f"unix://{self.docker_socket}"
    
    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
