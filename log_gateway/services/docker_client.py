import docker
from docker.client import DockerClient
from docker.constants import DEFAULT_DOCKER_API_VERSION
from docker.errors import DockerException

from log_gateway.core.config import settings
from log_gateway.core.exceptions import DockerConnectionError


class DockerClientFactory:
    """Builds the Docker client shared by every request."""
    
    @classmethod
    def create_client(cls) -> DockerClient:
        # An explicit version keeps construction offline; "auto" negotiates
        # with the daemon and therefore needs it reachable at startup.
        version = settings.docker_api_version or DEFAULT_DOCKER_API_VERSION
        
        try:
            return docker.DockerClient(
                base_url=settings.docker_url,
                version=version,
                timeout=settings.docker_timeout
            )
        except DockerException as e:
            raise DockerConnectionError(f"Failed to connect to Docker daemon: {str(e)}")
