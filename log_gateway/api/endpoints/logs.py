from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import StreamingResponse

from log_gateway.api.deps import get_log_request, get_log_source
from log_gateway.core.exceptions import ClientDisconnectedError
from log_gateway.core.logging import logger
from log_gateway.schemas.logs import LogRequest
from log_gateway.services.docker_stream_handler import DockerStreamHandler
from log_gateway.services.log_source import DockerLogSource


router = APIRouter()

STREAM_HEADERS = {
    "Transfer-Encoding": "chunked",
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


@router.get("/logs", response_class=StreamingResponse)
async def stream_container_logs(
    request: Request,
    log_request: LogRequest = Depends(get_log_request),
    log_source: DockerLogSource = Depends(get_log_source)
):
    """Stream a container's stdout/stderr as plain text, one flush per line"""
    handler = DockerStreamHandler(log_source)
    session = await handler.open_session(log_request)
    session.start()
    
    try:
        first = await session.first_chunk(request)
    except ClientDisconnectedError:
        logger.info(f"client left before docker container (id: {log_request.container_id}) produced output")
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except BaseException:
        session.close()
        raise
    
    return StreamingResponse(
        session.body(first),
        media_type="text/plain",
        headers=STREAM_HEADERS
    )
