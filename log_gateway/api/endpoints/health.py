import asyncio
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from log_gateway.api.deps import get_log_source
from log_gateway.core.config import settings
from log_gateway.services.log_source import DockerLogSource


router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
async def liveness_check():
    return {
        "status": "healthy",
        "service": "log-gateway",
        "version": settings.app_version,
        "timestamp": _now()
    }


@router.get("/ready")
async def readiness_check(log_source: DockerLogSource = Depends(get_log_source)):
    docker_ready = await asyncio.to_thread(log_source.ping)
    
    return JSONResponse(
        status_code=status.HTTP_200_OK if docker_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "ready": docker_ready,
            "checks": {"docker": "ready" if docker_ready else "not_ready"},
            "timestamp": _now()
        }
    )
