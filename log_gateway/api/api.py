from fastapi import APIRouter

from log_gateway.api.endpoints import health, logs

api_router = APIRouter()

# Log streaming
api_router.include_router(logs.router, tags=["logs"])

# System
api_router.include_router(health.router, prefix="/health", tags=["health"])
