from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from log_gateway.core.config import settings
from log_gateway.core.exceptions import AppException
from log_gateway.core.logging import logger
from log_gateway.core.middleware import RequestIDMiddleware
from log_gateway.api.api import api_router
from log_gateway.services.docker_client import DockerClientFactory
from log_gateway.services.log_source import DockerLogSource


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting up, docker endpoint: {settings.docker_url}")
    app.state.log_source = DockerLogSource(
        DockerClientFactory.create_client(),
        connect_timeout=settings.docker_timeout
    )
    
    yield
    
    # Shutdown
    logger.info("Shutting down...")
    app.state.log_source.close()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan
)

# Request ID middleware
app.add_middleware(RequestIDMiddleware)


def _error_response(request: Request, status_code: int, code: str, message: str, details: dict) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details
            },
            "status": "error",
            "request_id": getattr(request.state, "request_id", None)
        }
    )


# Global exception handlers
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return _error_response(request, exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    fields = [str(error["loc"][-1]) for error in errors if error.get("loc")]
    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        errors[0]["msg"] if errors else "Validation failed",
        {"fields": fields}
    )


# Include API router
app.include_router(api_router)


def run():
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
