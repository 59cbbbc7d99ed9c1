"""Main application module for the face search service."""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from facesearch.api import router as api_v1_router
from facesearch.core.config import settings
from facesearch.core.container import container
from facesearch.core.exceptions import ServiceNotInitializedError
from facesearch.core.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[Any, None]:
    """Initialize the service container and report the active face provider.

    Args:
        app: FastAPI application instance

    Returns:
        AsyncGenerator[Any, None]: Async context manager for app lifecycle
    """
    logger.info(
        "Starting face search service",
        version=settings.VERSION,
        environment=settings.ENVIRONMENT,
    )
    await container.initialize()

    # Warm the configuration cache; searches fail with 503 until a provider is active
    config = await container.provider_config_cache.get()
    if config is None:
        logger.warning("No active face recognition provider configured")
    else:
        logger.info(
            "Face recognition provider active",
            provider=config.provider_type.value,
            similarity_threshold=config.similarity_threshold,
            max_results=config.max_results,
        )

    yield

    logger.info("Stopping face search service")
    await container.cleanup()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router, prefix=settings.API_V1_STR)


@app.exception_handler(ServiceNotInitializedError)
async def service_not_initialized_handler(request: Request, exc: ServiceNotInitializedError) -> JSONResponse:
    """Answer 503 while the database or services cannot be reached."""
    logger.error("Face search services unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Face search service unavailable"},
    )


@app.get("/health")
async def health_check(response: Response) -> dict:
    """Report whether the services are up and a face provider is active.

    ``healthy`` requires an active provider; without one the service runs
    ``degraded`` and face matching answers 503.

    Returns:
        dict: Health status and the active provider, if any
    """
    if not container.initialized:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable", "provider": None}

    config = await container.provider_config_cache.get()
    if config is None:
        return {"status": "degraded", "provider": None}
    return {"status": "healthy", "provider": config.provider_type.value}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "facesearch.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
    )
