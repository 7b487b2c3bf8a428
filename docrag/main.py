"""Service entrypoint: owns the service lifecycle and exposes operational endpoints."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from docrag.api.health import check_all_dependencies, check_readiness
from docrag.core.config import settings
from docrag.core.dependencies import ServiceContainer

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application around a service container.

    Args:
        services: Container to use; a default one is built when omitted.

    Returns:
        FastAPI application.
    """
    services = services or ServiceContainer()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        await services.initialize()
        logger.info(f"{settings.service_name} started")
        yield
        await services.shutdown()
        logger.info(f"{settings.service_name} stopped")

    app = FastAPI(title="Document Knowledge Base", lifespan=lifespan)
    app.state.services = services

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint with dependency verification."""
        result = await check_all_dependencies(services.vector_db, services.database)
        return {"status": result["status"], "service": settings.service_name, **result}

    @app.get("/ready")
    async def readiness() -> dict:
        """Readiness check endpoint."""
        result = await check_readiness(services.vector_db, services.database)
        return {"service": settings.service_name, **result}

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=settings.service_port)
