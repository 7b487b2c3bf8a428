"""Health check utilities."""

from typing import Dict

from docrag.services.database import DatabaseService
from docrag.services.health import check_openai, check_postgres, check_qdrant
from docrag.services.vector_db import VectorDBService


async def check_all_dependencies(
    vector_db: VectorDBService,
    database: DatabaseService,
    include_openai: bool = True,
) -> Dict:
    """
    Check all service dependencies.

    Args:
        vector_db: Vector database service.
        database: Database service.
        include_openai: Whether to call the OpenAI API.

    Returns:
        Dictionary with overall status and individual service statuses.
    """
    services = {}
    overall_status = "healthy"

    postgres_status = await check_postgres(database)
    services["postgres"] = postgres_status
    if postgres_status.get("status") != "healthy":
        overall_status = "unhealthy"

    qdrant_status = await check_qdrant(vector_db)
    services["qdrant"] = qdrant_status
    if qdrant_status.get("status") != "healthy":
        overall_status = "unhealthy"

    if include_openai:
        openai_status = await check_openai()
        services["openai"] = openai_status
        if openai_status.get("status") == "unhealthy":
            overall_status = "unhealthy"

    return {"status": overall_status, "services": services}


async def check_readiness(
    vector_db: VectorDBService,
    database: DatabaseService,
) -> Dict:
    """
    Check service readiness.

    Args:
        vector_db: Vector database service.
        database: Database service.

    Returns:
        Readiness status dictionary.
    """
    postgres_status = await check_postgres(database)
    qdrant_status = await check_qdrant(vector_db)

    postgres_ready = postgres_status.get("status") == "healthy"
    qdrant_ready = qdrant_status.get("status") == "healthy"

    return {
        "ready": postgres_ready and qdrant_ready,
        "postgres": postgres_ready,
        "qdrant": qdrant_ready,
    }
