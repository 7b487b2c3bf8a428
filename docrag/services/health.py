"""Health check service for dependency verification."""

import time
from typing import Any, Dict

from docrag.core.config import settings
from docrag.services.database import DatabaseService
from docrag.services.vector_db import VectorDBService


async def check_qdrant(vector_db: VectorDBService) -> Dict[str, Any]:
    """
    Check Qdrant connectivity and health.

    Args:
        vector_db: VectorDBService instance.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        if not vector_db.client:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        collections = await vector_db.client.get_collections()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
            "collections": len(collections.collections),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_postgres(database: DatabaseService) -> Dict[str, Any]:
    """
    Check PostgreSQL connectivity.

    Args:
        database: DatabaseService instance.

    Returns:
        Health status dictionary.
    """
    try:
        start_time = time.time()
        if not database.pool:
            return {"status": "unhealthy", "error": "Not connected", "latency_ms": 0}

        async with database.pool.acquire() as conn:
            await conn.execute("SELECT 1")
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }


async def check_openai() -> Dict[str, Any]:
    """
    Check OpenAI API connectivity.

    Returns:
        Health status dictionary.
    """
    try:
        if not settings.openai_api_key:
            return {"status": "not_configured", "error": "API key not set"}

        from openai import AsyncOpenAI
        client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=5.0)

        start_time = time.time()
        try:
            await client.models.list()
        finally:
            await client.close()
        latency_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        error_msg = str(e).lower()
        if "api key" in error_msg or "authentication" in error_msg:
            return {"status": "unhealthy", "error": "Invalid API key"}
        return {
            "status": "unhealthy",
            "error": str(e),
            "latency_ms": 0,
        }
