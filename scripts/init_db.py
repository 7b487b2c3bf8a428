"""Script to create the PostgreSQL schema and the Qdrant collection."""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from docrag.core.config import settings
from docrag.services.database import DatabaseService
from docrag.services.vector_db import VectorDBService


async def init_stores() -> None:
    """Connect once to each store; connecting creates what is missing."""
    database = DatabaseService()
    vector_db = VectorDBService()

    await database.connect()
    print("PostgreSQL schema ready")
    await database.disconnect()

    await vector_db.connect()
    print(f"Qdrant collection {settings.qdrant_collection_name} ready")
    await vector_db.disconnect()


if __name__ == "__main__":
    asyncio.run(init_stores())
