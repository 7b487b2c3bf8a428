"""Script to ingest, index and query sample documents for one owner."""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from docrag.core.dependencies import ServiceContainer

SAMPLE_DOCUMENTS = [
    {
        "title": "Introduction to RAG Systems",
        "content": "Retrieval-Augmented Generation (RAG) combines the power of information retrieval with language models. "
        "It allows systems to access external knowledge bases and provide accurate, up-to-date answers. "
        "RAG systems typically consist of a retriever that finds relevant documents and a generator that creates responses.",
    },
    {
        "title": "Vector Databases for Semantic Search",
        "content": "Vector databases store high-dimensional vectors and enable fast similarity search. "
        "They are essential for RAG systems as they allow efficient retrieval of semantically similar documents. "
        "Popular vector databases include Qdrant, Pinecone, and Weaviate. They use algorithms like HNSW for fast approximate nearest neighbor search.",
    },
    {
        "title": "Colors of Nature",
        "content": "The sky is blue. Grass is green.",
    },
]


async def ingest_sample_documents(owner_id: str, question: str) -> None:
    """Create, index and query the sample documents."""
    services = ServiceContainer()
    await services.initialize()
    kb = services.knowledge_base

    try:
        for doc in SAMPLE_DOCUMENTS:
            document = await kb.create_text_document(owner_id, doc["content"], doc["title"])
            status = await kb.index_document(owner_id, document.id)
            print(f"Indexed document: {doc['title']} ({status.total_chunks} chunks)")

        print(f"\nIngested {len(SAMPLE_DOCUMENTS)} documents")

        response = await kb.send_chat_message(owner_id, question)
        print(f"\nQ: {question}\nA: {response.content}")
        for source in response.sources:
            print(f"  - {source.title} ({source.relevance_score:.3f})")
    finally:
        await services.shutdown()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--owner", default="demo-user")
    parser.add_argument("--question", default="What color is the sky?")
    args = parser.parse_args()
    asyncio.run(ingest_sample_documents(args.owner, args.question))
