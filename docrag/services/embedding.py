"""OpenAI embedding generation service."""

import asyncio
import logging
from typing import List, Optional

import openai
from openai import AsyncOpenAI

from docrag.core.config import settings
from docrag.core.exceptions import (
    EmbeddingError,
    EmbeddingInputError,
    EmbeddingUnavailableError,
)
from docrag.services.timeouts import with_timeout

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        batch_size: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """Initialize the embedding service."""
        self.client = client
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.batch_size = batch_size or settings.embedding_batch_size
        self.timeout = timeout or settings.embedding_timeout_seconds

    async def connect(self) -> None:
        """Create the OpenAI client."""
        if self.client is None:
            self.client = AsyncOpenAI(
                api_key=settings.openai_api_key, timeout=self.timeout, max_retries=0
            )

    async def disconnect(self) -> None:
        """Close the OpenAI client."""
        if self.client:
            await self.client.close()
            self.client = None

    async def _create(self, texts: List[str]) -> List[List[float]]:
        if not self.client:
            raise EmbeddingUnavailableError("Embedding client not connected")
        try:
            response = await with_timeout(
                self.client.embeddings.create(
                    model=self.model,
                    input=texts,
                    dimensions=self.dimensions,
                ),
                self.timeout,
                EmbeddingUnavailableError,
                "Embedding request",
            )
        except EmbeddingError:
            raise
        except (openai.BadRequestError, openai.UnprocessableEntityError) as e:
            raise EmbeddingInputError(f"Embedding input rejected: {str(e)}") from e
        except (
            openai.RateLimitError,
            openai.APITimeoutError,
            openai.APIConnectionError,
            openai.InternalServerError,
        ) as e:
            raise EmbeddingUnavailableError(
                f"Embedding provider unavailable: {str(e)}") from e
        except Exception as e:
            raise EmbeddingError(f"Failed to generate embeddings: {str(e)}") from e

        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(data)}")
        return [item.embedding for item in data]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Texts are sent in batches of batch_size, concurrently; the result keeps
        the input order.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors, one per input text.

        Raises:
            EmbeddingUnavailableError: On quota, timeout or connection failures.
            EmbeddingInputError: If the provider rejects the input.
        """
        if not texts:
            return []
        batches = [
            texts[i:i + self.batch_size] for i in range(0, len(texts), self.batch_size)
        ]
        results = await asyncio.gather(*(self._create(batch) for batch in batches))
        embeddings = [vector for batch in results for vector in batch]
        logger.debug(f"Embedded {len(texts)} texts in {len(batches)} batches")
        return embeddings

    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text string to embed.

        Returns:
            Embedding vector.
        """
        embeddings = await self.embed_batch([text])
        return embeddings[0]
