"""
Embedding Service for StudyHub.

Generates vector embeddings for file chunks, subjects and quiz questions
using OpenAI's embeddings API, and scores vectors by cosine similarity.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

import numpy as np
import openai
from openai import AsyncOpenAI
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .config import settings
from .exceptions import MissingAPIKeyError, ProviderError, ProviderRateLimitError

logger = logging.getLogger(__name__)


class EmbeddingService:
    """
    Service for generating text embeddings using OpenAI.

    Features:
    - Batch processing
    - Retries with backoff on connection errors
    - Cosine similarity search
    """

    DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    MAX_BATCH_SIZE = 100

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None):
        """
        Initialize embedding service.

        Args:
            model: Embedding model name (defaults to settings.openai_embedding_model)
            api_key: OpenAI API key (defaults to settings.openai_api_key)

        Raises:
            MissingAPIKeyError: If no OpenAI key is configured
        """
        self.model_name = model or settings.openai_embedding_model
        self.dimensions = self.DIMENSIONS.get(self.model_name, 1536)

        api_key = api_key or settings.openai_api_key
        if not api_key:
            raise MissingAPIKeyError("openai")

        self.client = AsyncOpenAI(api_key=api_key, max_retries=0, timeout=settings.llm_timeout_seconds)
        logger.info(f"Embedding service initialized with {self.model_name} ({self.dimensions} dims)")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((openai.APIConnectionError,)),
        reraise=True
    )
    async def _create(self, inputs: List[str]):
        return await self.client.embeddings.create(model=self.model_name, input=inputs)

    async def _embed(self, inputs: List[str]) -> List[List[float]]:
        try:
            response = await self._create(inputs)
        except openai.RateLimitError as e:
            raise ProviderRateLimitError("openai") from e
        except openai.APIError as e:
            logger.error(f"Embedding request failed: {e}")
            raise ProviderError("openai", f"embedding failed: {e}") from e
        return [item.embedding for item in response.data]

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Raises:
            ValueError: If text is empty
            ProviderError: If the API call fails
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        return (await self._embed([text.strip()]))[0]

    async def embed_batch(self, texts: List[str], batch_size: int = None) -> List[List[float]]:
        """
        Generate embeddings for multiple texts, batch_size texts per request.

        Empty texts are not allowed; the result has one vector per input.
        """
        if not texts:
            return []
        if any(not t or not t.strip() for t in texts):
            raise ValueError("Cannot embed empty text")

        batch_size = min(batch_size or self.MAX_BATCH_SIZE, self.MAX_BATCH_SIZE)
        results: List[List[float]] = []

        for batch_start in range(0, len(texts), batch_size):
            batch = [t.strip() for t in texts[batch_start:batch_start + batch_size]]
            results.extend(await self._embed(batch))
            logger.debug(f"Embedded batch {batch_start}-{batch_start + len(batch)} of {len(texts)}")

            # small delay between batches
            if batch_start + batch_size < len(texts):
                await asyncio.sleep(0.1)

        return results


def cosine_similarity(embedding1: List[float], embedding2: List[float]) -> float:
    """
    Calculate cosine similarity between two embeddings.

    Returns 0.0 when either vector has zero norm.
    """
    vec1 = np.asarray(embedding1, dtype=float)
    vec2 = np.asarray(embedding2, dtype=float)

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(vec1, vec2) / (norm1 * norm2))


def find_similar(
    query_embedding: List[float],
    candidates: List[Tuple[object, List[float]]],
    threshold: float = 0.0,
    top_k: int = 10,
) -> List[Tuple[object, float]]:
    """
    Rank candidates by similarity to a query vector.

    Args:
        query_embedding: Query vector
        candidates: (key, embedding) pairs
        threshold: Minimum similarity to keep
        top_k: Maximum results

    Returns:
        (key, similarity) pairs sorted by similarity descending
    """
    if not query_embedding or not candidates:
        return []

    scored = []
    for key, embedding in candidates:
        if not embedding:
            continue
        similarity = cosine_similarity(query_embedding, embedding)
        if similarity >= threshold:
            scored.append((key, similarity))

    scored.sort(key=lambda x: x[1], reverse=True)
    return scored[:top_k]


# =============================================================================
# Singleton
# =============================================================================

_embedding_service: Optional[EmbeddingService] = None


def get_embedding_service() -> EmbeddingService:
    """Get or create the embedding service singleton."""
    global _embedding_service
    if _embedding_service is None:
        _embedding_service = EmbeddingService()
    return _embedding_service
