"""
Embeddings Module

WHAT ARE EMBEDDINGS:
Embeddings convert text into vectors (lists of numbers) that capture meaning.
Similar texts have similar vectors, so related content can be found with
vector math instead of keyword matching.

EXAMPLE:
"What is the capital of France?"  →  [0.023, -0.041, 0.089, ..., 0.012]
"Paris is the capital of France." →  [0.025, -0.038, 0.091, ..., 0.010]
                                      ↑ Close in embedding space

DISTANCE METRIC - COSINE SIMILARITY:
- Measures the angle between vectors, ignores magnitude
  - 1.0 = same direction
  - 0.0 = perpendicular (unrelated), also used for zero vectors
  - -1.0 = opposite

WHY text-embedding-3-small:
- 1536 dimensions, cheap, good quality
- The dimension is fixed per model, so one index = one model
"""

from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
from openai import OpenAI, OpenAIError

from config.settings import get_settings
from ragcore.exceptions import DimensionMismatch, EmbeddingFailure
from ragcore.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-length vector."""

    def embed(self, text: str) -> Sequence[float]:
        ...


@dataclass
class EmbeddingResult:
    """
    Result of embedding a piece of text.

    WHY KEEP THE MODEL AND TOKENS:
    - model: vectors from different models are not comparable
    - token_count: cost tracking
    """
    text: str
    embedding: List[float]
    model: str
    token_count: int

    @property
    def dimension(self) -> int:
        """Get the embedding dimension (1536 for text-embedding-3-small)."""
        return len(self.embedding)

    def to_numpy(self) -> np.ndarray:
        """Convert to numpy array for math operations."""
        return np.array(self.embedding, dtype=np.float64)


class EmbeddingClient:
    """
    Client for generating embeddings with the OpenAI API.

    WHY A CLASS:
    - Owns the API client connection
    - Turns SDK errors into EmbeddingFailure
    - Easy to swap for a fake in tests (pass ``client=``)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[OpenAI] = None
    ):
        """
        Initialize the embedding client.

        Args:
            api_key: API key (defaults to settings)
            model: Embedding model name (defaults to settings)
            base_url: Optional API base URL (defaults to settings)
            client: Pre-built OpenAI client, mainly for tests
        """
        if model is None or (client is None and api_key is None):
            config = get_settings().openai
            api_key = api_key or config.api_key
            model = model or config.embedding_model
            base_url = base_url or config.base_url

        self.model = model
        self.client = client or OpenAI(api_key=api_key, base_url=base_url)

    def embed_with_usage(self, text: str) -> EmbeddingResult:
        """
        Generate an embedding and keep the usage details.

        Raises:
            EmbeddingFailure: the API call failed or returned no vector
        """
        try:
            response = self.client.embeddings.create(
                input=text,
                model=self.model
            )
        except OpenAIError as exc:
            logger.error("Embedding request failed (model=%s): %s", self.model, exc)
            raise EmbeddingFailure(f"Embedding request failed: {exc}") from exc

        if not response.data:
            raise EmbeddingFailure("Embedding response contained no vectors")

        usage = getattr(response, "usage", None)
        token_count = getattr(usage, "total_tokens", 0) or 0

        result = EmbeddingResult(
            text=text,
            embedding=list(response.data[0].embedding),
            model=self.model,
            token_count=token_count
        )
        logger.debug("Embedded %d chars into %d dims", len(text), result.dimension)
        return result

    def embed(self, text: str) -> List[float]:
        """Generate the embedding vector for one text."""
        return self.embed_with_usage(text).embedding

    def test_connection(self) -> bool:
        """Check the API is reachable with the configured credentials."""
        try:
            self.client.models.list()
            return True
        except OpenAIError as exc:
            logger.warning("OpenAI connection failed: %s", exc)
            return False

    def close(self):
        self.client.close()


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    FORMULA:
    cosine_similarity = (A · B) / (||A|| * ||B||)

    SPECIAL CASES:
    - Different lengths: DimensionMismatch
    - Either vector has zero magnitude: 0.0 (even for two zero vectors)
    - Very small or very large components are rescaled first, so a
      non-zero vector always scores ~1.0 against itself
    - Result is clipped to [-1, 1] so float rounding never leaks outside

    EXAMPLE:
    A = [1, 0, 0], B = [1, 0, 0] → 1.0
    A = [1, 0, 0], B = [0, 1, 0] → 0.0
    """
    a = np.asarray(vec1, dtype=np.float64)
    b = np.asarray(vec2, dtype=np.float64)

    if a.shape != b.shape:
        raise DimensionMismatch(expected=b.size, actual=a.size)

    scale_a = np.max(np.abs(a)) if a.size else 0.0
    scale_b = np.max(np.abs(b)) if b.size else 0.0

    if scale_a == 0 or scale_b == 0:
        return 0.0

    # Rescale to max |x| == 1 so tiny or huge magnitudes neither underflow nor overflow
    a = a / scale_a
    b = b / scale_b

    score = np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b))
    return float(np.clip(score, -1.0, 1.0))
