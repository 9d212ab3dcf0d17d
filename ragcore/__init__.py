# ragcore package
from .exceptions import (
    RAGError,
    InvalidRequest,
    DimensionMismatch,
    ProviderError,
    EmbeddingFailure,
    GenerationFailure,
)
from .embeddings import EmbeddingClient, EmbeddingProvider, cosine_similarity
from .vector_store import SimilarityIndex, InMemorySimilarityIndex, IndexEntry, SearchResult
from .prompts import assemble_prompt
from .generator import Generator, GenerationProvider, GenerationResult
from .loaders import DocumentLoader
from .rag_pipeline import (
    QueryRequest,
    QueryResult,
    QueryPipeline,
    Ingestor,
    IngestResult,
    RAGSystem,
    create_rag_system,
)
