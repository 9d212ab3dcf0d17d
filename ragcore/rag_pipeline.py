"""
RAG Pipeline - The Complete System

This module ties the components into a working RAG system:
1. Document Ingestion → Embedding → Index upsert
2. Query → Embedding → Similarity search → Prompt → Generation → Answer

THE RAG FLOW VISUALIZED:

INGESTION (once per document):
┌──────────┐    ┌──────────┐    ┌──────────┐
│ Document │───▶│Embedding │───▶│  Index   │
│  (text)  │    │          │    │ (upsert) │
└──────────┘    └──────────┘    └──────────┘

QUERY (for each question):
┌──────────┐    ┌──────────┐    ┌──────────┐    ┌──────────┐
│ Question │───▶│Embedding │───▶│  Index   │───▶│  Prompt  │
│          │    │          │    │ (top K)  │    │ assembly │
└──────────┘    └──────────┘    └──────────┘    └────┬─────┘
                                                     │
┌──────────┐    ┌──────────────────────────┐         │
│  Result  │◀───│ Chat model               │◀────────┘
│          │    │ "Context: [docs]         │
└──────────┘    │  User question: [q]"     │
                └──────────────────────────┘

ERROR POLICY:
- Bad parameters are rejected before any provider is called
- Provider failures abort the call and reach the caller unchanged
- Nothing is retried here; retry policy belongs to the caller

OWNERSHIP:
RAGSystem owns one index and one pair of providers for the life of the
service. Build it once at start-up with create_rag_system(), pass it to the
request handlers, close() it on shutdown. Tests build fresh ones.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from config.settings import RetrievalConfig, Settings, get_settings
from ragcore.embeddings import EmbeddingClient, EmbeddingProvider
from ragcore.exceptions import EmbeddingFailure, InvalidRequest
from ragcore.generator import GenerationProvider, Generator
from ragcore.loaders import DocumentLoader
from ragcore.logger import get_logger
from ragcore.prompts import assemble_prompt
from ragcore.vector_store import InMemorySimilarityIndex, SearchResult, SimilarityIndex, validate_search_params

logger = get_logger(__name__)

DEFAULT_GENERATION_MODEL = "gpt-4o"
EMBEDDING_PREVIEW_SIZE = 10


@dataclass
class QueryRequest:
    """One question plus its retrieval and generation parameters."""
    text: str
    top_k: int = 5
    score_threshold: float = 0.7
    generation_model: str = DEFAULT_GENERATION_MODEL

    def validate(self):
        """
        Raise InvalidRequest for unusable parameters.

        Runs before any provider call, so a bad request costs nothing.
        """
        if not isinstance(self.text, str) or not self.text.strip():
            raise InvalidRequest("Query text must be a non-empty string")
        validate_search_params(self.top_k, self.score_threshold)
        if not isinstance(self.generation_model, str) or not self.generation_model.strip():
            raise InvalidRequest("generation_model must be a non-empty string")


@dataclass
class QueryResult:
    """
    Result of a RAG query.

    THE COMPLETE PICTURE:
    - retrieved: Context used, best match first
    - generated_text: What we tell the user
    - tokens_used: Generation cost
    - context_count / avg_similarity: Retrieval quality at a glance
    - timing: Milliseconds per stage
    """
    retrieved: List[SearchResult]
    generated_text: str
    tokens_used: int
    context_count: int
    avg_similarity: float
    question: str = ""
    model: str = ""
    embedding_model: Optional[str] = None
    embedding_dimensions: int = 0
    embedding_preview: List[float] = field(default_factory=list)
    timing: Dict[str, float] = field(default_factory=dict)

    @property
    def similarity_scores(self) -> List[float]:
        return [result.score for result in self.retrieved]

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data view for callers that persist or serialize results."""
        return {
            "question": self.question,
            "retrieved": [result.to_dict() for result in self.retrieved],
            "generated_text": self.generated_text,
            "tokens_used": self.tokens_used,
            "context_count": self.context_count,
            "avg_similarity": self.avg_similarity,
            "similarity_scores": self.similarity_scores,
            "model": self.model,
            "embedding": {
                "model": self.embedding_model,
                "dimensions": self.embedding_dimensions,
                "preview": list(self.embedding_preview),
            },
            "timing": dict(self.timing),
        }


@dataclass
class IngestResult:
    """Outcome of indexing one document."""
    id: str
    dimensions: int
    model: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)


def average_similarity(results: Sequence[SearchResult]) -> float:
    """Mean score of the results, 0.0 for none."""
    if not results:
        return 0.0
    return sum(result.score for result in results) / len(results)


def _embed(provider: EmbeddingProvider, text: str) -> List[float]:
    vector = list(provider.embed(text))
    if not vector:
        raise EmbeddingFailure("Embedding provider returned an empty vector")
    return vector


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class QueryPipeline:
    """
    Answers questions against a similarity index.

    USAGE:
        pipeline = QueryPipeline(embedder, index, generator)
        result = pipeline.process(QueryRequest(text="What is the capital of France?"))
        print(result.generated_text)

    COMPONENTS (all injected):
    - EmbeddingProvider: question → vector
    - SimilarityIndex: vector → ranked context
    - GenerationProvider: prompt → answer
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        index: SimilarityIndex,
        generation_provider: GenerationProvider
    ):
        self.embedding_provider = embedding_provider
        self.index = index
        self.generation_provider = generation_provider

    def process(self, request: QueryRequest) -> QueryResult:
        """
        Run one question through embed → search → prompt → generate.

        Raises:
            InvalidRequest: bad parameters (no provider was called)
            EmbeddingFailure: the question could not be embedded
            DimensionMismatch: the index holds vectors of another dimension
            GenerationFailure: the chat model call failed
        """
        request.validate()
        timing = {}

        # Step 1: Embed the question
        start = time.perf_counter()
        query_vector = _embed(self.embedding_provider, request.text)
        timing["embedding_ms"] = _elapsed_ms(start)

        # Step 2: Search for relevant documents (empty is fine)
        start = time.perf_counter()
        retrieved = self.index.query(query_vector, request.top_k, request.score_threshold)
        timing["search_ms"] = _elapsed_ms(start)

        # Step 3: Build the prompt from the retrieved text, best match first
        context_snippets = [result.attributes.get("content", "") or "" for result in retrieved]
        prompt = assemble_prompt(request.text, context_snippets)

        # Step 4: Generate, with or without context
        start = time.perf_counter()
        generation = self.generation_provider.generate(prompt, request.generation_model)
        timing["generation_ms"] = _elapsed_ms(start)

        timing["total_ms"] = sum(timing.values())

        avg_similarity = average_similarity(retrieved)
        logger.info(
            "Answered query with %d context docs (avg similarity %.3f, %d tokens, %.0fms)",
            len(retrieved), avg_similarity, generation.tokens_used, timing["total_ms"]
        )
        logger.debug("Stage timings: %s", timing)

        return QueryResult(
            retrieved=list(retrieved),
            generated_text=generation.text,
            tokens_used=generation.tokens_used,
            context_count=len(retrieved),
            avg_similarity=avg_similarity,
            question=request.text,
            model=getattr(generation, "model", "") or request.generation_model,
            embedding_model=getattr(self.embedding_provider, "model", None),
            embedding_dimensions=len(query_vector),
            embedding_preview=query_vector[:EMBEDDING_PREVIEW_SIZE],
            timing=timing
        )


class Ingestor:
    """
    Adds documents to the index.

    The index is only touched after embedding succeeds, so a failed
    ingest never leaves a partial entry behind.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        index: SimilarityIndex,
        id_factory: Optional[Callable[[], str]] = None
    ):
        self.embedding_provider = embedding_provider
        self.index = index
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)

    def ingest(self, text: str, attributes: Optional[Mapping[str, Any]] = None) -> str:
        """
        Embed ``text`` and store it under a fresh id.

        The stored attributes are ``attributes`` plus ``content=text``;
        ``content`` always wins over a caller-supplied value.

        Returns:
            The new entry id
        """
        doc_id = self.id_factory()
        self._store(doc_id, text, attributes)
        return doc_id

    def ingest_document(
        self,
        text: str,
        category: str = "general",
        document_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None
    ) -> IngestResult:
        """
        Ingest a document with the standard descriptive attributes.

        Stamps ``category``, ``document_id`` (defaults to the entry id) and
        a UTC ``created_at``. Free-form ``metadata`` is applied last and
        wins over those keys; ``content`` is always the ingested text.
        """
        doc_id = self.id_factory()
        attributes = {
            "category": category,
            "document_id": document_id or doc_id,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        attributes.update(metadata or {})

        vector = self._store(doc_id, text, attributes)
        attributes["content"] = text

        return IngestResult(
            id=doc_id,
            dimensions=len(vector),
            model=getattr(self.embedding_provider, "model", None),
            attributes=attributes
        )

    def ingest_file(
        self,
        file_path: Union[str, Path],
        category: str = "general",
        metadata: Optional[Mapping[str, Any]] = None
    ) -> IngestResult:
        """Load a .txt/.md/.pdf file and ingest its whole text as one document."""
        text, file_metadata = DocumentLoader.load(file_path)
        merged = dict(file_metadata)
        merged.update(metadata or {})
        logger.info("Ingesting file %s (%d chars)", file_path, len(text))
        return self.ingest_document(
            text,
            category=category,
            document_id=str(file_path),
            metadata=merged
        )

    def rebuild(self, records: Iterable[Tuple[str, str, Optional[Mapping[str, Any]]]]) -> int:
        """
        Repopulate the index from the caller's store of record.

        ``records`` yields ``(id, text, attributes)``. Every record is
        embedded first and the index contents are then swapped in one step,
        so concurrent queries see the old set or the new set, and an
        embedding failure leaves the current contents in place.

        Returns:
            Number of entries indexed
        """
        prepared = []
        for doc_id, text, attributes in records:
            _require_text(text)
            vector = _embed(self.embedding_provider, text)
            prepared.append((doc_id, vector, _with_content(attributes, text)))

        count = self.index.replace_all(prepared)

        logger.info("Rebuilt index with %d entries", count)
        return count

    def _store(self, doc_id: str, text: str, attributes: Optional[Mapping[str, Any]]) -> List[float]:
        _require_text(text)
        vector = _embed(self.embedding_provider, text)
        self.index.upsert(doc_id, vector, _with_content(attributes, text))
        logger.info("Indexed document %s (%d dims)", doc_id, len(vector))
        return vector


def _require_text(text: str):
    if not isinstance(text, str) or not text.strip():
        raise InvalidRequest("Document text must be a non-empty string")


def _with_content(attributes: Optional[Mapping[str, Any]], text: str) -> Dict[str, Any]:
    merged = dict(attributes or {})
    merged["content"] = text
    return merged


class RAGSystem:
    """
    Owns the index, the providers and the services built on them.

    USAGE:
        with create_rag_system() as rag:
            rag.ingest_document("Paris is the capital of France.", category="geo")
            result = rag.query("What is the capital of France?")
            print(result.generated_text)
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        generation_provider: GenerationProvider,
        index: Optional[SimilarityIndex] = None,
        retrieval: Optional[RetrievalConfig] = None,
        generation_model: str = DEFAULT_GENERATION_MODEL
    ):
        self.embedding_provider = embedding_provider
        self.generation_provider = generation_provider
        self.index = index if index is not None else InMemorySimilarityIndex()
        self.retrieval = retrieval or RetrievalConfig()
        self.generation_model = generation_model

        self.pipeline = QueryPipeline(self.embedding_provider, self.index, self.generation_provider)
        self.ingestor = Ingestor(self.embedding_provider, self.index)

    def query(
        self,
        text: str,
        top_k: Optional[int] = None,
        score_threshold: Optional[float] = None,
        generation_model: Optional[str] = None
    ) -> QueryResult:
        """Ask a question, filling unset parameters from the configured defaults."""
        request = QueryRequest(
            text=text,
            top_k=self.retrieval.top_k if top_k is None else top_k,
            score_threshold=self.retrieval.score_threshold if score_threshold is None else score_threshold,
            generation_model=generation_model or self.generation_model
        )
        return self.pipeline.process(request)

    def ingest(self, text: str, attributes: Optional[Mapping[str, Any]] = None) -> str:
        return self.ingestor.ingest(text, attributes)

    def ingest_document(self, text: str, **kwargs) -> IngestResult:
        return self.ingestor.ingest_document(text, **kwargs)

    def ingest_file(self, file_path: Union[str, Path], **kwargs) -> IngestResult:
        return self.ingestor.ingest_file(file_path, **kwargs)

    def check_connections(self) -> Dict[str, Any]:
        """
        Report provider reachability and index size.

        Providers without a ``test_connection`` method are assumed reachable.
        """
        statuses = []
        for provider in (self.embedding_provider, self.generation_provider):
            test = getattr(provider, "test_connection", None)
            statuses.append(test() if callable(test) else True)

        return {
            "openai": all(statuses),
            "index": True,
            "vector_count": self.index.size(),
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the RAG system."""
        stats = {"vector_count": self.index.size()}
        index_stats = getattr(self.index, "stats", None)
        if callable(index_stats):
            stats.update(index_stats())
        stats["generation_model"] = self.generation_model
        stats["embedding_model"] = getattr(self.embedding_provider, "model", None)
        return stats

    def close(self):
        """Drop the volatile index and release provider connections."""
        self.index.clear()
        closed = set()
        for provider in (self.embedding_provider, self.generation_provider):
            close = getattr(provider, "close", None)
            if callable(close) and id(provider) not in closed:
                closed.add(id(provider))
                close()
        logger.info("RAG system closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def create_rag_system(
    settings: Optional[Settings] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
    generation_provider: Optional[GenerationProvider] = None,
    index: Optional[SimilarityIndex] = None
) -> RAGSystem:
    """
    Create a RAG system from settings.

    Providers that are passed in are used as-is; missing ones are built
    from ``settings`` (or the environment when ``settings`` is None).
    """
    if settings is None and (embedding_provider is None or generation_provider is None):
        settings = get_settings()

    if embedding_provider is None:
        embedding_provider = EmbeddingClient(
            api_key=settings.openai.api_key,
            model=settings.openai.embedding_model,
            base_url=settings.openai.base_url
        )
    if generation_provider is None:
        generation_provider = Generator(
            api_key=settings.openai.api_key,
            model=settings.openai.chat_model,
            base_url=settings.openai.base_url,
            temperature=settings.openai.temperature,
            max_tokens=settings.openai.max_tokens
        )

    if settings is not None:
        retrieval = settings.retrieval
        generation_model = settings.openai.chat_model
    else:
        retrieval = RetrievalConfig()
        generation_model = DEFAULT_GENERATION_MODEL

    return RAGSystem(
        embedding_provider=embedding_provider,
        generation_provider=generation_provider,
        index=index,
        retrieval=retrieval,
        generation_model=generation_model
    )
